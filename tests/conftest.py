"""
Shared fixtures for the Bagrut test suite.

Services are built with a frozen clock so timeline and validation results
do not depend on when the suite runs.
"""

import pytest

from app.core.bagrut_tables import BagrutTables
from app.services.bagrut_export import BagrutExportService
from app.services.bagrut_grading import GradeCalculator
from app.services.bagrut_migration import StructureMigrator
from app.services.bagrut_pipeline import BagrutPipeline
from app.services.bagrut_progress import ProgressReporter
from app.services.bagrut_validation import RecordValidator
from app.services.bagrut_version import VersionDetector
from factories import FROZEN_NOW, empty_grading, presentation


@pytest.fixture
def tables():
    return BagrutTables()


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW


@pytest.fixture
def detector(tables):
    return VersionDetector(tables)


@pytest.fixture
def migrator(tables, clock):
    return StructureMigrator(tables, now=clock)


@pytest.fixture
def validator(tables, clock):
    return RecordValidator(tables, now=clock)


@pytest.fixture
def calculator(tables):
    return GradeCalculator(tables)


@pytest.fixture
def reporter(tables, calculator, clock):
    return ProgressReporter(tables, calculator, now=clock)


@pytest.fixture
def pipeline(detector, migrator, validator, reporter):
    return BagrutPipeline(detector, migrator, validator, reporter)


@pytest.fixture
def exporter(tables, calculator):
    return BagrutExportService(tables, calculator)


@pytest.fixture
def current_record():
    """A valid current-schema record: two presentations done, one scheduled."""
    return {
        "studentId": "stu-1",
        "teacherId": "tch-1",
        "recitalUnits": 3,
        "recitalField": "קלאסי",
        "presentations": [
            presentation(completed=True, grade=85, exam_date="2025-11-01"),
            presentation(completed=True, grade=90, exam_date="2026-01-10"),
            presentation(exam_date="2026-04-15", status="scheduled"),
            presentation(detailedGrading=empty_grading()),
        ],
        "program": [
            {"pieceNumber": 1, "composer": "Bach", "pieceTitle": "Partita No. 2"},
            {"pieceNumber": 2, "composer": "Mozart", "pieceTitle": "Sonata K. 330"},
            {"pieceNumber": 3, "composer": "Ben-Haim", "pieceTitle": "Five Pieces"},
        ],
        "documents": [{"name": "recital.pdf"}, {"name": "program.pdf"}, {"name": "recording.mp3"}],
        "updatedAt": "2026-01-10T10:00:00Z",
    }


@pytest.fixture
def legacy_record():
    """A legacy record with a flat top-level Magen Bagrut and no recital config."""
    return {
        "studentId": "stu-2",
        "teacherId": "tch-1",
        "presentations": [
            presentation(completed=True, grade=80, exam_date="2025-10-01"),
            presentation(completed=True, grade=70, exam_date="2025-12-01"),
        ],
        "magenBagrut": {
            "completed": True,
            "status": "completed",
            "date": "2026-02-01",
            "technique": 28,
            "interpretation": 20,
            "musicality": 20,
            "overall": 12,
            "review": "ביצוע טוב",
        },
        "program": [],
    }

