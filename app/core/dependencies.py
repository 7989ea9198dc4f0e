"""FastAPI dependency injection utilities."""

from typing import Annotated, Any

from fastapi import Body, Depends

from app.core.bagrut_tables import BagrutTables, get_bagrut_tables
from app.core.exceptions import ValidationError
from app.services.bagrut_export import BagrutExportService
from app.services.bagrut_grading import GradeCalculator
from app.services.bagrut_migration import StructureMigrator
from app.services.bagrut_pipeline import BagrutPipeline
from app.services.bagrut_progress import ProgressReporter
from app.services.bagrut_validation import RecordValidator
from app.services.bagrut_version import VersionDetector

Tables = Annotated[BagrutTables, Depends(get_bagrut_tables)]


def get_raw_record(record: Annotated[Any, Body()]) -> dict[str, Any]:
    """Accept any JSON object as a raw Bagrut record."""
    if not isinstance(record, dict):
        raise ValidationError(
            "Bagrut record must be a JSON object",
            details={"received": type(record).__name__},
        )
    return record


def get_version_detector(tables: Tables) -> VersionDetector:
    return VersionDetector(tables)


def get_structure_migrator(tables: Tables) -> StructureMigrator:
    return StructureMigrator(tables)


def get_record_validator(tables: Tables) -> RecordValidator:
    return RecordValidator(tables)


def get_grade_calculator(tables: Tables) -> GradeCalculator:
    return GradeCalculator(tables)


def get_progress_reporter(
    tables: Tables,
    calculator: Annotated[GradeCalculator, Depends(get_grade_calculator)],
) -> ProgressReporter:
    return ProgressReporter(tables, calculator)


def get_bagrut_pipeline(
    detector: Annotated[VersionDetector, Depends(get_version_detector)],
    migrator: Annotated[StructureMigrator, Depends(get_structure_migrator)],
    validator: Annotated[RecordValidator, Depends(get_record_validator)],
    reporter: Annotated[ProgressReporter, Depends(get_progress_reporter)],
) -> BagrutPipeline:
    return BagrutPipeline(detector, migrator, validator, reporter)


def get_export_service(
    tables: Tables,
    calculator: Annotated[GradeCalculator, Depends(get_grade_calculator)],
) -> BagrutExportService:
    return BagrutExportService(tables, calculator)
