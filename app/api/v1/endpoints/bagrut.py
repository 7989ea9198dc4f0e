"""Bagrut record engine endpoints."""

import logging
from io import BytesIO
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from app.core.bagrut_tables import BagrutTables, get_bagrut_tables
from app.core.dependencies import (
    get_bagrut_pipeline,
    get_export_service,
    get_grade_calculator,
    get_progress_reporter,
    get_raw_record,
    get_record_validator,
    get_structure_migrator,
    get_version_detector,
)
from app.core.exceptions import ExportError, ValidationError
from app.schemas.bagrut import (
    BagrutProcessingResult,
    GradeCalculation,
    GradeRequest,
    MigrationComparison,
    MigrationResult,
    MigrationStatus,
    ProgressReport,
    ValidationResult,
)
from app.services.bagrut_export import BagrutExportService
from app.services.bagrut_grading import GradeCalculator
from app.services.bagrut_migration import StructureMigrator
from app.services.bagrut_pipeline import BagrutPipeline
from app.services.bagrut_progress import ProgressReporter
from app.services.bagrut_validation import RecordValidator
from app.services.bagrut_version import VersionDetector

logger = logging.getLogger(__name__)

router = APIRouter()

RawRecord = Annotated[dict[str, Any], Depends(get_raw_record)]


@router.post("/detect", response_model=MigrationStatus)
def detect_version(
    record: RawRecord,
    detector: Annotated[VersionDetector, Depends(get_version_detector)],
):
    """Report whether a stored record uses the legacy or current schema."""
    return detector.detect(record)


@router.post("/migrate", response_model=MigrationResult)
def migrate_record(
    record: RawRecord,
    migrator: Annotated[StructureMigrator, Depends(get_structure_migrator)],
):
    """
    Convert a record to the current schema.
    On failure success is false and migratedData is the untouched original.
    """
    return migrator.migrate(record)


@router.post("/compare", response_model=MigrationComparison)
def compare_migration(
    record: RawRecord,
    migrator: Annotated[StructureMigrator, Depends(get_structure_migrator)],
):
    """Preview a migration as a before/after comparison."""
    result = migrator.migrate(record)
    return migrator.compare(result.original_data, result.migrated_data)


@router.post("/validate", response_model=ValidationResult)
def validate_record(
    record: RawRecord,
    validator: Annotated[RecordValidator, Depends(get_record_validator)],
):
    """Validate a current-schema record."""
    return validator.validate(record)


@router.post("/grade", response_model=GradeCalculation)
def calculate_grade(
    request: GradeRequest,
    calculator: Annotated[GradeCalculator, Depends(get_grade_calculator)],
    include_magen_bonus: bool = Query(False, description="Add the Magen Bagrut bonus when earned"),
):
    """Calculate the weighted final grade for a set of presentations."""
    return calculator.calculate(request.presentations, include_magen_bonus=include_magen_bonus)


@router.post("/report", response_model=ProgressReport)
def progress_report(
    record: RawRecord,
    reporter: Annotated[ProgressReporter, Depends(get_progress_reporter)],
):
    """Generate the progress report for a current-schema record."""
    return reporter.generate(record)


@router.post("/process", response_model=BagrutProcessingResult)
def process_record(
    record: RawRecord,
    pipeline: Annotated[BagrutPipeline, Depends(get_bagrut_pipeline)],
):
    """
    Detect, migrate when needed, validate and report in one call.
    When migration fails the original record is returned and nothing
    downstream runs.
    """
    return pipeline.process(record)


@router.post("/export")
def export_record(
    record: RawRecord,
    pipeline: Annotated[BagrutPipeline, Depends(get_bagrut_pipeline)],
    exporter: Annotated[BagrutExportService, Depends(get_export_service)],
):
    """Download the progress report and migration log as an Excel workbook."""
    result = pipeline.process(record)
    if result.report is None:
        raise ValidationError(
            "Record could not be migrated",
            details={"errors": result.migration.errors if result.migration else []},
        )

    try:
        content = exporter.export_report(result.record, result.report, result.migration)
    except Exception as e:
        logger.error(f"[BAGRUT EXPORT] Failed to build workbook: {str(e)}")
        raise ExportError(f"Failed to build workbook: {str(e)}")
    filename = f"bagrut_{record.get('studentId') or 'record'}.xlsx"
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/constants")
def grading_constants(
    tables: Annotated[BagrutTables, Depends(get_bagrut_tables)],
):
    """Grading tables used by the engine, for display in the UI."""
    return {
        "categories": [category.model_dump(by_alias=True) for category in tables.categories],
        "legacyCategories": [category.model_dump(by_alias=True) for category in tables.legacy_categories],
        "gradeBands": [band.model_dump(by_alias=True) for band in tables.grade_bands],
        "letterGrades": [grade.model_dump(by_alias=True) for grade in tables.letter_grades],
        "presentationWeights": tables.presentation_weights,
        "magenBonus": tables.magen_bonus,
        "minPresentations": tables.min_presentations,
        "passingGrade": tables.passing_grade,
    }
