"""Bagrut record validation."""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.core.bagrut_tables import BagrutTables
from app.core.clock import utc_now
from app.schemas.bagrut import (
    DetailedGrading,
    ExamRecord,
    Presentation,
    ValidationMessage,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class RecordValidator:
    """Checks current-schema records against structural and numeric rules.

    Problems are returned as values; nothing raises past ``validate``.
    """

    def __init__(self, tables: BagrutTables, now: Callable[[], datetime] = utc_now):
        self.tables = tables
        self.now = now

    def validate(self, record: ExamRecord | Mapping[str, Any] | Any) -> ValidationResult:
        """Validate a record, collecting blocking errors and warnings."""
        parsed, parse_errors = self._parse(record)
        if parsed is None:
            return ValidationResult(is_valid=False, errors=parse_errors, warnings=[])

        errors: list[ValidationMessage] = []
        warnings: list[ValidationMessage] = []

        self._check_required_fields(parsed, errors)
        self._check_presentations(parsed, errors, warnings)
        self._check_program(parsed, warnings)

        if errors:
            logger.info(f"[BAGRUT VALIDATION] {len(errors)} errors, {len(warnings)} warnings")
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
        )

    def _parse(self, record: Any) -> tuple[ExamRecord | None, list[ValidationMessage]]:
        messages = self.tables.messages
        if isinstance(record, ExamRecord):
            return record, []
        if not isinstance(record, Mapping):
            return None, [ValidationMessage(field="record", message=messages.invalid_record)]
        try:
            return ExamRecord.model_validate(record), []
        except PydanticValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "record"
                errors.append(
                    ValidationMessage(
                        field=field,
                        message=messages.invalid_field_value.format(field=field),
                    )
                )
            return None, errors

    def _check_required_fields(self, record: ExamRecord, errors: list[ValidationMessage]) -> None:
        messages = self.tables.messages
        if record.student_id in (None, ""):
            errors.append(ValidationMessage(field="studentId", message=messages.missing_student_id))
        if record.teacher_id in (None, ""):
            errors.append(ValidationMessage(field="teacherId", message=messages.missing_teacher_id))
        if not record.recital_units:
            errors.append(ValidationMessage(field="recitalUnits", message=messages.missing_recital_units))
        if not record.recital_field:
            errors.append(ValidationMessage(field="recitalField", message=messages.missing_recital_field))

    def _check_presentations(
        self,
        record: ExamRecord,
        errors: list[ValidationMessage],
        warnings: list[ValidationMessage],
    ) -> None:
        messages = self.tables.messages
        if len(record.presentations) != self.tables.presentations_per_record:
            errors.append(
                ValidationMessage(field="presentations", message=messages.invalid_presentations_count)
            )

        for index, presentation in enumerate(record.presentations):
            self._check_presentation(index, presentation, errors, warnings)
            if presentation.detailed_grading is not None:
                self._check_grading(
                    f"presentations[{index}].detailedGrading",
                    presentation.detailed_grading,
                    errors,
                    warnings,
                )

    def _check_presentation(
        self,
        index: int,
        presentation: Presentation,
        errors: list[ValidationMessage],
        warnings: list[ValidationMessage],
    ) -> None:
        messages = self.tables.messages
        number = index + 1
        grade = presentation.grade
        if grade is not None and not self.tables.min_score <= grade <= self.tables.max_score:
            errors.append(
                ValidationMessage(
                    field=f"presentations[{index}].grade",
                    message=messages.presentation_grade_out_of_range.format(number=number),
                )
            )
        if presentation.completed and presentation.exam_date and presentation.exam_date > self.now():
            warnings.append(
                ValidationMessage(
                    field=f"presentations[{index}].examDate",
                    message=messages.presentation_completed_in_future.format(number=number),
                )
            )

    def _check_grading(
        self,
        path: str,
        grading: DetailedGrading,
        errors: list[ValidationMessage],
        warnings: list[ValidationMessage],
    ) -> None:
        messages = self.tables.messages
        for key, grade in grading.categories():
            category = self.tables.category(key)
            points = grade.points or 0
            if points > category.max_points:
                errors.append(
                    ValidationMessage(
                        field=f"{path}.{key}",
                        message=messages.category_exceeds_max.format(
                            label=category.label,
                            points=f"{points:g}",
                            max_points=category.max_points,
                        ),
                    )
                )

        total = grading.total_points
        if total > self.tables.total_max_points:
            errors.append(ValidationMessage(field=path, message=messages.total_exceeds_max))
        elif 0 < total < self.tables.low_total_threshold:
            warnings.append(ValidationMessage(field=path, message=messages.total_below_minimum))

    def _check_program(self, record: ExamRecord, warnings: list[ValidationMessage]) -> None:
        required = self.tables.required_pieces(record.recital_units)
        if len(record.program) < required:
            warnings.append(
                ValidationMessage(
                    field="program",
                    message=self.tables.messages.program_too_short.format(count=required),
                )
            )
