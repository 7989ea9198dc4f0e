"""Bagrut final grade calculation and lifecycle status."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.core.bagrut_tables import BagrutTables
from app.schemas.bagrut import (
    BagrutStatus,
    GradeBreakdownEntry,
    GradeCalculation,
    Presentation,
    PresentationType,
    StatusDisplayInfo,
)

logger = logging.getLogger(__name__)


class GradeCalculator:
    """Weighted grade over completed, scored presentations."""

    def __init__(self, tables: BagrutTables):
        self.tables = tables

    def calculate(
        self,
        presentations: Sequence[Presentation | Mapping[str, Any] | None],
        include_magen_bonus: bool = False,
    ) -> GradeCalculation:
        """Calculate the final grade.

        Only presentations that are completed and carry a positive score are
        counted; everything else is left out rather than treated as zero. The
        Magen bonus is added only when the caller asks for it and a valid
        presentation is the Magen Bagrut.
        """
        parsed = self.parse_presentations(presentations)
        valid = [
            (index, presentation)
            for index, presentation in parsed
            if presentation.completed and (presentation.total_score or 0) > 0
        ]

        if not valid:
            return GradeCalculation(
                final_grade=None,
                letter_grade=None,
                hebrew_grade=None,
                is_complete=False,
                presentations_used=0,
                breakdown=[],
                bonus=0,
                has_magen_bagrut=False,
                status=self.determine_overall_status([p for _, p in parsed], None),
            )

        total_weighted = 0.0
        total_weight = 0.0
        breakdown: list[GradeBreakdownEntry] = []
        for index, presentation in valid:
            number = presentation.presentation_number or index + 1
            weight = self.tables.presentation_weight(number)
            score = presentation.total_score
            weighted = score * weight
            total_weighted += weighted
            total_weight += weight
            breakdown.append(
                GradeBreakdownEntry(
                    presentation_number=number,
                    score=score,
                    weight=weight,
                    weighted_score=weighted,
                    type=(
                        PresentationType.MAGEN.value
                        if self.is_magen(index, presentation)
                        else PresentationType.REGULAR.value
                    ),
                )
            )

        has_magen = any(self.is_magen(index, presentation) for index, presentation in valid)
        bonus = self.tables.magen_bonus if include_magen_bonus and has_magen else 0

        raw_grade = total_weighted / total_weight if total_weight > 0 else 0
        final_grade = round(min(max(raw_grade + bonus, self.tables.min_score), self.tables.max_score), 2)
        letter = self.tables.letter_grade(final_grade)

        return GradeCalculation(
            final_grade=final_grade,
            letter_grade=letter.letter,
            hebrew_grade=letter.hebrew,
            is_complete=len(valid) >= self.tables.min_presentations,
            presentations_used=len(valid),
            breakdown=breakdown,
            bonus=bonus,
            has_magen_bagrut=has_magen,
            status=self.determine_overall_status([p for _, p in parsed], final_grade),
        )

    def determine_overall_status(
        self,
        presentations: Sequence[Presentation],
        final_grade: float | None,
    ) -> BagrutStatus:
        """Map completed-presentation count and final grade to a status."""
        completed_count = sum(1 for presentation in presentations if presentation.completed)

        if completed_count == 0:
            return BagrutStatus.NOT_ENROLLED
        if completed_count < self.tables.min_presentations or final_grade is None:
            return BagrutStatus.IN_PROGRESS
        if final_grade >= self.tables.passing_grade:
            return BagrutStatus.COMPLETED
        return BagrutStatus.FAILED

    def is_magen(self, index: int, presentation: Presentation) -> bool:
        if presentation.type is not None:
            return presentation.type == PresentationType.MAGEN.value
        if presentation.presentation_number is not None:
            return presentation.presentation_number == self.tables.magen_index + 1
        return index == self.tables.magen_index

    def format_grade(
        self,
        grade: float | None,
        include_letter: bool = False,
        show_placeholder: bool = False,
    ) -> str:
        """Render a grade for display, optionally with its Hebrew label."""
        if grade is None:
            return self.tables.messages.unknown_grade if show_placeholder else ""
        formatted = f"{round(grade, 2):g}"
        if include_letter:
            return f"{formatted} ({self.tables.letter_grade(grade).hebrew})"
        return formatted

    def status_display(self, status: BagrutStatus | str) -> StatusDisplayInfo:
        key = status.value if isinstance(status, BagrutStatus) else status
        display = self.tables.status_display.get(key)
        return StatusDisplayInfo(
            label=display.label if display else key,
            color=display.color if display else "gray",
            is_active=key in self.tables.active_statuses,
        )

    def parse_presentations(
        self,
        presentations: Sequence[Presentation | Mapping[str, Any] | None],
    ) -> list[tuple[int, Presentation]]:
        parsed = []
        for index, presentation in enumerate(presentations or []):
            if isinstance(presentation, Presentation):
                parsed.append((index, presentation))
                continue
            if not isinstance(presentation, Mapping):
                continue
            try:
                parsed.append((index, Presentation.model_validate(presentation)))
            except PydanticValidationError as e:
                logger.warning(
                    f"[BAGRUT GRADING] Skipping presentation {index + 1}: {e.error_count()} invalid fields"
                )
        return parsed
