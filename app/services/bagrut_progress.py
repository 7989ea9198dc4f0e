"""Bagrut progress report and recommendations."""

import calendar
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from app.core.bagrut_tables import BagrutTables
from app.core.clock import utc_now
from app.schemas.bagrut import (
    ExamRecord,
    GradeCalculation,
    Presentation,
    ProgressOverview,
    ProgressReport,
    ProgressRequirements,
    ProgressTimeline,
    RecommendationItem,
    SectionError,
)
from app.services.bagrut_grading import GradeCalculator

logger = logging.getLogger(__name__)

T = TypeVar("T")


def add_months(value: datetime, months: int) -> datetime:
    """Shift a datetime by whole months, clamping to the month's last day."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class ProgressReporter:
    """Builds the progress report shown on a student's Bagrut page.

    Each section is computed on its own. A section that fails is replaced by
    ``SectionError`` and the rest of the report is still produced.
    """

    def __init__(
        self,
        tables: BagrutTables,
        calculator: GradeCalculator,
        now: Callable[[], datetime] = utc_now,
    ):
        self.tables = tables
        self.calculator = calculator
        self.now = now

    def generate(self, record: ExamRecord | Mapping[str, Any]) -> ProgressReport:
        """Generate the progress report for a current-schema record.

        Unreadable presentations are left out, as in the grade calculation.
        Only a non-object record or a non-list ``presentations`` fails every
        section.
        """
        if isinstance(record, ExamRecord):
            raw_presentations: list[Any] = list(record.presentations)
            documents = record.documents
        elif isinstance(record, Mapping) and isinstance(record.get("presentations") or [], list):
            raw_presentations = list(record.get("presentations") or [])
            documents = record.get("documents")
            documents = documents if isinstance(documents, list) else []
        else:
            logger.warning("[BAGRUT REPORT] Unreadable record: expected an object with a presentations list")
            error = SectionError(error="Record must be an object with a list of presentations")
            return ProgressReport(
                overview=error,
                grading=error,
                timeline=error,
                requirements=error,
                recommendations=error,
            )

        presentations = [p for _, p in self.calculator.parse_presentations(raw_presentations)]
        completed = [p for p in presentations if p.completed]
        pending = [p for p in presentations if not p.completed]

        # Raw list keeps each presentation's position for weights and the Magen
        grading = self._section(
            "grading",
            lambda: self.calculator.calculate(raw_presentations, include_magen_bonus=True),
        )
        return ProgressReport(
            overview=self._section("overview", lambda: self._overview(presentations, completed, pending)),
            grading=grading,
            timeline=self._section("timeline", lambda: self._timeline(completed, pending)),
            requirements=self._section("requirements", lambda: self._requirements(completed, grading)),
            recommendations=self._section("recommendations", lambda: self._recommendations(documents, grading)),
        )

    def _section(self, name: str, build: Callable[[], T]) -> T | SectionError:
        try:
            return build()
        except Exception as e:
            logger.exception(f"[BAGRUT REPORT] Section '{name}' failed")
            return SectionError(error=str(e))

    def _overview(
        self,
        presentations: list[Presentation],
        completed: list[Presentation],
        pending: list[Presentation],
    ) -> ProgressOverview:
        total = len(presentations)
        return ProgressOverview(
            total_presentations=total,
            completed_count=len(completed),
            pending_count=len(pending),
            completion_rate=round(len(completed) / total * 100, 2) if total else 0,
        )

    def _timeline(self, completed: list[Presentation], pending: list[Presentation]) -> ProgressTimeline:
        now = self.now()
        upcoming = [p.exam_date for p in pending if p.exam_date and p.exam_date > now]
        past = [p.exam_date for p in completed if p.exam_date and p.exam_date <= now]
        return ProgressTimeline(
            next_exam_date=min(upcoming) if upcoming else None,
            last_completed_date=max(past) if past else None,
            estimated_completion_date=self._estimate_completion(pending, now),
        )

    def _estimate_completion(self, pending: list[Presentation], now: datetime) -> datetime | None:
        if not pending:
            return None
        scheduled = [p.exam_date for p in pending if p.exam_date]
        if scheduled:
            return max(scheduled)
        return add_months(now, len(pending) * self.tables.estimate_months_per_presentation)

    def _requirements(
        self,
        completed: list[Presentation],
        grading: GradeCalculation | SectionError,
    ) -> ProgressRequirements:
        if isinstance(grading, SectionError):
            raise ValueError(grading.error)
        return ProgressRequirements(
            min_presentations_required=self.tables.min_presentations,
            min_presentations_met=len(completed) >= self.tables.min_presentations,
            eligible_for_certificate=(
                grading.is_complete
                and grading.final_grade is not None
                and grading.final_grade >= self.tables.passing_grade
            ),
        )

    def _recommendations(
        self,
        documents: list[Any],
        grading: GradeCalculation | SectionError,
    ) -> list[RecommendationItem]:
        if isinstance(grading, SectionError):
            raise ValueError(grading.error)

        templates = self.tables.recommendations
        recommendations = []

        missing = self.tables.min_presentations - grading.presentations_used
        if missing > 0:
            urgent = templates["urgent"]
            recommendations.append(
                RecommendationItem(
                    type=urgent.type,
                    category=urgent.category,
                    message=urgent.message.format(count=missing),
                    action=urgent.action,
                )
            )

        if grading.final_grade is not None and grading.final_grade < self.tables.improvement_threshold:
            recommendations.append(RecommendationItem(**templates["improvement"].model_dump()))

        if not grading.has_magen_bagrut and grading.presentations_used >= 2:
            recommendations.append(RecommendationItem(**templates["opportunity"].model_dump()))

        if len(documents) < self.tables.min_documents:
            recommendations.append(RecommendationItem(**templates["administrative"].model_dump()))

        return recommendations
