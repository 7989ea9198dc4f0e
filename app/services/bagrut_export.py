"""Bagrut progress report export to Excel."""

import json
import logging
from collections.abc import Mapping
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from app.core.bagrut_tables import BagrutTables
from app.schemas.bagrut import (
    GradeCalculation,
    MigrationResult,
    ProgressReport,
    SectionError,
)
from app.services.bagrut_grading import GradeCalculator

logger = logging.getLogger(__name__)


class BagrutExportService:
    """Writes a progress report and migration audit trail to a workbook."""

    title_font = Font(bold=True, size=14)
    section_font = Font(bold=True, size=12)
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    title_fill = PatternFill(start_color="B4C6E7", end_color="B4C6E7", fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )
    center_align = Alignment(horizontal='center', vertical='center')

    def __init__(self, tables: BagrutTables, calculator: GradeCalculator):
        self.tables = tables
        self.calculator = calculator

    def export_report(
        self,
        record: Mapping[str, Any],
        report: ProgressReport,
        migration: MigrationResult | None = None,
    ) -> bytes:
        """Build an .xlsx workbook for one Bagrut record."""
        wb = Workbook()
        ws = wb.active
        ws.title = "Progress"
        ws.sheet_view.rightToLeft = True

        student_id = record.get("studentId", "") if isinstance(record, Mapping) else ""
        ws.merge_cells('A1:E1')
        title_cell = ws.cell(row=1, column=1, value=f"דוח התקדמות בגרות - תלמיד {student_id}")
        title_cell.font = self.title_font
        title_cell.alignment = self.center_align
        title_cell.fill = self.title_fill

        row = 3
        row = self._write_overview(ws, row, report)
        row = self._write_grading(ws, row + 1, report.grading)
        row = self._write_timeline(ws, row + 1, report)
        row = self._write_requirements(ws, row + 1, report)
        self._write_recommendations(ws, row + 1, report)

        for col, width in {'A': 28, 'B': 22, 'C': 14, 'D': 16, 'E': 40}.items():
            ws.column_dimensions[col].width = width

        if migration is not None:
            self._write_migration(wb.create_sheet("Migration"), migration)

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        logger.info(f"[BAGRUT EXPORT] Workbook built for student {student_id}")
        return output.getvalue()

    # ==========================================
    # Sections
    # ==========================================

    def _section_title(self, ws: Worksheet, row: int, title: str) -> int:
        ws.cell(row=row, column=1, value=title).font = self.section_font
        return row + 1

    def _header_row(self, ws: Worksheet, row: int, headers: list[str]) -> int:
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col_idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.border = self.thin_border
            cell.alignment = self.center_align
        return row + 1

    def _pairs(self, ws: Worksheet, row: int, pairs: list[tuple[str, Any]]) -> int:
        for label, value in pairs:
            ws.cell(row=row, column=1, value=label).border = self.thin_border
            ws.cell(row=row, column=2, value=value).border = self.thin_border
            row += 1
        return row

    def _error_row(self, ws: Worksheet, row: int, error: SectionError) -> int:
        ws.cell(row=row, column=1, value="שגיאה")
        ws.cell(row=row, column=2, value=error.error)
        return row + 1

    def _write_overview(self, ws: Worksheet, row: int, report: ProgressReport) -> int:
        row = self._section_title(ws, row, "סקירה כללית")
        overview = report.overview
        if isinstance(overview, SectionError):
            return self._error_row(ws, row, overview)
        return self._pairs(ws, row, [
            ("סך השמעות", overview.total_presentations),
            ("השמעות שהושלמו", overview.completed_count),
            ("השמעות ממתינות", overview.pending_count),
            ("אחוז השלמה", overview.completion_rate),
        ])

    def _write_grading(self, ws: Worksheet, row: int, grading: GradeCalculation | SectionError) -> int:
        row = self._section_title(ws, row, "ציונים")
        if isinstance(grading, SectionError):
            return self._error_row(ws, row, grading)

        row = self._pairs(ws, row, [
            ("ציון סופי", self.calculator.format_grade(grading.final_grade, show_placeholder=True)),
            ("ציון מילולי", grading.hebrew_grade or ""),
            ("בונוס מגן בגרות", grading.bonus),
            ("סטטוס", self.calculator.status_display(grading.status).label),
        ])
        if not grading.breakdown:
            return row

        row = self._header_row(ws, row + 1, ["מס' השמעה", "ציון", "משקל", "ציון משוקלל", "סוג"])
        for entry in grading.breakdown:
            values = [entry.presentation_number, entry.score, entry.weight, entry.weighted_score, entry.type]
            for col_idx, value in enumerate(values, start=1):
                ws.cell(row=row, column=col_idx, value=value).border = self.thin_border
            row += 1
        return row

    def _write_timeline(self, ws: Worksheet, row: int, report: ProgressReport) -> int:
        row = self._section_title(ws, row, "לוח זמנים")
        timeline = report.timeline
        if isinstance(timeline, SectionError):
            return self._error_row(ws, row, timeline)

        def fmt(value):
            return value.date().isoformat() if value else ""

        return self._pairs(ws, row, [
            ("מועד הבחינה הבא", fmt(timeline.next_exam_date)),
            ("השמעה אחרונה שהושלמה", fmt(timeline.last_completed_date)),
            ("מועד סיום משוער", fmt(timeline.estimated_completion_date)),
        ])

    def _write_requirements(self, ws: Worksheet, row: int, report: ProgressReport) -> int:
        row = self._section_title(ws, row, "דרישות")
        requirements = report.requirements
        if isinstance(requirements, SectionError):
            return self._error_row(ws, row, requirements)
        return self._pairs(ws, row, [
            ("מינימום השמעות נדרש", requirements.min_presentations_required),
            ("עומד במינימום", "כן" if requirements.min_presentations_met else "לא"),
            ("זכאי לתעודה", "כן" if requirements.eligible_for_certificate else "לא"),
        ])

    def _write_recommendations(self, ws: Worksheet, row: int, report: ProgressReport) -> int:
        row = self._section_title(ws, row, "המלצות")
        recommendations = report.recommendations
        if isinstance(recommendations, SectionError):
            return self._error_row(ws, row, recommendations)

        row = self._header_row(ws, row, ["סוג", "קטגוריה", "", "", "המלצה"])
        for item in recommendations:
            ws.cell(row=row, column=1, value=item.type).border = self.thin_border
            ws.cell(row=row, column=2, value=item.category).border = self.thin_border
            ws.cell(row=row, column=5, value=f"{item.message} - {item.action}").border = self.thin_border
            row += 1
        return row

    def _write_migration(self, ws: Worksheet, migration: MigrationResult) -> None:
        ws.sheet_view.rightToLeft = True
        ws.cell(row=1, column=1, value="יומן המרת נתונים").font = self.title_font
        ws.cell(row=2, column=1, value="הצלחה" if migration.success else "נכשל")

        row = self._header_row(ws, 4, ["שדה", "סוג שינוי", "תיאור", "ערך קודם", "ערך חדש"])
        for change in migration.changes:
            values = [
                change.field,
                change.type.value,
                change.description,
                self._to_cell(change.old_value),
                self._to_cell(change.new_value),
            ]
            for col_idx, value in enumerate(values, start=1):
                ws.cell(row=row, column=col_idx, value=value).border = self.thin_border
            row += 1

        for message in [*migration.warnings, *migration.errors]:
            row += 1
            ws.cell(row=row, column=1, value=message)

        for col, width in {'A': 32, 'B': 14, 'C': 36, 'D': 40, 'E': 40}.items():
            ws.column_dimensions[col].width = width

    @staticmethod
    def _to_cell(value: Any) -> Any:
        if value is None or isinstance(value, (int, float, str)):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)
