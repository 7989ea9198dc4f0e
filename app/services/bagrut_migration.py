"""Bagrut legacy-to-current structure migration."""

import copy
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.core.bagrut_tables import BagrutTables
from app.core.clock import utc_now
from app.core.exceptions import MigrationError
from app.schemas.bagrut import (
    BeforeAfter,
    ChangeType,
    MigrationChange,
    MigrationComparison,
    MigrationResult,
    PresentationStatus,
    StructureSummary,
)
from app.services.bagrut_version import is_number, legacy_magen_source

logger = logging.getLogger(__name__)

LEGACY_FLAT_FIELDS = ("technique", "interpretation", "musicality", "overall")


def convert_points(points: float | None, old_max: float, new_max: float) -> int | None:
    """Rescale a score from one point scale to another.

    Rounds half away from zero. ``None`` stays ``None``; a missing score is
    never turned into zero.
    """
    if points is None:
        return None
    scaled = Decimal(str(points)) / Decimal(str(old_max)) * Decimal(str(new_max))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StructureMigrator:
    """Converts legacy or mixed Bagrut records to the current schema.

    Works on a deep copy. Either every step succeeds or the caller gets the
    original record back with ``success=False``.
    """

    def __init__(self, tables: BagrutTables, now: Callable[[], datetime] = utc_now):
        self.tables = tables
        self.now = now

    def migrate(self, raw: Any) -> MigrationResult:
        """Migrate a raw record, returning the result and its audit trail."""
        original = copy.deepcopy(raw)
        changes: list[MigrationChange] = []
        warnings: list[str] = []

        try:
            if not isinstance(raw, Mapping):
                raise MigrationError("record", f"expected an object, got {type(raw).__name__}")

            data = copy.deepcopy(dict(raw))
            self._pad_presentations(data, changes)
            self._migrate_grading_details(data, changes)
            self._migrate_magen_bagrut(data, changes)
            self._apply_recital_defaults(data, changes, warnings)

            timestamp = self.now()
            changes.append(
                MigrationChange(
                    field="updatedAt",
                    old_value=data.get("updatedAt"),
                    new_value=timestamp,
                    type=ChangeType.VALUE,
                    description=self.tables.messages.timestamp_updated,
                )
            )
            data["updatedAt"] = timestamp

        except Exception as e:
            logger.error(f"[BAGRUT MIGRATION] Failed: {e}")
            return MigrationResult(
                success=False,
                original_data=original,
                migrated_data=original,
                changes=[],
                warnings=[],
                errors=[
                    self.tables.messages.migration_failed.format(
                        error=str(e) or self.tables.messages.unknown_error
                    )
                ],
            )

        logger.info(
            f"[BAGRUT MIGRATION] Completed: {len(changes)} changes, {len(warnings)} warnings"
        )
        return MigrationResult(
            success=True,
            original_data=original,
            migrated_data=data,
            changes=changes,
            warnings=warnings,
            errors=[],
        )

    # ==========================================
    # Conversions
    # ==========================================

    def convert_grading_details(self, legacy: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a legacy ``gradingDetails`` container to ``detailedGrading``."""
        grading: dict[str, Any] = {}
        for legacy_category in self.tables.legacy_categories:
            target = self.tables.category(legacy_category.target)
            entry = legacy.get(legacy_category.key)
            if isinstance(entry, Mapping):
                points, comments = entry.get("grade"), entry.get("comments") or ""
            else:
                points, comments = entry, ""
            if points is not None and not is_number(points):
                raise MigrationError(
                    f"gradingDetails.{legacy_category.key}",
                    f"non-numeric grade {points!r}",
                )
            grading[target.key] = {
                "points": convert_points(points, legacy_category.max_points, target.max_points),
                "maxPoints": target.max_points,
                "comments": comments,
            }
        return grading

    def convert_magen_bagrut(self, legacy: Mapping[str, Any], base: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a flat legacy Magen entry into the Magen presentation.

        ``base`` is the presentation being replaced; fields the legacy entry
        does not carry are kept from it.
        """
        grading: dict[str, Any] = {}
        for legacy_category in self.tables.legacy_categories:
            target = self.tables.category(legacy_category.target)
            points = legacy.get(legacy_category.key)
            if points is not None and not is_number(points):
                raise MigrationError(
                    f"magenBagrut.{legacy_category.key}",
                    f"non-numeric score {points!r}",
                )
            grading[target.key] = {
                "points": convert_points(points, legacy_category.max_points, target.max_points),
                "maxPoints": target.max_points,
                "comments": "",
            }

        total = sum(category["points"] or 0 for category in grading.values())
        presentation = {key: value for key, value in base.items() if key not in LEGACY_FLAT_FIELDS}
        presentation.update(
            {
                "completed": bool(legacy.get("completed", False)),
                "status": legacy.get("status") or PresentationStatus.PENDING.value,
                "examDate": legacy.get("examDate", legacy.get("date", base.get("examDate"))),
                "review": legacy.get("review") or base.get("review") or "",
                "notes": base.get("notes") or legacy.get("additionalNotes") or "",
                "recordingLinks": list(legacy.get("recordingLinks") or base.get("recordingLinks") or []),
                "grade": total,
                "gradeLevel": self.tables.grade_level(total),
                "detailedGrading": grading,
            }
        )
        if legacy.get("reviewedBy"):
            presentation["reviewedBy"] = legacy["reviewedBy"]
        presentation.pop("date", None)
        return presentation

    # ==========================================
    # Migration Steps
    # ==========================================

    def _empty_presentation(self) -> dict[str, Any]:
        return {
            "completed": False,
            "status": PresentationStatus.PENDING.value,
            "notes": "",
            "recordingLinks": [],
        }

    def _pad_presentations(self, data: dict[str, Any], changes: list[MigrationChange]) -> None:
        presentations = data.get("presentations")
        if presentations is None:
            presentations = []
        if not isinstance(presentations, list):
            raise MigrationError("presentations", f"expected a list, got {type(presentations).__name__}")

        old_value = copy.deepcopy(data.get("presentations"))
        missing = self.tables.presentations_per_record - len(presentations)
        if missing > 0:
            presentations.extend(self._empty_presentation() for _ in range(missing))
            changes.append(
                MigrationChange(
                    field="presentations",
                    old_value=old_value,
                    new_value=copy.deepcopy(presentations),
                    type=ChangeType.STRUCTURE,
                    description=self.tables.messages.presentations_padded.format(count=missing),
                )
            )
        data["presentations"] = presentations

    def _magen(self, data: dict[str, Any]) -> dict[str, Any]:
        index = self.tables.magen_index
        magen = data["presentations"][index]
        if magen is None:
            magen = self._empty_presentation()
        if not isinstance(magen, Mapping):
            raise MigrationError(f"presentations[{index}]", f"expected an object, got {type(magen).__name__}")
        return dict(magen)

    def _migrate_grading_details(self, data: dict[str, Any], changes: list[MigrationChange]) -> None:
        if "gradingDetails" not in data:
            return
        legacy = data["gradingDetails"]
        if legacy is not None and not isinstance(legacy, Mapping):
            raise MigrationError("gradingDetails", f"expected an object, got {type(legacy).__name__}")

        messages = self.tables.messages
        index = self.tables.magen_index
        if legacy:
            magen = self._magen(data)
            if not magen.get("detailedGrading"):
                grading = self.convert_grading_details(legacy)
                magen["detailedGrading"] = grading
                if not magen.get("notes") and legacy.get("comments"):
                    magen["notes"] = legacy["comments"]
                data["presentations"][index] = magen
                changes.append(
                    MigrationChange(
                        field=f"presentations[{index}].detailedGrading",
                        old_value=copy.deepcopy(legacy),
                        new_value=copy.deepcopy(grading),
                        type=ChangeType.STRUCTURE,
                        description=messages.grading_details_moved,
                    )
                )

        del data["gradingDetails"]
        changes.append(
            MigrationChange(
                field="gradingDetails",
                old_value=copy.deepcopy(legacy),
                new_value=None,
                type=ChangeType.STRUCTURE,
                description=messages.grading_details_removed,
            )
        )

    def _migrate_magen_bagrut(self, data: dict[str, Any], changes: list[MigrationChange]) -> None:
        source = legacy_magen_source(data, self.tables.magen_index)
        if source is None:
            return
        field, legacy = source
        legacy = copy.deepcopy(dict(legacy))

        messages = self.tables.messages
        index = self.tables.magen_index
        migrated = self.convert_magen_bagrut(legacy, self._magen(data))
        data["presentations"][index] = migrated
        changes.append(
            MigrationChange(
                field=f"presentations[{index}]",
                old_value=legacy,
                new_value=copy.deepcopy(migrated),
                type=ChangeType.STRUCTURE,
                description=messages.magen_bagrut_moved,
            )
        )

        if field == "magenBagrut":
            del data["magenBagrut"]
            changes.append(
                MigrationChange(
                    field="magenBagrut",
                    old_value=legacy,
                    new_value=None,
                    type=ChangeType.STRUCTURE,
                    description=messages.magen_bagrut_removed,
                )
            )

    def _apply_recital_defaults(
        self,
        data: dict[str, Any],
        changes: list[MigrationChange],
        warnings: list[str],
    ) -> None:
        messages = self.tables.messages

        if not data.get("recitalUnits"):
            units = self.tables.default_recital_units
            changes.append(
                MigrationChange(
                    field="recitalUnits",
                    old_value=data.get("recitalUnits"),
                    new_value=units,
                    type=ChangeType.VALUE,
                    description=messages.default_units_set,
                )
            )
            warnings.append(messages.default_units_warning.format(units=units))
            data["recitalUnits"] = units

        if not data.get("recitalField"):
            field = self.tables.default_recital_field
            changes.append(
                MigrationChange(
                    field="recitalField",
                    old_value=data.get("recitalField"),
                    new_value=field,
                    type=ChangeType.VALUE,
                    description=messages.default_field_set,
                )
            )
            warnings.append(messages.default_field_warning.format(field=field))
            data["recitalField"] = field

    # ==========================================
    # Comparison
    # ==========================================

    def compare(self, original: Any, migrated: Any) -> MigrationComparison:
        """Summarize structure and score differences between two versions."""
        messages = self.tables.messages
        return MigrationComparison(
            structure=BeforeAfter(
                before=self._structure_summary(original),
                after=self._structure_summary(migrated),
            ),
            calculations=BeforeAfter(
                before=self._calculations(original),
                after=self._calculations(migrated),
            ),
            data_loss=self._data_loss(original, migrated),
            benefits=list(messages.migration_benefits),
            risks=list(messages.migration_risks),
        )

    def _structure_summary(self, data: Any) -> StructureSummary:
        data = data if isinstance(data, Mapping) else {}
        presentations = data.get("presentations")
        program = data.get("program")
        return StructureSummary(
            has_grading_details=bool(data.get("gradingDetails")),
            has_magen_bagrut=bool(data.get("magenBagrut")),
            presentations_count=len(presentations) if isinstance(presentations, list) else 0,
            has_recital_config=bool(data.get("recitalUnits") and data.get("recitalField")),
            program_pieces=len(program) if isinstance(program, list) else 0,
        )

    def _calculations(self, data: Any) -> dict[str, float] | None:
        if not isinstance(data, Mapping):
            return None

        presentations = data.get("presentations")
        index = self.tables.magen_index
        if isinstance(presentations, list) and len(presentations) > index:
            magen = presentations[index]
            grading = magen.get("detailedGrading") if isinstance(magen, Mapping) else None
            if isinstance(grading, Mapping):
                scores = {
                    category.key: self._points(grading.get(category.key))
                    for category in self.tables.categories
                }
                return {**scores, "total": sum(scores.values())}

        legacy = data.get("gradingDetails")
        if not isinstance(legacy, Mapping) or not legacy:
            source = legacy_magen_source(data, index)
            legacy = source[1] if source else None
        if isinstance(legacy, Mapping):
            scores = {
                category.key: self._points(legacy.get(category.key), key="grade")
                for category in self.tables.legacy_categories
            }
            return {**scores, "total": sum(scores.values())}
        return None

    @staticmethod
    def _points(entry: Any, key: str = "points") -> float:
        value = entry.get(key) if isinstance(entry, Mapping) else entry
        return value if is_number(value) else 0

    def _data_loss(self, original: Any, migrated: Any) -> list[str]:
        if not isinstance(original, Mapping):
            return []
        messages = self.tables.messages
        notes = ""
        presentations = migrated.get("presentations") if isinstance(migrated, Mapping) else None
        index = self.tables.magen_index
        if isinstance(presentations, list) and len(presentations) > index:
            magen = presentations[index]
            notes = magen.get("notes", "") if isinstance(magen, Mapping) else ""

        data_loss = []
        grading_details = original.get("gradingDetails")
        if isinstance(grading_details, Mapping) and grading_details.get("comments") and not notes:
            data_loss.append(messages.data_loss_general_comments)
        magen_bagrut = original.get("magenBagrut")
        if isinstance(magen_bagrut, Mapping) and magen_bagrut.get("additionalNotes") and not notes:
            data_loss.append(messages.data_loss_magen_notes)
        return data_loss
