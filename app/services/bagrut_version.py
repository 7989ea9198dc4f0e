"""Bagrut schema version detection."""

import logging
from collections.abc import Mapping
from typing import Any

from app.core.bagrut_tables import BagrutTables
from app.schemas.bagrut import (
    IssueSeverity,
    IssueType,
    MigrationIssue,
    MigrationStatus,
    RecordKind,
    SchemaVersion,
)

logger = logging.getLogger(__name__)

FLAT_MAGEN_MARKERS = ("technique", "interpretation")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def has_flat_magen_fields(magen: Any) -> bool:
    """True when a Magen entry carries legacy flat numeric scores."""
    return isinstance(magen, Mapping) and any(
        is_number(magen.get(key)) for key in FLAT_MAGEN_MARKERS
    )


def legacy_magen_source(raw: Mapping[str, Any], magen_index: int) -> tuple[str, Mapping[str, Any]] | None:
    """Locate a legacy flat Magen structure.

    The top-level ``magenBagrut`` wins; otherwise the Magen presentation itself
    may still hold flat scores. Returns the field path and the entry.
    """
    top_level = raw.get("magenBagrut")
    if has_flat_magen_fields(top_level):
        return "magenBagrut", top_level
    presentations = raw.get("presentations")
    if isinstance(presentations, list) and len(presentations) > magen_index:
        candidate = presentations[magen_index]
        if has_flat_magen_fields(candidate):
            return f"presentations[{magen_index}]", candidate
    return None


class VersionDetector:
    """Classifies raw records as legacy, current or malformed."""

    def __init__(self, tables: BagrutTables):
        self.tables = tables

    def detect(self, raw: Any) -> MigrationStatus:
        """Inspect a raw record and report what migration it needs."""
        messages = self.tables.messages

        if not isinstance(raw, Mapping) or not self._presentations_shape_ok(raw):
            logger.warning(f"[BAGRUT DETECT] Malformed record: {type(raw).__name__}")
            return MigrationStatus(
                needs_migration=True,
                version=SchemaVersion.LEGACY,
                kind=RecordKind.MALFORMED,
                issues=[
                    MigrationIssue(
                        type=IssueType.INVALID_STRUCTURE,
                        severity=IssueSeverity.CRITICAL,
                        field="presentations" if isinstance(raw, Mapping) else "record",
                        message=messages.malformed_record,
                        auto_fixable=False,
                    )
                ],
                compatibility=0,
            )

        issues: list[MigrationIssue] = []
        needs_migration = False
        version = SchemaVersion.CURRENT
        presentations = raw.get("presentations")

        if raw.get("gradingDetails") and not self._magen_has_detailed_grading(presentations):
            needs_migration = True
            version = SchemaVersion.LEGACY
            issues.append(
                MigrationIssue(
                    type=IssueType.INVALID_STRUCTURE,
                    severity=IssueSeverity.HIGH,
                    field="gradingDetails",
                    message=messages.legacy_grading_details,
                    auto_fixable=True,
                )
            )

        if legacy_magen_source(raw, self.tables.magen_index) is not None:
            needs_migration = True
            version = SchemaVersion.LEGACY
            issues.append(
                MigrationIssue(
                    type=IssueType.INVALID_STRUCTURE,
                    severity=IssueSeverity.HIGH,
                    field="magenBagrut",
                    message=messages.legacy_magen_bagrut,
                    auto_fixable=True,
                )
            )

        # Needs a human decision, so it does not force migration on its own
        if not raw.get("recitalUnits") or not raw.get("recitalField"):
            issues.append(
                MigrationIssue(
                    type=IssueType.MISSING_FIELD,
                    severity=IssueSeverity.MEDIUM,
                    field="recitalConfiguration",
                    message=messages.missing_recital_config,
                    auto_fixable=False,
                )
            )

        if not presentations or len(presentations) != self.tables.presentations_per_record:
            needs_migration = True
            issues.append(
                MigrationIssue(
                    type=IssueType.INVALID_STRUCTURE,
                    severity=IssueSeverity.MEDIUM,
                    field="presentations",
                    message=messages.invalid_presentations,
                    auto_fixable=True,
                )
            )

        status = MigrationStatus(
            needs_migration=needs_migration,
            version=version,
            kind=RecordKind.LEGACY if needs_migration else RecordKind.CURRENT,
            issues=issues,
            compatibility=self.compatibility(issues),
        )
        logger.debug(
            f"[BAGRUT DETECT] kind={status.kind.value} issues={len(issues)} "
            f"compatibility={status.compatibility}"
        )
        return status

    @staticmethod
    def compatibility(issues: list[MigrationIssue]) -> int:
        """Score 0-100; auto-fixable issues cost half as much."""
        if not issues:
            return 100
        auto_fixable = sum(1 for issue in issues if issue.auto_fixable)
        return max(0, 100 - 20 * len(issues) + 10 * auto_fixable)

    @staticmethod
    def _presentations_shape_ok(raw: Mapping[str, Any]) -> bool:
        presentations = raw.get("presentations")
        return presentations is None or isinstance(presentations, list)

    def _magen_has_detailed_grading(self, presentations: list | None) -> bool:
        if not presentations or len(presentations) <= self.tables.magen_index:
            return False
        magen = presentations[self.tables.magen_index]
        return isinstance(magen, Mapping) and bool(magen.get("detailedGrading"))
