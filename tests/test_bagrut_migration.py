"""
Unit Tests for Bagrut Structure Migration

Tests point conversion, the legacy-to-current migration steps, the
all-or-nothing failure contract and the before/after comparison.
"""

import copy

import pytest

from app.schemas.bagrut import ChangeType, RecordKind
from app.services.bagrut_migration import convert_points
from factories import FROZEN_NOW, graded, presentation


class TestConvertPoints:
    """Test rescaling between point scales."""

    def test_technique_to_playing_skills(self):
        """Test 28/35 technique points become 32/40 playing-skills points."""
        assert convert_points(28, 35, 40) == 32

    def test_none_stays_none(self):
        """Test a missing score is never converted to zero."""
        assert convert_points(None, 35, 40) is None

    def test_zero(self):
        assert convert_points(0, 25, 30) == 0

    def test_rounds_half_up(self):
        """Test ties round away from zero rather than to even."""
        assert convert_points(1, 2, 1) == 1
        assert convert_points(3, 2, 1) == 2
        assert convert_points(5, 2, 1) == 3

    @pytest.mark.parametrize(
        "old_max,new_max",
        [(35, 40), (25, 30), (25, 20), (15, 10)],
    )
    def test_conversion_error_within_half_point(self, old_max, new_max):
        """Test every legacy value converts to within half a point of the exact rescale."""
        for points in range(old_max + 1):
            exact = points / old_max * new_max
            converted = convert_points(points, old_max, new_max)
            assert abs(converted - exact) <= 0.5
            assert 0 <= converted <= new_max


class TestMigrateLegacyMagen:
    """Test migration of a flat top-level magenBagrut."""

    def test_full_legacy_record(self, migrator, legacy_record):
        """Test padding, Magen conversion, recital defaults and timestamp."""
        result = migrator.migrate(legacy_record)

        assert result.success is True
        assert result.errors == []
        data = result.migrated_data
        assert "magenBagrut" not in data
        assert len(data["presentations"]) == 4

        magen = data["presentations"][3]
        grading = magen["detailedGrading"]
        assert grading["playingSkills"]["points"] == 32
        assert grading["musicalUnderstanding"]["points"] == 24
        assert grading["textKnowledge"]["points"] == 16
        assert grading["playingByHeart"]["points"] == 8
        assert grading["playingSkills"]["maxPoints"] == 40
        assert magen["grade"] == 80
        assert magen["gradeLevel"] == "טוב (75-84)"
        assert magen["completed"] is True
        assert magen["status"] == "completed"
        assert magen["examDate"] == "2026-02-01"
        assert magen["review"] == "ביצוע טוב"
        for flat in ("technique", "interpretation", "musicality", "overall", "date"):
            assert flat not in magen

        assert data["recitalUnits"] == 3
        assert data["recitalField"] == "קלאסי"
        assert data["updatedAt"] == FROZEN_NOW

    def test_audit_trail(self, migrator, legacy_record):
        """Test every step is recorded in order."""
        result = migrator.migrate(legacy_record)

        assert [change.field for change in result.changes] == [
            "presentations",
            "presentations[3]",
            "magenBagrut",
            "recitalUnits",
            "recitalField",
            "updatedAt",
        ]
        assert result.changes[0].description == "נוספו 2 השמעות חסרות"
        assert result.changes[0].type == ChangeType.STRUCTURE
        assert result.changes[-1].new_value == FROZEN_NOW
        assert result.changes[-1].type == ChangeType.VALUE

    def test_input_not_mutated(self, migrator, legacy_record):
        """Test the caller's record is left untouched."""
        before = copy.deepcopy(legacy_record)

        result = migrator.migrate(legacy_record)

        assert legacy_record == before
        assert result.original_data == before

    def test_additional_notes_carried_into_notes(self, migrator, legacy_record):
        """Test legacy additionalNotes survive as the Magen's notes."""
        legacy_record["magenBagrut"]["additionalNotes"] = "הערה חשובה"

        result = migrator.migrate(legacy_record)

        assert result.migrated_data["presentations"][3]["notes"] == "הערה חשובה"

    def test_missing_category_stays_unscored(self, migrator, legacy_record):
        """Test an absent legacy category converts to None points."""
        del legacy_record["magenBagrut"]["overall"]

        result = migrator.migrate(legacy_record)

        magen = result.migrated_data["presentations"][3]
        assert magen["detailedGrading"]["playingByHeart"]["points"] is None
        assert magen["grade"] == 72

    def test_flat_fields_on_magen_presentation(self, migrator, current_record):
        """Test flat scores stored on the fourth presentation are converted in place."""
        current_record["presentations"][3] = presentation(
            completed=True, technique=35, interpretation=25, musicality=25, overall=15,
        )

        result = migrator.migrate(current_record)

        magen = result.migrated_data["presentations"][3]
        assert magen["grade"] == 100
        assert "technique" not in magen
        assert [change.field for change in result.changes] == ["presentations[3]", "updatedAt"]


class TestMigrateGradingDetails:
    """Test migration of the legacy gradingDetails container."""

    def test_grading_details_moved_to_magen(self, migrator, current_record):
        """Test categories are rescaled onto the Magen and the container removed."""
        current_record["presentations"][3].pop("detailedGrading")
        current_record["gradingDetails"] = {
            "technique": {"grade": 28, "comments": "טכניקה טובה"},
            "interpretation": {"grade": 20},
            "musicality": {"grade": None},
            "overall": {"grade": 15},
            "comments": "הערות כלליות",
        }

        result = migrator.migrate(current_record)

        data = result.migrated_data
        assert "gradingDetails" not in data
        grading = data["presentations"][3]["detailedGrading"]
        assert grading["playingSkills"] == {"points": 32, "maxPoints": 40, "comments": "טכניקה טובה"}
        assert grading["musicalUnderstanding"]["points"] == 24
        assert grading["textKnowledge"]["points"] is None
        assert grading["playingByHeart"]["points"] == 10
        assert data["presentations"][3]["notes"] == "הערות כלליות"
        assert [change.field for change in result.changes] == [
            "presentations[3].detailedGrading",
            "gradingDetails",
            "updatedAt",
        ]

    def test_existing_detailed_grading_is_kept(self, migrator, current_record):
        """Test gradingDetails never overwrites grading already on the Magen."""
        current_record["presentations"][3]["detailedGrading"] = graded(30, 20, 15, 8)
        current_record["gradingDetails"] = {"technique": {"grade": 1}}

        result = migrator.migrate(current_record)

        grading = result.migrated_data["presentations"][3]["detailedGrading"]
        assert grading["playingSkills"]["points"] == 30
        assert "gradingDetails" not in result.migrated_data


class TestMigrateIdempotence:
    """Test migrating a current record changes nothing but the timestamp."""

    def test_current_record(self, migrator, current_record):
        result = migrator.migrate(current_record)

        assert result.success is True
        assert [change.field for change in result.changes] == ["updatedAt"]
        assert result.warnings == []
        migrated = dict(result.migrated_data)
        original = dict(current_record)
        migrated.pop("updatedAt")
        original.pop("updatedAt")
        assert migrated == original

    def test_migrated_record_detects_as_current(self, migrator, detector, legacy_record):
        """Test a migrated legacy record no longer needs migration."""
        migrated = migrator.migrate(legacy_record).migrated_data

        status = detector.detect(migrated)

        assert status.kind == RecordKind.CURRENT
        assert status.compatibility == 100

    def test_second_migration_is_a_no_op(self, migrator, legacy_record):
        """Test migrating twice yields the same record apart from the timestamp."""
        once = migrator.migrate(legacy_record).migrated_data
        twice = migrator.migrate(once)

        assert [change.field for change in twice.changes] == ["updatedAt"]
        assert twice.migrated_data == once

    def test_more_than_four_presentations_not_truncated(self, migrator, current_record):
        current_record["presentations"].append(presentation())

        result = migrator.migrate(current_record)

        assert len(result.migrated_data["presentations"]) == 5


class TestRecitalDefaults:
    """Test defaults applied when recital configuration is missing."""

    def test_defaults_with_warnings(self, migrator, current_record):
        """Test both fields default and each produces a warning."""
        del current_record["recitalUnits"]
        current_record["recitalField"] = None

        result = migrator.migrate(current_record)

        assert result.success is True
        assert result.migrated_data["recitalUnits"] == 3
        assert result.migrated_data["recitalField"] == "קלאסי"
        assert result.warnings == [
            "הוגדרו יחידות לימוד ברירת מחדל (3 יחידות)",
            "הוגדר תחום רסיטל ברירת מחדל (קלאסי)",
        ]

    def test_existing_values_kept(self, migrator, current_record):
        current_record["recitalUnits"] = 5
        current_record["recitalField"] = "ג'אז"

        result = migrator.migrate(current_record)

        assert result.migrated_data["recitalUnits"] == 5
        assert result.migrated_data["recitalField"] == "ג'אז"
        assert result.warnings == []


class TestMigrationFailure:
    """Test the all-or-nothing failure contract."""

    @pytest.mark.parametrize("raw", [None, ["not", "a", "record"], "text"])
    def test_non_object_record(self, migrator, raw):
        """Test a non-object record fails without changes."""
        result = migrator.migrate(raw)

        assert result.success is False
        assert result.changes == []
        assert result.migrated_data == raw
        assert result.errors[0].startswith("שגיאה בתהליך ההמרה: ")

    def test_non_numeric_legacy_score(self, migrator, legacy_record):
        """Test a bad score aborts the whole migration and returns the original."""
        legacy_record["magenBagrut"]["musicality"] = "excellent"
        before = copy.deepcopy(legacy_record)

        result = migrator.migrate(legacy_record)

        assert result.success is False
        assert result.migrated_data == before
        assert result.original_data == before
        assert result.changes == []
        assert result.warnings == []
        assert "magenBagrut.musicality" in result.errors[0]
        assert legacy_record == before

    def test_presentations_not_a_list(self, migrator, current_record):
        current_record["presentations"] = "four"

        result = migrator.migrate(current_record)

        assert result.success is False
        assert result.migrated_data["presentations"] == "four"

    def test_magen_slot_not_an_object(self, migrator, legacy_record):
        """Test a Magen slot that is not an object aborts the migration."""
        legacy_record["presentations"] = [presentation(), presentation(), presentation(), "magen"]

        result = migrator.migrate(legacy_record)

        assert result.success is False
        assert "magenBagrut" in result.migrated_data


class TestCompare:
    """Test the before/after migration comparison."""

    def test_legacy_comparison(self, migrator, legacy_record):
        """Test structure and score summaries for both versions."""
        result = migrator.migrate(legacy_record)

        comparison = migrator.compare(result.original_data, result.migrated_data)

        before, after = comparison.structure.before, comparison.structure.after
        assert before.has_magen_bagrut is True
        assert after.has_magen_bagrut is False
        assert before.presentations_count == 2
        assert after.presentations_count == 4
        assert before.has_recital_config is False
        assert after.has_recital_config is True

        assert comparison.calculations.before == {
            "technique": 28,
            "interpretation": 20,
            "musicality": 20,
            "overall": 12,
            "total": 80,
        }
        assert comparison.calculations.after == {
            "playingSkills": 32,
            "musicalUnderstanding": 24,
            "textKnowledge": 16,
            "playingByHeart": 8,
            "total": 80,
        }
        assert comparison.data_loss == []
        assert len(comparison.benefits) == 4
        assert len(comparison.risks) == 3

    def test_general_comments_lost(self, migrator, current_record):
        """Test general comments are reported lost when the Magen was already graded."""
        current_record["presentations"][3]["detailedGrading"] = graded(30, 20, 15, 8)
        current_record["gradingDetails"] = {"technique": {"grade": 30}, "comments": "חשוב"}

        result = migrator.migrate(current_record)
        comparison = migrator.compare(result.original_data, result.migrated_data)

        assert comparison.data_loss == ["הערות כלליות מהמבנה הישן"]

    def test_record_without_grading(self, migrator):
        """Test a record with neither structure has no calculations."""
        comparison = migrator.compare({"presentations": []}, {"presentations": []})

        assert comparison.calculations.before is None
        assert comparison.calculations.after is None
