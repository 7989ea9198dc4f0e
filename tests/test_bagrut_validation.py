"""
Unit Tests for Bagrut Record Validation

Tests required fields, presentation structure, detailed-grading bounds and
program length rules.
"""

import itertools

import pytest

from app.schemas.bagrut import ExamRecord
from factories import graded


class TestValidRecords:
    """Test records that pass validation."""

    def test_current_record_is_valid(self, validator, current_record):
        """Test a complete current record has no errors or warnings."""
        result = validator.validate(current_record)

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_accepts_parsed_record(self, validator, current_record):
        """Test an already parsed ExamRecord is validated directly."""
        result = validator.validate(ExamRecord.model_validate(current_record))

        assert result.is_valid is True

    def test_numeric_ids_accepted(self, validator, current_record):
        current_record["studentId"] = 1042
        current_record["teacherId"] = 7

        assert validator.validate(current_record).is_valid is True


class TestRequiredFields:
    """Test missing required fields."""

    def test_all_required_missing(self, validator, current_record):
        """Test each missing field yields its own error."""
        for key in ("studentId", "teacherId", "recitalUnits", "recitalField"):
            del current_record[key]

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert [error.field for error in result.errors] == [
            "studentId",
            "teacherId",
            "recitalUnits",
            "recitalField",
        ]
        assert result.errors[0].message == "חסר מזהה תלמיד"

    def test_empty_string_id(self, validator, current_record):
        current_record["studentId"] = ""

        result = validator.validate(current_record)

        assert [error.field for error in result.errors] == ["studentId"]


class TestPresentations:
    """Test presentation-level checks."""

    def test_wrong_count(self, validator, current_record):
        """Test three presentations is a structural error."""
        current_record["presentations"].pop()

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert result.errors[0].field == "presentations"
        assert result.errors[0].message == "מבנה השמעות אינו תקין"

    def test_grade_out_of_range(self, validator, current_record):
        current_record["presentations"][0]["grade"] = 105

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert result.errors[0].field == "presentations[0].grade"
        assert result.errors[0].message == "ציון השמעה 1 חייב להיות בין 0 ל-100"

    def test_completed_with_future_date_warns(self, validator, current_record):
        """Test a completed presentation dated after now is a warning only."""
        current_record["presentations"][1]["examDate"] = "2026-05-01"

        result = validator.validate(current_record)

        assert result.is_valid is True
        assert result.warnings[0].field == "presentations[1].examDate"

    def test_bad_field_type(self, validator, current_record):
        """Test a value the schema cannot read is reported with its path."""
        current_record["presentations"][0]["grade"] = "excellent"

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert result.errors[0].field == "presentations.0.grade"
        assert result.errors[0].message == "ערך לא תקין בשדה presentations.0.grade"

    @pytest.mark.parametrize("record", [None, [], "record"])
    def test_non_object_record(self, validator, record):
        result = validator.validate(record)

        assert result.is_valid is False
        assert result.errors[0].field == "record"


class TestDetailedGrading:
    """Test detailed-grading category and total bounds."""

    def test_category_over_max(self, validator, current_record):
        """Test playing skills above 40 is an error naming the category."""
        current_record["presentations"][3]["detailedGrading"] = graded(41, 25, 15, 8)

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.field == "presentations[3].detailedGrading.playingSkills"
        assert "מיומנות נגינה" in error.message
        assert error.message == "ניקוד מיומנות נגינה חורג מהמקסימום (41/40)"

    def test_record_max_points_not_trusted(self, validator, current_record):
        """Test the category cap comes from the grading table, not the record."""
        grading = graded(45, 25, 15, 8)
        grading["playingSkills"]["maxPoints"] = 50
        current_record["presentations"][3]["detailedGrading"] = grading

        result = validator.validate(current_record)

        assert result.is_valid is False
        assert result.errors[0].field == "presentations[3].detailedGrading.playingSkills"

    def test_missing_max_points_filled_from_table(self, validator, current_record):
        """Test a category without maxPoints is read rather than rejected."""
        current_record["presentations"][3]["detailedGrading"] = {"playingSkills": {"points": 30}}

        result = validator.validate(current_record)

        assert result.is_valid is True
        assert [w.field for w in result.warnings] == ["presentations[3].detailedGrading"]

    def test_total_over_100(self, validator, current_record):
        """Test a total above 100 is reported alongside the category error."""
        current_record["presentations"][3]["detailedGrading"] = graded(45, 30, 20, 10)

        result = validator.validate(current_record)

        messages = [error.message for error in result.errors]
        assert "סך הנקודות חורג מ-100" in messages
        assert len(result.errors) == 2

    def test_low_total_warns(self, validator, current_record):
        current_record["presentations"][3]["detailedGrading"] = graded(20, 10, 5, 5)

        result = validator.validate(current_record)

        assert result.is_valid is True
        assert [warning.message for warning in result.warnings] == ["ציון נמוך מהמינימום הנדרש"]

    def test_unscored_grading_does_not_warn(self, validator, current_record):
        """Test an empty grading sheet is not a low score."""
        result = validator.validate(current_record)

        assert result.warnings == []

    def test_fractional_points_in_message(self, validator, current_record):
        current_record["presentations"][3]["detailedGrading"] = graded(40.5, 25, 15, 8)

        result = validator.validate(current_record)

        assert result.errors[0].message.endswith("(40.5/40)")

    def test_accepted_grading_is_within_bounds(self, validator, current_record):
        """Test any accepted grading sheet respects every cap and the total."""
        values = {
            "playingSkills": [0, 20, 40, 41],
            "musicalUnderstanding": [0, 30, 31],
            "textKnowledge": [0, 20, 21],
            "playingByHeart": [0, 10, 11],
        }
        caps = {"playingSkills": 40, "musicalUnderstanding": 30, "textKnowledge": 20, "playingByHeart": 10}
        for combo in itertools.product(*values.values()):
            current_record["presentations"][3]["detailedGrading"] = graded(*combo)
            result = validator.validate(current_record)
            if result.is_valid:
                for key, points in zip(values, combo):
                    assert points <= caps[key]
                assert sum(combo) <= 100


class TestProgram:
    """Test program length warnings."""

    def test_five_units_need_five_pieces(self, validator, current_record):
        current_record["recitalUnits"] = 5

        result = validator.validate(current_record)

        assert result.is_valid is True
        assert result.warnings[0].field == "program"
        assert result.warnings[0].message == "נדרשות 5 יצירות בתכנית"

    def test_three_units_need_three_pieces(self, validator, current_record):
        current_record["program"] = current_record["program"][:2]

        result = validator.validate(current_record)

        assert result.warnings[0].message == "נדרשות 3 יצירות בתכנית"

    def test_missing_program(self, validator, current_record):
        current_record["program"] = None

        result = validator.validate(current_record)

        assert [warning.field for warning in result.warnings] == ["program"]
