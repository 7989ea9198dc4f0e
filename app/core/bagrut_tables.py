"""Fixed Bagrut grading tables and Hebrew message catalogue.

Everything here is immutable and built once per process by
``get_bagrut_tables()``. Services receive a ``BagrutTables`` instance through
their constructor instead of importing module-level constants, so tests can
build a table set with different tunables.
"""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.core.config import Settings, get_settings


class FrozenTable(BaseModel):
    """Base for immutable table rows."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class GradingCategory(FrozenTable):
    """A detailed-grading category of the current schema."""

    key: str
    max_points: int
    weight: float
    label: str


class LegacyCategory(FrozenTable):
    """A legacy grading category and the current category it maps onto."""

    key: str
    max_points: int
    target: str


class GradeBand(FrozenTable):
    """Lower-bounded score band rendered as ``gradeLevel``."""

    min_score: float
    label: str


class LetterGrade(FrozenTable):
    """Lower-bounded letter grade with its Hebrew label."""

    min_score: float
    letter: str
    hebrew: str


class StatusDisplay(FrozenTable):
    label: str
    color: str


class Recommendation(FrozenTable):
    type: str
    category: str
    message: str
    action: str


class BagrutMessages(FrozenTable):
    """User-facing Hebrew strings emitted by the engine."""

    # Version detection
    legacy_grading_details: str = "נמצא מבנה ציונים ישן - נדרשת המרה למבנה החדש"
    legacy_magen_bagrut: str = "נמצא מבנה מגן בגרות ישן - נדרשת המרה לטבלת ציונים החדשה"
    missing_recital_config: str = "חסרים נתוני הגדרת רסיטל (יחידות לימוד ותחום)"
    invalid_presentations: str = "מבנה השמעות אינו תקין - נדרשות 4 השמעות"
    malformed_record: str = "מבנה הרשומה אינו תקין - לא ניתן לזהות את גרסת הנתונים"

    # Migration audit trail
    presentations_padded: str = "נוספו {count} השמעות חסרות"
    grading_details_moved: str = "הועבר מבנה ציונים ישן למגן בגרות"
    grading_details_removed: str = "הוסר מבנה ציונים ישן"
    magen_bagrut_moved: str = "הועבר מבנה מגן בגרות ישן למבנה חדש"
    magen_bagrut_removed: str = "הוסר מבנה מגן בגרות ישן"
    default_units_set: str = "הוגדרו יחידות לימוד ברירת מחדל"
    default_units_warning: str = "הוגדרו יחידות לימוד ברירת מחדל ({units} יחידות)"
    default_field_set: str = "הוגדר תחום רסיטל ברירת מחדל"
    default_field_warning: str = "הוגדר תחום רסיטל ברירת מחדל ({field})"
    timestamp_updated: str = "עודכן זמן שינוי אחרון"
    migration_failed: str = "שגיאה בתהליך ההמרה: {error}"
    unknown_error: str = "שגיאה לא ידועה"

    # Migration comparison
    migration_benefits: tuple[str, ...] = (
        "מבנה ציונים מפורט יותר",
        "תמיכה בטבלת ציונים חדשה",
        "אימות משופר של נתונים",
        "תואמות למערכת החדשה",
    )
    migration_risks: tuple[str, ...] = (
        "שינוי במבנה הנתונים",
        "צורך בהתאמת קוד קיים",
        "אפשרות לאי התאמות זמניות",
    )
    data_loss_general_comments: str = "הערות כלליות מהמבנה הישן"
    data_loss_magen_notes: str = "הערות נוספות ממגן בגרות"

    # Validation
    invalid_record: str = "הרשומה אינה אובייקט תקין"
    invalid_field_value: str = "ערך לא תקין בשדה {field}"
    missing_student_id: str = "חסר מזהה תלמיד"
    missing_teacher_id: str = "חסר מזהה מורה"
    missing_recital_units: str = "חסרות יחידות לימוד"
    missing_recital_field: str = "חסר תחום רסיטל"
    invalid_presentations_count: str = "מבנה השמעות אינו תקין"
    category_exceeds_max: str = "ניקוד {label} חורג מהמקסימום ({points}/{max_points})"
    total_exceeds_max: str = "סך הנקודות חורג מ-100"
    total_below_minimum: str = "ציון נמוך מהמינימום הנדרש"
    program_too_short: str = "נדרשות {count} יצירות בתכנית"
    presentation_grade_out_of_range: str = "ציון השמעה {number} חייב להיות בין 0 ל-100"
    presentation_completed_in_future: str = "השמעה {number} סומנה כהושלמה אך מועד הבחינה עתידי"

    # Display
    unknown_grade: str = "לא ידוע"


def default_categories() -> tuple[GradingCategory, ...]:
    return (
        GradingCategory(key="playingSkills", max_points=40, weight=0.4, label="מיומנות נגינה"),
        GradingCategory(key="musicalUnderstanding", max_points=30, weight=0.3, label="הבנה מוסיקלית"),
        GradingCategory(key="textKnowledge", max_points=20, weight=0.2, label="ידיעת טקסט"),
        GradingCategory(key="playingByHeart", max_points=10, weight=0.1, label="נגינה בעל פה"),
    )


def _default_legacy_categories() -> tuple[LegacyCategory, ...]:
    return (
        LegacyCategory(key="technique", max_points=35, target="playingSkills"),
        LegacyCategory(key="interpretation", max_points=25, target="musicalUnderstanding"),
        LegacyCategory(key="musicality", max_points=25, target="textKnowledge"),
        LegacyCategory(key="overall", max_points=15, target="playingByHeart"),
    )


def _default_grade_bands() -> tuple[GradeBand, ...]:
    return (
        GradeBand(min_score=95, label="מצוין (95-100)"),
        GradeBand(min_score=85, label="טוב מאוד (85-94)"),
        GradeBand(min_score=75, label="טוב (75-84)"),
        GradeBand(min_score=65, label="כמעט טוב (65-74)"),
        GradeBand(min_score=55, label="מספק (55-64)"),
        GradeBand(min_score=45, label="כמעט מספק (45-54)"),
        GradeBand(min_score=35, label="לא מספק (35-44)"),
        GradeBand(min_score=0, label="גרוע (0-34)"),
    )


def _default_letter_grades() -> tuple[LetterGrade, ...]:
    return (
        LetterGrade(min_score=90, letter="A", hebrew="מצוין"),
        LetterGrade(min_score=80, letter="B", hebrew="טוב מאוד"),
        LetterGrade(min_score=70, letter="C", hebrew="טוב"),
        LetterGrade(min_score=60, letter="D", hebrew="מספיק"),
        LetterGrade(min_score=0, letter="F", hebrew="נכשל"),
    )


def _default_status_display() -> dict[str, StatusDisplay]:
    return {
        "not_enrolled": StatusDisplay(label="לא רשום", color="gray"),
        "enrolled": StatusDisplay(label="רשום", color="gray"),
        "in_progress": StatusDisplay(label="בתהליך", color="blue"),
        "scheduled": StatusDisplay(label="מתוכנן", color="yellow"),
        "examined": StatusDisplay(label="נבחן", color="blue"),
        "completed": StatusDisplay(label="הושלם", color="green"),
        "failed": StatusDisplay(label="נכשל", color="red"),
    }


def _default_recommendations() -> dict[str, Recommendation]:
    return {
        "urgent": Recommendation(
            type="urgent",
            category="completion",
            message="נדרשות עוד {count} הצגות להשלמת הבגרות",
            action="תכנן הצגות נוספות",
        ),
        "improvement": Recommendation(
            type="improvement",
            category="grades",
            message="יש מקום לשיפור בציונים",
            action="התמקד בטכניקה ובפרשנות",
        ),
        "opportunity": Recommendation(
            type="opportunity",
            category="magen",
            message="שקול הרשמה למגן בגרות לשיפור הציון",
            action="התייעץ עם המורה לגבי מגן בגרות",
        ),
        "administrative": Recommendation(
            type="administrative",
            category="documents",
            message="חסרים מסמכים נדרשים",
            action="העלה תעודות והקלטות נוספות",
        ),
    }


class BagrutTables(FrozenTable):
    """Immutable grading configuration shared by all Bagrut services."""

    presentations_per_record: int = 4
    magen_index: int = 3
    total_max_points: int = 100
    low_total_threshold: float = 55
    max_score: float = 100
    min_score: float = 0

    categories: tuple[GradingCategory, ...] = default_categories()
    legacy_categories: tuple[LegacyCategory, ...] = _default_legacy_categories()
    grade_bands: tuple[GradeBand, ...] = _default_grade_bands()
    letter_grades: tuple[LetterGrade, ...] = _default_letter_grades()
    presentation_weights: dict[int, float] = {1: 0.25, 2: 0.25, 3: 0.25, 4: 0.25}
    status_display: dict[str, StatusDisplay] = _default_status_display()
    active_statuses: frozenset[str] = frozenset({"completed", "in_progress", "scheduled"})
    recommendations: dict[str, Recommendation] = _default_recommendations()
    messages: BagrutMessages = BagrutMessages()

    # Tunables, normally taken from Settings
    magen_bonus: float = 5
    min_presentations: int = 3
    passing_grade: float = 60
    improvement_threshold: float = 70
    min_documents: int = 3
    default_recital_units: int = 3
    default_recital_field: str = "קלאסי"
    estimate_months_per_presentation: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "BagrutTables":
        return cls(
            magen_bonus=settings.BAGRUT_MAGEN_BONUS,
            min_presentations=settings.BAGRUT_MIN_PRESENTATIONS,
            passing_grade=settings.BAGRUT_PASSING_GRADE,
            improvement_threshold=settings.BAGRUT_IMPROVEMENT_THRESHOLD,
            min_documents=settings.BAGRUT_MIN_DOCUMENTS,
            default_recital_units=settings.BAGRUT_DEFAULT_RECITAL_UNITS,
            default_recital_field=settings.BAGRUT_DEFAULT_RECITAL_FIELD,
            estimate_months_per_presentation=settings.BAGRUT_ESTIMATE_MONTHS_PER_PRESENTATION,
        )

    def category(self, key: str) -> GradingCategory:
        for category in self.categories:
            if category.key == key:
                return category
        raise KeyError(key)

    def grade_level(self, score: float) -> str:
        """Render a 0-100 score as its descriptive band."""
        for band in self.grade_bands:
            if score >= band.min_score:
                return band.label
        return self.grade_bands[-1].label

    def letter_grade(self, score: float) -> LetterGrade:
        for grade in self.letter_grades:
            if score >= grade.min_score:
                return grade
        return self.letter_grades[-1]

    def presentation_weight(self, number: int) -> float:
        return self.presentation_weights.get(number, 1 / self.presentations_per_record)

    def required_pieces(self, recital_units: int | None) -> int:
        """Program size required for the given number of units."""
        return 5 if recital_units == 5 else 3


@lru_cache
def get_bagrut_tables() -> BagrutTables:
    """Get cached grading tables built from application settings."""
    return BagrutTables.from_settings(get_settings())
