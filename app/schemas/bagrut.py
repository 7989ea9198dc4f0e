"""Bagrut (matriculation exam) schemas.

Records arrive as camelCase JSON from the persistence layer. Attributes are
snake_case with camelCase aliases, and unknown keys are kept so a record can
be handed back without losing fields the engine does not model.
"""

import enum
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Iterator

from pydantic import AliasChoices, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.core.bagrut_tables import default_categories
from app.schemas.common import BaseSchema

CATEGORY_MAX_POINTS = {category.key: category.max_points for category in default_categories()}


# ==========================================
# Enums
# ==========================================

class RecordKind(str, enum.Enum):
    """Classification of a raw record produced by version detection."""

    LEGACY = "legacy"
    CURRENT = "current"
    MALFORMED = "malformed"


class SchemaVersion(str, enum.Enum):
    LEGACY = "legacy"
    CURRENT = "current"


class IssueType(str, enum.Enum):
    MISSING_FIELD = "missing_field"
    INVALID_STRUCTURE = "invalid_structure"
    CALCULATION_MISMATCH = "calculation_mismatch"
    DATA_LOSS_RISK = "data_loss_risk"


class IssueSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChangeType(str, enum.Enum):
    STRUCTURE = "structure"
    VALUE = "value"
    CALCULATION = "calculation"
    VALIDATION = "validation"


class PresentationStatus(str, enum.Enum):
    """Known presentation statuses. The field itself accepts any string."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    EXAMINED = "examined"
    COMPLETED = "completed"
    FAILED = "failed"


class PresentationType(str, enum.Enum):
    REGULAR = "regular"
    MAGEN = "magen"


class BagrutStatus(str, enum.Enum):
    """Lifecycle status of a whole Bagrut record."""

    NOT_ENROLLED = "not_enrolled"
    ENROLLED = "enrolled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CamelSchema(BaseSchema):
    """Schema serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _as_utc(value: Any) -> Any:
    """Coerce ISO strings, dates and naive datetimes to aware UTC datetimes."""
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# ==========================================
# Record Schemas
# ==========================================

class CategoryGrade(CamelSchema):
    """Points awarded in one detailed-grading category."""

    points: float | None = None
    max_points: int
    comments: str = ""


def _empty_category(key: str) -> Any:
    return Field(default_factory=lambda: CategoryGrade(max_points=CATEGORY_MAX_POINTS[key]))


class DetailedGrading(CamelSchema):
    """Four-category Magen Bagrut grading sheet."""

    playing_skills: CategoryGrade = _empty_category("playingSkills")
    musical_understanding: CategoryGrade = _empty_category("musicalUnderstanding")
    text_knowledge: CategoryGrade = _empty_category("textKnowledge")
    playing_by_heart: CategoryGrade = _empty_category("playingByHeart")

    @model_validator(mode="before")
    @classmethod
    def default_max_points(cls, data: Any) -> Any:
        """Fill a missing ``maxPoints`` from the category table."""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        for key, max_points in CATEGORY_MAX_POINTS.items():
            entry = data.get(key)
            if isinstance(entry, Mapping) and entry.get("maxPoints", entry.get("max_points")) is None:
                data[key] = {**entry, "maxPoints": max_points}
        return data

    def categories(self) -> Iterator[tuple[str, CategoryGrade]]:
        """Yield ``(camelCaseKey, grade)`` pairs in table order."""
        yield "playingSkills", self.playing_skills
        yield "musicalUnderstanding", self.musical_understanding
        yield "textKnowledge", self.text_knowledge
        yield "playingByHeart", self.playing_by_heart

    @property
    def total_points(self) -> float:
        return sum(grade.points or 0 for _, grade in self.categories())

    @property
    def is_scored(self) -> bool:
        return any(grade.points is not None for _, grade in self.categories())


class Presentation(CamelSchema):
    """One performance or jury sitting."""

    model_config = ConfigDict(extra="allow")

    completed: bool = False
    status: str = PresentationStatus.PENDING.value
    exam_date: datetime | None = Field(
        None,
        validation_alias=AliasChoices("examDate", "exam_date", "date"),
    )
    review: str = ""
    notes: str = ""
    recording_links: list[str] = []
    grade: float | None = None
    grade_level: str | None = None
    detailed_grading: DetailedGrading | None = None
    presentation_number: int | None = None
    type: str | None = None

    @field_validator("exam_date", mode="before")
    @classmethod
    def normalize_exam_date(cls, v: Any) -> Any:
        return _as_utc(v)

    @field_validator("review", "notes", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def total_score(self) -> float | None:
        """Presentation score, falling back to the detailed-grading sum."""
        if self.grade is not None:
            return self.grade
        if self.detailed_grading is not None and self.detailed_grading.is_scored:
            return self.detailed_grading.total_points
        return None


class ExamRecord(CamelSchema):
    """Current-schema Bagrut record for one student-instrument track."""

    model_config = ConfigDict(extra="allow")

    student_id: str | int | None = None
    teacher_id: str | int | None = None
    recital_units: int | None = None
    recital_field: str | None = None
    presentations: list[Presentation] = []
    program: list[Any] = []
    documents: list[Any] = []
    updated_at: datetime | None = None

    @field_validator("program", "documents", "presentations", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("updated_at", mode="before")
    @classmethod
    def normalize_updated_at(cls, v: Any) -> Any:
        return _as_utc(v)


# ==========================================
# Version Detection
# ==========================================

class MigrationIssue(CamelSchema):
    """Single finding reported by version detection."""

    type: IssueType
    severity: IssueSeverity
    field: str
    message: str
    auto_fixable: bool


class MigrationStatus(CamelSchema):
    """Result of classifying a raw record."""

    needs_migration: bool
    version: SchemaVersion
    kind: RecordKind
    issues: list[MigrationIssue] = []
    compatibility: int = Field(..., ge=0, le=100)


# ==========================================
# Migration
# ==========================================

class MigrationChange(CamelSchema):
    """Audit trail entry for one migration step."""

    field: str
    old_value: Any = None
    new_value: Any = None
    type: ChangeType
    description: str


class MigrationResult(CamelSchema):
    """Outcome of migrating a record to the current schema."""

    success: bool
    original_data: Any = None
    migrated_data: Any = None
    changes: list[MigrationChange] = []
    warnings: list[str] = []
    errors: list[str] = []


class StructureSummary(CamelSchema):
    has_grading_details: bool
    has_magen_bagrut: bool
    presentations_count: int
    has_recital_config: bool
    program_pieces: int


class BeforeAfter(CamelSchema):
    before: Any = None
    after: Any = None


class MigrationComparison(CamelSchema):
    """Side-by-side view of a record before and after migration."""

    structure: BeforeAfter
    calculations: BeforeAfter
    data_loss: list[str] = []
    benefits: list[str] = []
    risks: list[str] = []


# ==========================================
# Validation
# ==========================================

class ValidationMessage(CamelSchema):
    """Validation finding with the offending field path."""

    field: str
    message: str


class ValidationResult(CamelSchema):
    is_valid: bool
    errors: list[ValidationMessage] = []
    warnings: list[ValidationMessage] = []


# ==========================================
# Grading
# ==========================================

class GradeBreakdownEntry(CamelSchema):
    presentation_number: int
    score: float
    weight: float
    weighted_score: float
    type: str


class GradeCalculation(CamelSchema):
    """Weighted final grade over the valid presentations."""

    final_grade: float | None = None
    letter_grade: str | None = None
    hebrew_grade: str | None = None
    is_complete: bool = False
    presentations_used: int = 0
    breakdown: list[GradeBreakdownEntry] = []
    bonus: float = 0
    has_magen_bagrut: bool = False
    status: BagrutStatus = BagrutStatus.NOT_ENROLLED


class GradeRequest(CamelSchema):
    presentations: list[Presentation] = []


class StatusDisplayInfo(CamelSchema):
    label: str
    color: str
    is_active: bool


# ==========================================
# Progress Report
# ==========================================

class SectionError(CamelSchema):
    """Placeholder for a report section that could not be computed."""

    error: str


class ProgressOverview(CamelSchema):
    total_presentations: int
    completed_count: int
    pending_count: int
    completion_rate: float


class ProgressTimeline(CamelSchema):
    next_exam_date: datetime | None = None
    last_completed_date: datetime | None = None
    estimated_completion_date: datetime | None = None


class ProgressRequirements(CamelSchema):
    min_presentations_required: int
    min_presentations_met: bool
    eligible_for_certificate: bool


class RecommendationItem(CamelSchema):
    type: str
    category: str
    message: str
    action: str


class ProgressReport(CamelSchema):
    """Progress report; any section may be replaced by ``SectionError``.

    ``SectionError`` is tried first because every ``GradeCalculation`` field
    has a default and would accept an error payload.
    """

    overview: SectionError | ProgressOverview = Field(union_mode="left_to_right")
    grading: SectionError | GradeCalculation = Field(union_mode="left_to_right")
    timeline: SectionError | ProgressTimeline = Field(union_mode="left_to_right")
    requirements: SectionError | ProgressRequirements = Field(union_mode="left_to_right")
    recommendations: SectionError | list[RecommendationItem] = Field(
        default_factory=list, union_mode="left_to_right"
    )


# ==========================================
# Pipeline
# ==========================================

class BagrutProcessingResult(CamelSchema):
    """Detect, migrate, validate and report in one pass."""

    detection: MigrationStatus
    migration: MigrationResult | None = None
    validation: ValidationResult | None = None
    report: ProgressReport | None = None
    record: Any = None
