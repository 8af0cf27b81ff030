"""Pydantic models shared by the refinement pipeline."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from varsmith.constants import (
    AssessmentClass,
    AssessmentOutcome,
    CheckCategory,
    Confidence,
    DefectSeverity,
    IntentType,
    RefinementStatus,
    Severity,
    Strategy,
)


def _now() -> datetime:
    return datetime.now(UTC)


class Artifact(BaseModel):
    """Accepted pair of appearance rules (CSS) and behavior instructions (JS).

    Never edited in place; a session replaces it wholesale on acceptance.
    """

    model_config = ConfigDict(frozen=True)

    appearance_rules: str = ""
    behavior_instructions: str = ""
    version: int = 0
    accepted_at: datetime | None = None

    @classmethod
    def empty(cls) -> Artifact:
        """Version-0 baseline: nothing applied to the surface yet."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (
            self.appearance_rules.strip()
            or self.behavior_instructions.strip()
        )

    @property
    def size(self) -> int:
        return len(self.appearance_rules) + len(self.behavior_instructions)

    def content_equals(self, other: Artifact) -> bool:
        return (
            self.appearance_rules == other.appearance_rules
            and self.behavior_instructions == other.behavior_instructions
        )

    def accepted_as(self, version: int) -> Artifact:
        """Return a copy stamped as the given accepted version."""
        return self.model_copy(
            update={"version": version, "accepted_at": _now()}
        )


class ChangeRequest(BaseModel):
    """A user request, or a fix request derived from one.

    Derived requests keep the user's words in ``origin_text``.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    attached_target_descriptor: str | None = None
    origin_text: str | None = None
    timestamp: datetime = Field(default_factory=_now)

    @property
    def intent_text(self) -> str:
        """The words the user actually wrote."""
        if self.origin_text is not None:
            return self.origin_text
        return self.text


class IntentClassification(BaseModel):
    """Classifier output. AMBIGUOUS always carries >= 2 interpretations."""

    intent: IntentType
    confidence: int = Field(ge=Confidence.FLOOR, le=Confidence.CEILING)
    rationale: str = ""
    candidate_interpretations: list[str] = Field(default_factory=list)
    referenced_identifiers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _ambiguous_needs_options(self) -> IntentClassification:
        if (
            self.intent is IntentType.AMBIGUOUS
            and len(self.candidate_interpretations) < 2
        ):
            raise ValueError(
                "AMBIGUOUS classification requires at least two "
                "candidate interpretations"
            )
        return self


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: CheckCategory | None = None
    code: str
    message: str
    identifier: str | None = None
    suggestion: str | None = None
    line: int | None = None
    column: int | None = None

    def describe(self) -> str:
        text = self.message
        if self.line is not None:
            text += f" (line {self.line}, column {self.column})"
        if self.suggestion:
            text += f"; {self.suggestion}"
        return text


class ValidationResult(BaseModel):
    passed: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    confidence: int = Confidence.CEILING

    @property
    def failed_categories(self) -> set[CheckCategory]:
        return {e.category for e in self.errors if e.category is not None}

    def error_summary(self) -> list[str]:
        """Error lines in the form fed back to the next attempt."""
        return [
            f"[{e.category or 'error'}] {e.describe()}" for e in self.errors
        ]


class Defect(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: DefectSeverity
    type: str
    description: str
    suggested_fix: str = ""


class AssessmentVerdict(BaseModel):
    """Mapped qualitative-oracle answer."""

    model_config = ConfigDict(populate_by_name=True)

    classification: AssessmentClass
    defects: list[Defect] = Field(default_factory=list)
    should_continue: bool = Field(default=True, alias="continue")
    reasoning: str = ""


class SurfaceSnapshot(BaseModel):
    """Opaque capture of the observable surface plus per-kind counts."""

    model_config = ConfigDict(frozen=True)

    image: bytes | None = None
    entity_counts: dict[str, int] = Field(default_factory=dict)

    def looks_identical(self, other: SurfaceSnapshot) -> bool:
        """True only when both images exist and match, counts included."""
        return (
            self.image is not None
            and self.image == other.image
            and self.entity_counts == other.entity_counts
        )


class IndexEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    confidence: float = 1.0
    kind: str | None = None
    description: str = ""


class IterationRecord(BaseModel):
    """One generation attempt or assessment iteration within a request."""

    attempt_number: int
    candidate_artifact: Artifact | None = None
    validation_result: ValidationResult | None = None
    defects: list[Defect] = Field(default_factory=list)
    error: str | None = None
    timestamp: datetime = Field(default_factory=_now)


class Snapshot(BaseModel):
    """Last accepted artifact and the identifiers it was validated against."""

    model_config = ConfigDict(frozen=True)

    artifact: Artifact
    identifier_index_view: tuple[str, ...] = ()


class QualityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    size: int
    duplication_ratio: float
    complexity_score: int
    nesting_depth: int
    identifier_count: int
    overall_score: int


class QualityIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: str
    severity: Severity
    message: str


class QualityReport(BaseModel):
    metrics: QualityMetrics
    status: str
    issues: list[QualityIssue] = Field(default_factory=list)
    degradations: list[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degradations)


class Clarification(BaseModel):
    question: str
    options: list[str]


class GenerationPlan(BaseModel):
    """Inputs the generation loop needs, derived from the chosen strategy."""

    strategy: Strategy
    base_artifact: Artifact
    reference_artifact: Artifact
    preserved_identifiers: list[str] = Field(default_factory=list)
    fresh_candidates: list[IndexEntry] = Field(default_factory=list)

    @property
    def fresh_identifiers(self) -> set[str]:
        return {c.identifier for c in self.fresh_candidates}


class RefinementResult(BaseModel):
    """Caller-facing outcome of one submitted change request."""

    status: RefinementStatus
    artifact: Artifact | None = None
    confidence: int | None = None
    question: str | None = None
    options: list[str] = Field(default_factory=list)
    quality_report: QualityReport | None = None
    errors: list[str] = Field(default_factory=list)
    attempts: int = 0
    notes: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    intent: IntentType | None = None
    strategy: Strategy | None = None
    assessment_outcome: AssessmentOutcome | None = None
