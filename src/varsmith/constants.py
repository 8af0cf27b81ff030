"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON payloads,
log lines, API responses) works unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class IntentType(StrEnum):
    """Closed set of change-request intents."""

    REFINEMENT = "REFINEMENT"
    NEW_FEATURE = "NEW_FEATURE"
    COURSE_REVERSAL = "COURSE_REVERSAL"
    AMBIGUOUS = "AMBIGUOUS"


class Strategy(StrEnum):
    """Identifier-handling policy chosen for a change request."""

    PRESERVE_IDENTIFIERS = "PRESERVE_IDENTIFIERS"
    SEARCH_INDEX = "SEARCH_INDEX"
    FULL_REWRITE = "FULL_REWRITE"
    ASK_USER = "ASK_USER"


class RefinementStatus(StrEnum):
    """Caller-facing status of a submitted change request."""

    ACCEPTED = "ACCEPTED"
    NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"
    REJECTED = "REJECTED"


class AttemptState(StrEnum):
    """States of the generation attempt state machine."""

    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class AssessmentClass(StrEnum):
    """Qualitative verdicts from the assessment oracle.

    UNKNOWN absorbs any string the oracle invents.
    """

    PASS = "PASS"
    GOAL_NOT_MET = "GOAL_NOT_MET"
    CRITICAL_DEFECT = "CRITICAL_DEFECT"
    MAJOR_DEFECT = "MAJOR_DEFECT"
    UNKNOWN = "UNKNOWN"


class AssessmentOutcome(StrEnum):
    """Mutually exclusive termination outcomes of the assessment loop."""

    PASS = "PASS"
    STOPPED_REPEATED_DEFECT = "STOPPED_REPEATED_DEFECT"
    STOPPED_MAX_ITERATIONS = "STOPPED_MAX_ITERATIONS"
    STOPPED_CRITICAL_UNRESOLVED = "STOPPED_CRITICAL_UNRESOLVED"


class DefectSeverity(StrEnum):
    """Severity of a visual or pre-check defect."""

    CRITICAL = "critical"
    MAJOR = "major"


class CheckCategory(StrEnum):
    """Validator check categories (each carries its own penalty)."""

    IDENTIFIER = "identifier_existence"
    SYNTAX = "syntax"
    REGRESSION = "non_regression"
    DUPLICATION = "duplication"


class Severity(StrEnum):
    """Severity levels for validation and quality issues."""

    ERROR = "error"
    WARNING = "warning"
    MAJOR = "major"
    MINOR = "minor"


class BusyPolicy(StrEnum):
    """What to do when a session already has a refinement in flight."""

    REJECT = "reject"
    QUEUE = "queue"


# ── Confidence ───────────────────────────────────────────


class Confidence:
    """Named confidence values on the 0..100 scale."""

    CEILING = 100
    FLOOR = 0
    FIRST_PASS = 95
    RETRY_STEP = 5
    MIN_REPORTED = 50
    CLARIFY_BELOW = 50


# Fixed validator penalties per triggered category
VALIDATION_PENALTIES: dict[CheckCategory, int] = {
    CheckCategory.IDENTIFIER: 30,
    CheckCategory.SYNTAX: 40,
    CheckCategory.REGRESSION: 40,
    CheckCategory.DUPLICATION: 20,
}
WARNING_PENALTY = 5

# ── Quality Thresholds ───────────────────────────────────

QUALITY_SIZE_LIMIT = 5000
QUALITY_DUPLICATION_LIMIT = 0.30
QUALITY_COMPLEXITY_LIMIT = 50
QUALITY_NESTING_LIMIT = 5
QUALITY_IDENTIFIER_LIMIT = 20
SHINGLE_WIDTH = 5

# Metric -> growth ratio that counts as degradation
DEGRADATION_RATIOS: dict[str, float] = {
    "size": 1.5,
    "duplication_ratio": 1.3,
    "complexity_score": 1.4,
    "nesting_depth": 1.2,
}

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 4096

# ── Misc ─────────────────────────────────────────────────

HISTORY_SNIPPET_CHARS = 100
PROMPT_IDENTIFIER_LIMIT = 50
ERROR_TRUNCATION_CHARS = 200
ID_HEX_LENGTH = 12
