"""Structural validator for candidate artifacts.

Runs four independent checks and aggregates every triggered error, so a
single round-trip gives the generator all the feedback at once:

1. identifier existence against the identifier index
2. syntactic well-formedness (tree-sitter CSS / JavaScript grammars)
3. non-regression (behavior silently deleted)
4. duplication risk (selector re-applied without an idempotency guard)
"""

from __future__ import annotations

import difflib
import logging
import re
from collections import Counter
from dataclasses import dataclass, field

from varsmith.config import Settings
from varsmith.constants import (
    VALIDATION_PENALTIES,
    WARNING_PENALTY,
    CheckCategory,
    Confidence,
    Strategy,
)
from varsmith.oracle.protocols import IdentifierIndex
from varsmith.refinement.identifiers import (
    artifact_identifiers,
    behavior_identifiers,
    created_identifiers,
    find_selector_references,
    is_created_identifier,
)
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    GenerationPlan,
    ValidationIssue,
    ValidationResult,
)
from varsmith.refinement.syntax import check_appearance, check_behavior

logger = logging.getLogger(__name__)

DELETION_PATTERN = re.compile(
    r"\b(remov\w*|delet\w*|clear\w*|drop\w*|get rid of|undo\w*|"
    r"revert\w*|strip\w*)\b",
    re.IGNORECASE,
)
_APPLIED_MARKER = re.compile(r"\bdataset\.\w+|data-[\w-]+|\bhasAttribute\s*\(")
_IF_OPEN = re.compile(r"\bif\s*\(")


@dataclass(frozen=True)
class ValidationContext:
    """What a candidate is validated against."""

    strategy: Strategy
    request_text: str
    reference_artifact: Artifact
    fresh_identifiers: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_plan(
        cls, plan: GenerationPlan, request: ChangeRequest
    ) -> ValidationContext:
        return cls(
            strategy=plan.strategy,
            request_text=request.intent_text,
            reference_artifact=plan.reference_artifact,
            fresh_identifiers=frozenset(plan.fresh_identifiers),
        )


def requests_deletion(text: str) -> bool:
    return DELETION_PATTERN.search(text) is not None


def _if_conditions(source: str) -> list[str]:
    """Text inside the parentheses of every ``if (...)``."""
    conditions: list[str] = []
    for match in _IF_OPEN.finditer(source):
        depth = 1
        pos = match.end()
        while pos < len(source) and depth:
            if source[pos] == "(":
                depth += 1
            elif source[pos] == ")":
                depth -= 1
            pos += 1
        conditions.append(source[match.end() : pos - 1])
    return conditions


def _closest_known(identifier: str, index: IdentifierIndex) -> str | None:
    candidates = [entry.identifier for entry in index.query(identifier)]
    close = difflib.get_close_matches(identifier, candidates, n=1, cutoff=0.5)
    if close:
        return close[0]
    return candidates[0] if candidates else None


def _missing(
    identifier: str, reason: str, suggestion: str | None
) -> ValidationIssue:
    return ValidationIssue(
        category=CheckCategory.IDENTIFIER,
        code="missing_identifier",
        message=f"Selector '{identifier}' is {reason}",
        identifier=identifier,
        suggestion=f"did you mean '{suggestion}'?" if suggestion else None,
    )


class Validator:
    """Aggregating validator; never raises for a bad candidate."""

    def __init__(
        self,
        index: IdentifierIndex | None,
        settings: Settings | None = None,
    ) -> None:
        self._index = index
        self._settings = settings or Settings()

    def validate(
        self, candidate: Artifact, context: ValidationContext
    ) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        self._check_identifiers(candidate, context, errors, warnings)
        self._check_syntax(candidate, errors)
        self._check_regression(candidate, context, errors)
        self._check_duplication(candidate, errors)
        self._check_shared(candidate, context, warnings)

        confidence = Confidence.CEILING
        for category in {e.category for e in errors if e.category}:
            confidence -= VALIDATION_PENALTIES[category]
        confidence -= WARNING_PENALTY * len(warnings)

        result = ValidationResult(
            passed=not errors,
            errors=errors,
            warnings=warnings,
            confidence=max(Confidence.FLOOR, confidence),
        )
        logger.debug(
            "event=validation passed=%s errors=%d warnings=%d confidence=%d",
            result.passed,
            len(errors),
            len(warnings),
            result.confidence,
        )
        return result

    # ── 1. identifier existence ──────────────────────────

    def _check_identifiers(
        self,
        candidate: Artifact,
        context: ValidationContext,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        behavior = candidate.behavior_instructions
        referenced = behavior_identifiers(behavior)
        if not referenced:
            return
        if self._index is None:
            warnings.append(
                ValidationIssue(
                    code="index_unavailable",
                    message=(
                        "No identifier index available; "
                        f"{len(referenced)} selector(s) not verified"
                    ),
                )
            )
            return

        created = created_identifiers(behavior)
        existing = set(
            behavior_identifiers(
                context.reference_artifact.behavior_instructions
            )
        )
        for identifier in referenced:
            if is_created_identifier(identifier, created):
                continue
            if (
                context.strategy is Strategy.SEARCH_INDEX
                and identifier not in existing
            ):
                if identifier not in context.fresh_identifiers:
                    fresh = sorted(context.fresh_identifiers)
                    close = difflib.get_close_matches(identifier, fresh, n=1)
                    errors.append(
                        _missing(
                            identifier,
                            "not among the fresh index candidates",
                            close[0] if close else None,
                        )
                    )
                continue
            results = self._index.query(identifier)
            if not any(entry.identifier == identifier for entry in results):
                errors.append(
                    _missing(
                        identifier,
                        "not found on the page",
                        _closest_known(identifier, self._index),
                    )
                )

    # ── 2. syntax ────────────────────────────────────────

    def _check_syntax(
        self, candidate: Artifact, errors: list[ValidationIssue]
    ) -> None:
        for issue in (
            check_appearance(candidate.appearance_rules),
            check_behavior(candidate.behavior_instructions),
        ):
            if issue is None:
                continue
            errors.append(
                ValidationIssue(
                    category=CheckCategory.SYNTAX,
                    code=f"{issue.language}_syntax",
                    message=issue.message,
                    line=issue.line,
                    column=issue.column,
                )
            )

    # ── 3. non-regression ────────────────────────────────

    def _check_regression(
        self,
        candidate: Artifact,
        context: ValidationContext,
        errors: list[ValidationIssue],
    ) -> None:
        before = len(context.reference_artifact.behavior_instructions.strip())
        if before <= self._settings.regression_min_size:
            return
        after = len(candidate.behavior_instructions.strip())
        if after and after >= before * self._settings.regression_ratio:
            return
        if requests_deletion(context.request_text):
            return
        errors.append(
            ValidationIssue(
                category=CheckCategory.REGRESSION,
                code="unintended_removal",
                message=(
                    "Unintended removal: behavior instructions shrank from "
                    f"{before} to {after} characters but the request does "
                    "not ask to remove anything"
                ),
                suggestion="keep the existing behavior and add to it",
            )
        )

    # ── 4. duplication ───────────────────────────────────

    def _check_duplication(
        self, candidate: Artifact, errors: list[ValidationIssue]
    ) -> None:
        behavior = candidate.behavior_instructions
        counts = Counter(
            ref.identifier for ref in find_selector_references(behavior)
        )
        repeated = [ident for ident, n in counts.items() if n > 1]
        if not repeated or _APPLIED_MARKER.search(behavior):
            return

        conditions = _if_conditions(behavior)
        for identifier in repeated:
            if any(identifier in cond for cond in conditions):
                continue
            errors.append(
                ValidationIssue(
                    category=CheckCategory.DUPLICATION,
                    code="duplication_risk",
                    message=(
                        f"Selector '{identifier}' is modified in "
                        f"{counts[identifier]} places without an "
                        "idempotency guard"
                    ),
                    identifier=identifier,
                    suggestion=(
                        "guard with if (el.dataset.varApplied) return; "
                        "el.dataset.varApplied = '1';"
                    ),
                )
            )

    # ── warnings ─────────────────────────────────────────

    def _check_shared(
        self,
        candidate: Artifact,
        context: ValidationContext,
        warnings: list[ValidationIssue],
    ) -> None:
        if context.strategy is not Strategy.SEARCH_INDEX:
            return
        before = set(artifact_identifiers(context.reference_artifact))
        shared = [
            ident
            for ident in artifact_identifiers(candidate)
            if ident in before and ident in context.fresh_identifiers
        ]
        if shared:
            warnings.append(
                ValidationIssue(
                    code="shared_identifiers",
                    message=(
                        "New code targets selectors the current variation "
                        f"already modifies: {', '.join(shared)}"
                    ),
                )
            )
