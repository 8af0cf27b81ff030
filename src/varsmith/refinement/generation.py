"""Bounded, self-correcting generation loop.

Small explicit state machine::

    ATTEMPTING --candidate--> VALIDATING --passed--> SUCCEEDED
        ^                          |
        +------- failed, budget left
                                   |
                   failed, budget spent --> EXHAUSTED

Oracle errors, timeouts and unparseable candidates are failed attempts
too. EXHAUSTED restores the session snapshot and raises
``GenerationExhaustedError`` carrying every attempt's errors.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from varsmith.config import Settings
from varsmith.constants import AttemptState, Confidence
from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.observability.emitters import (
    emit_generation_attempt,
    emit_rollback,
)
from varsmith.oracle.extraction import extract_json_object
from varsmith.oracle.protocols import GenerativeOracle
from varsmith.prompts import GENERATION_PROMPT, build_generation_prompt
from varsmith.refinement.rollback import RollbackManager
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    GenerationPlan,
    IterationRecord,
    ValidationResult,
)
from varsmith.refinement.session import Session
from varsmith.refinement.validator import ValidationContext, Validator
from varsmith.resilience.errors import (
    GenerationExhaustedError,
    classify_error,
    describe_failure,
)

logger = logging.getLogger(__name__)

_CSS_KEYS = ("appearance_rules", "appearanceRules", "css")
_JS_KEYS = ("behavior_instructions", "behaviorInstructions", "js")


def confidence_for_attempt(attempt: int) -> int:
    """95 on first pass, 5 less per correction, never below 50."""
    return max(
        Confidence.MIN_REPORTED,
        Confidence.FIRST_PASS - Confidence.RETRY_STEP * (attempt - 1),
    )


def _first_string(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None


def parse_candidate(raw: str) -> tuple[Artifact | None, str | None]:
    """Leniently pull a candidate artifact out of oracle text.

    Returns ``(artifact, None)`` or ``(None, reason)``.
    """
    extraction = extract_json_object(raw)
    if not extraction.ok or extraction.value is None:
        return None, f"unparseable candidate: {extraction.error}"

    data = extraction.value
    variations = data.get("variations")
    if isinstance(variations, list) and variations:
        first = variations[0]
        if isinstance(first, dict):
            data = {**data, **first}

    css = _first_string(data, _CSS_KEYS)
    js = _first_string(data, _JS_KEYS)
    if css is None and js is None:
        return None, (
            "unparseable candidate: no appearance_rules or "
            "behavior_instructions in response"
        )
    candidate = Artifact(
        appearance_rules=css or "", behavior_instructions=js or ""
    )
    return candidate, None


@dataclass
class GenerationOutcome:
    """Successful run of the loop."""

    candidate: Artifact
    validation: ValidationResult
    confidence: int
    attempts: int
    errors: list[str] = field(default_factory=list)
    records: list[IterationRecord] = field(default_factory=list)

    @property
    def notes(self) -> list[str]:
        if self.attempts > 1:
            return [f"Accepted after {self.attempts} attempts"]
        return []


@dataclass
class _Run:
    """Mutable bookkeeping for one run of the loop."""

    state: AttemptState = AttemptState.ATTEMPTING
    attempt: int = 0
    feedback: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    records: list[IterationRecord] = field(default_factory=list)


class GenerationLoop:
    """Oracle + validator, retried with feedback up to the budget."""

    def __init__(
        self,
        oracle: GenerativeOracle,
        validator: Validator,
        rollback: RollbackManager,
        settings: Settings | None = None,
        dispatcher: TraceDispatcher | None = None,
    ) -> None:
        self._oracle = oracle
        self._validator = validator
        self._rollback = rollback
        self._settings = settings or Settings()
        self._dispatcher = dispatcher or TraceDispatcher()

    @property
    def max_attempts(self) -> int:
        return self._settings.max_generation_attempts

    async def run(
        self,
        session: Session,
        plan: GenerationPlan,
        request: ChangeRequest,
        trace_id: str = "",
    ) -> GenerationOutcome:
        context = ValidationContext.from_plan(plan, request)
        run = _Run()

        while run.state is not AttemptState.EXHAUSTED:
            run.attempt += 1
            run.state = AttemptState.ATTEMPTING
            candidate = await self._attempt(run, plan, request)
            if candidate is None:
                continue

            run.state = AttemptState.VALIDATING
            result = await self._validate(run, candidate, context, trace_id)
            if result.passed:
                run.state = AttemptState.SUCCEEDED
                logger.info(
                    "event=generation_succeeded session=%s attempts=%d",
                    session.session_id,
                    run.attempt,
                )
                return GenerationOutcome(
                    candidate=candidate,
                    validation=result,
                    confidence=confidence_for_attempt(run.attempt),
                    attempts=run.attempt,
                    errors=run.errors,
                    records=run.records,
                )

        report = self._rollback.restore(
            session, reason="generation attempts exhausted"
        )
        await emit_rollback(
            self._dispatcher,
            trace_id,
            session.session_id,
            report.restored_version,
            report.reason,
        )
        raise GenerationExhaustedError(run.attempt, run.errors)

    def _after_failure(self, run: _Run) -> None:
        run.state = (
            AttemptState.ATTEMPTING
            if run.attempt < self.max_attempts
            else AttemptState.EXHAUSTED
        )

    async def _attempt(
        self, run: _Run, plan: GenerationPlan, request: ChangeRequest
    ) -> Artifact | None:
        prompt = build_generation_prompt(plan, request, run.feedback)
        context: dict[str, Any] = {
            "system": GENERATION_PROMPT,
            "task": "generate_variation",
            "attempt": run.attempt,
            "strategy": str(plan.strategy),
        }
        try:
            raw = await asyncio.wait_for(
                self._oracle.generate(prompt, context),
                timeout=self._settings.oracle_timeout_seconds,
            )
        except Exception as exc:
            logger.warning(
                "event=generation_oracle_failed attempt=%d error_class=%s",
                run.attempt,
                classify_error(exc).value,
            )
            self._fail(run, describe_failure(exc))
            return None

        candidate, error = parse_candidate(raw)
        if candidate is None:
            logger.warning(
                "event=generation_parse_failed attempt=%d response_len=%d",
                run.attempt,
                len(raw or ""),
            )
            self._fail(run, error or "unparseable candidate")
        return candidate

    def _fail(self, run: _Run, message: str) -> None:
        run.errors.append(f"Attempt {run.attempt}: {message}")
        run.feedback.append(message)
        run.records.append(
            IterationRecord(attempt_number=run.attempt, error=message)
        )
        self._after_failure(run)

    async def _validate(
        self,
        run: _Run,
        candidate: Artifact,
        context: ValidationContext,
        trace_id: str,
    ) -> ValidationResult:
        result = self._validator.validate(candidate, context)
        run.records.append(
            IterationRecord(
                attempt_number=run.attempt,
                candidate_artifact=candidate,
                validation_result=result,
            )
        )
        await emit_generation_attempt(
            self._dispatcher,
            trace_id,
            run.attempt,
            result.passed,
            len(result.errors),
        )
        if result.passed:
            return result

        summary = result.error_summary()
        logger.info(
            "event=validation_failed attempt=%d errors=%d categories=%s",
            run.attempt,
            len(summary),
            ",".join(sorted(result.failed_categories)),
        )
        run.errors.extend(f"Attempt {run.attempt}: {line}" for line in summary)
        run.feedback.extend(summary)
        self._after_failure(run)
        return result
