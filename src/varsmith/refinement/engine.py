"""Caller-facing refinement engine.

``submit_change_request`` runs the whole pipeline for one session:
classify -> resolve strategy -> generate and validate -> commit ->
optional visual assessment -> quality report. Only one pipeline runs
per session at a time. A REJECTED result, a cancellation or an
unexpected error all leave the session artifact exactly as it was.
Reported confidence follows the total number of generation attempts,
corrective rounds from visual assessment included.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from varsmith.config import Settings
from varsmith.constants import ID_HEX_LENGTH, RefinementStatus, Strategy
from varsmith.logger import RefinementLogger
from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.observability.emitters import (
    emit_classification,
    emit_error,
    emit_refinement_end,
    emit_refinement_start,
    emit_rollback,
)
from varsmith.oracle.protocols import (
    AssessmentOracle,
    GenerativeOracle,
    ObservableSurface,
)
from varsmith.refinement.assessment import AssessmentLoop
from varsmith.refinement.classifier import IntentClassifier
from varsmith.refinement.continuity import (
    build_clarification,
    plan_generation,
    resolve,
)
from varsmith.refinement.generation import (
    GenerationLoop,
    confidence_for_attempt,
)
from varsmith.refinement.identifiers import artifact_identifiers
from varsmith.refinement.rollback import RollbackManager
from varsmith.refinement.schemas import (
    ChangeRequest,
    IntentClassification,
    RefinementResult,
)
from varsmith.refinement.session import Session
from varsmith.refinement.validator import Validator
from varsmith.resilience.errors import (
    AssessmentError,
    GenerationExhaustedError,
)
from varsmith.resilience.session_guard import SessionGuard

logger = logging.getLogger(__name__)


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 1)


class RefinementEngine:
    """Wires the classifier, loops and rollback manager together.

    Visual assessment runs only when both an assessment oracle and an
    observable surface are supplied.
    """

    def __init__(
        self,
        oracle: GenerativeOracle,
        assessment_oracle: AssessmentOracle | None = None,
        surface: ObservableSurface | None = None,
        settings: Settings | None = None,
        dispatcher: TraceDispatcher | None = None,
        audit: RefinementLogger | None = None,
        guard: SessionGuard | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._oracle = oracle
        self._assessment_oracle = assessment_oracle
        self._surface = surface
        self._dispatcher = dispatcher or TraceDispatcher()
        self._audit = audit
        self._guard = guard or SessionGuard(self._settings.session_busy_policy)
        self._rollback = RollbackManager()
        self._classifier = IntentClassifier(oracle, self._settings)

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    @property
    def assessment_enabled(self) -> bool:
        return self._assessment_oracle is not None and self._surface is not None

    async def submit_change_request(
        self,
        session: Session,
        text: str,
        attached_target_descriptor: str | None = None,
    ) -> RefinementResult:
        """Refine the session artifact; raises SessionBusyError if busy."""
        request = ChangeRequest(
            text=text, attached_target_descriptor=attached_target_descriptor
        )
        return await self._guard.run(
            session.session_id, lambda: self._refine(session, request)
        )

    async def _refine(
        self, session: Session, request: ChangeRequest
    ) -> RefinementResult:
        request_id = uuid.uuid4().hex[:ID_HEX_LENGTH]
        entry = session.snapshot
        t0 = time.monotonic()
        await emit_refinement_start(
            self._dispatcher,
            request_id,
            session.session_id,
            session.artifact.version,
        )

        try:
            result = await self._pipeline(session, request, request_id)
        except asyncio.CancelledError:
            report = self._rollback.restore(session, "cancelled", to=entry)
            logger.warning(
                "event=refinement_cancelled session=%s request_id=%s",
                session.session_id,
                request_id,
            )
            await emit_rollback(
                self._dispatcher,
                request_id,
                session.session_id,
                report.restored_version,
                report.reason,
            )
            raise
        except Exception as exc:
            self._rollback.restore(
                session, f"pipeline error: {type(exc).__name__}", to=entry
            )
            logger.exception(
                "event=refinement_failed session=%s request_id=%s",
                session.session_id,
                request_id,
            )
            await emit_error(
                self._dispatcher, request_id, "engine", str(exc)
            )
            if self._audit:
                self._audit.log_error(request_id, "engine", str(exc))
            raise

        duration_ms = _elapsed_ms(t0)
        session.remember(f"USER: {request.text}")
        session.remember(f"ASSISTANT: {result.status} {result.intent or ''}")
        await emit_refinement_end(
            self._dispatcher,
            request_id,
            str(result.status),
            duration_ms,
            result.attempts,
        )
        if self._audit:
            self._audit.log_request(
                request_id,
                session.session_id,
                request.text,
                str(result.status),
                result.attempts,
                duration_ms,
            )
        logger.info(
            "event=refinement_complete session=%s status=%s attempts=%d "
            "duration_ms=%.1f",
            session.session_id,
            result.status,
            result.attempts,
            duration_ms,
        )
        return result

    def _stage(
        self,
        request_id: str,
        name: str,
        t0: float,
        status: str,
        error: str | None = None,
    ) -> None:
        if self._audit:
            self._audit.log_stage(
                request_id, name, status, _elapsed_ms(t0), error
            )

    async def _classify(
        self, session: Session, request: ChangeRequest, request_id: str
    ) -> tuple[IntentClassification, Strategy]:
        t0 = time.monotonic()
        classification = await self._classifier.classify(
            request, session.artifact, list(session.history)
        )
        strategy = resolve(classification)
        self._stage(request_id, "classify", t0, str(classification.intent))
        await emit_classification(
            self._dispatcher,
            request_id,
            str(classification.intent),
            classification.confidence,
            str(strategy),
        )
        return classification, strategy

    async def _pipeline(
        self, session: Session, request: ChangeRequest, request_id: str
    ) -> RefinementResult:
        classification, strategy = await self._classify(
            session, request, request_id
        )
        if strategy is Strategy.ASK_USER:
            clarification = build_clarification(classification)
            return RefinementResult(
                status=RefinementStatus.NEEDS_CLARIFICATION,
                question=clarification.question,
                options=clarification.options,
                intent=classification.intent,
                strategy=strategy,
                notes=[classification.rationale] if classification.rationale else [],
            )

        plan = plan_generation(
            strategy, request, session.artifact, session.baseline, session.index
        )
        generation = GenerationLoop(
            self._oracle,
            Validator(session.index, self._settings),
            self._rollback,
            self._settings,
            self._dispatcher,
        )

        t0 = time.monotonic()
        try:
            outcome = await generation.run(session, plan, request, request_id)
        except GenerationExhaustedError as exc:
            self._stage(request_id, "generate", t0, "exhausted", str(exc))
            return RefinementResult(
                status=RefinementStatus.REJECTED,
                errors=exc.errors,
                attempts=exc.attempts,
                intent=classification.intent,
                strategy=strategy,
                notes=[
                    f"Rejected after {exc.attempts} attempts; "
                    f"version {session.artifact.version} kept"
                ],
            )
        self._stage(request_id, "generate", t0, "succeeded")

        accepted = self._rollback.commit(
            session, outcome.candidate, artifact_identifiers(outcome.candidate)
        )
        notes = list(outcome.notes)
        warnings = [w.message for w in outcome.validation.warnings]
        attempts = outcome.attempts
        assessment_outcome = None

        if self.assessment_enabled:
            t0 = time.monotonic()
            assessment = AssessmentLoop(
                self._assessment_oracle,  # type: ignore[arg-type]
                self._surface,  # type: ignore[arg-type]
                generation,
                self._rollback,
                self._settings,
                self._dispatcher,
            )
            try:
                report = await assessment.run(
                    session, request, accepted, request_id
                )
            except AssessmentError as exc:
                self._stage(request_id, "assess", t0, "skipped", str(exc))
                logger.warning(
                    "event=assessment_failed_open session=%s error=%s",
                    session.session_id,
                    exc,
                )
                warnings.append(
                    f"Visual assessment skipped ({exc}); returning the "
                    "structurally validated version"
                )
                accepted = session.artifact
            else:
                self._stage(request_id, "assess", t0, str(report.outcome))
                accepted = report.artifact
                assessment_outcome = report.outcome
                attempts += report.generation_attempts
                warnings.extend(report.warnings)
                notes.append(
                    f"Visual assessment {report.outcome} after "
                    f"{report.iterations} iteration(s)"
                )

        quality_report = session.quality.record(accepted)
        warnings.extend(quality_report.degradations)

        return RefinementResult(
            status=RefinementStatus.ACCEPTED,
            artifact=accepted,
            confidence=confidence_for_attempt(attempts),
            quality_report=quality_report,
            attempts=attempts,
            notes=notes,
            warnings=warnings,
            intent=classification.intent,
            strategy=strategy,
            assessment_outcome=assessment_outcome,
        )
