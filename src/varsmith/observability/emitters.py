"""Typed convenience functions for emitting trace events."""

from __future__ import annotations

from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.observability.events import TraceCategory, TraceEvent


async def emit_refinement_start(
    dispatcher: TraceDispatcher,
    trace_id: str,
    session_id: str,
    artifact_version: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="refinement_start",
            trace_id=trace_id,
            category="refinement",
            data={
                "session_id": session_id,
                "artifact_version": artifact_version,
            },
        )
    )


async def emit_refinement_end(
    dispatcher: TraceDispatcher,
    trace_id: str,
    status: str,
    duration_ms: float,
    attempts: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="refinement_end",
            trace_id=trace_id,
            category="refinement",
            data={
                "status": status,
                "duration_ms": duration_ms,
                "attempts": attempts,
            },
        )
    )


async def emit_classification(
    dispatcher: TraceDispatcher,
    trace_id: str,
    intent: str,
    confidence: int,
    strategy: str,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="classification",
            trace_id=trace_id,
            category="classifier",
            data={
                "intent": intent,
                "confidence": confidence,
                "strategy": strategy,
            },
        )
    )


async def emit_generation_attempt(
    dispatcher: TraceDispatcher,
    trace_id: str,
    attempt: int,
    valid: bool,
    error_count: int,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="generation_attempt",
            trace_id=trace_id,
            category="generation",
            data={
                "attempt": attempt,
                "valid": valid,
                "error_count": error_count,
            },
        )
    )


async def emit_assessment_iteration(
    dispatcher: TraceDispatcher,
    trace_id: str,
    iteration: int,
    classification: str,
    defect_count: int,
    repeated: bool,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="assessment_iteration",
            trace_id=trace_id,
            category="assessment",
            data={
                "iteration": iteration,
                "classification": classification,
                "defect_count": defect_count,
                "repeated": repeated,
            },
        )
    )


async def emit_rollback(
    dispatcher: TraceDispatcher,
    trace_id: str,
    session_id: str,
    restored_version: int,
    reason: str,
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="rollback",
            trace_id=trace_id,
            category="rollback",
            data={
                "session_id": session_id,
                "restored_version": restored_version,
                "reason": reason,
            },
        )
    )


async def emit_error(
    dispatcher: TraceDispatcher,
    trace_id: str,
    component: str,
    message: str,
    category: TraceCategory = "refinement",
) -> None:
    await dispatcher.emit(
        TraceEvent(
            type="error",
            trace_id=trace_id,
            category=category,
            data={
                "component": component,
                "message": message,
            },
        )
    )
