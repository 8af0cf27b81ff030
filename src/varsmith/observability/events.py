"""Typed trace events emitted while a change request is refined."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

TraceEventType = Literal[
    "refinement_start",
    "refinement_end",
    "classification",
    "generation_attempt",
    "assessment_iteration",
    "rollback",
    "error",
]

TraceCategory = Literal[
    "refinement",
    "classifier",
    "generation",
    "assessment",
    "rollback",
]


@dataclass(frozen=True)
class TraceEvent:
    """Immutable trace event emitted during a refinement."""

    type: TraceEventType
    trace_id: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )
    category: TraceCategory = "refinement"
    data: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
