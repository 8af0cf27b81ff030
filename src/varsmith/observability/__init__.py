"""Observability layer -- event dispatcher + pluggable handlers."""

from __future__ import annotations

from varsmith.config import Settings
from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.observability.events import (
    TraceCategory,
    TraceEvent,
    TraceEventType,
)
from varsmith.observability.handlers.console import (
    ConsoleTraceHandler,
)

__all__ = [
    "TraceCategory",
    "TraceDispatcher",
    "TraceEvent",
    "TraceEventType",
    "initialize_tracing",
]


def initialize_tracing(settings: Settings) -> TraceDispatcher:
    """Create dispatcher and register handlers based on settings."""
    dispatcher = TraceDispatcher()

    if settings.trace_enabled:
        dispatcher.register(ConsoleTraceHandler())

    return dispatcher
