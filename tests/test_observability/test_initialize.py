"""Tests for observability bootstrap."""

from __future__ import annotations

from varsmith.config import Settings
from varsmith.observability import initialize_tracing


class TestInitializeTracing:
    def test_enabled_registers_console(self) -> None:
        """Console handler is registered when tracing is on."""
        settings = Settings(trace_enabled=True)
        dispatcher = initialize_tracing(settings)
        assert dispatcher.handler_count == 1

    def test_trace_disabled_returns_empty(self) -> None:
        """Disabled tracing returns dispatcher with no handlers."""
        settings = Settings(trace_enabled=False)
        dispatcher = initialize_tracing(settings)
        assert dispatcher.handler_count == 0
