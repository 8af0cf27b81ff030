"""Console trace handler -- key=value log output."""

from __future__ import annotations

import logging

from varsmith.observability.events import TraceEvent

logger = logging.getLogger(__name__)


class ConsoleTraceHandler:
    """Logs trace events as key=value messages at DEBUG level."""

    @property
    def name(self) -> str:
        return "console"

    async def handle(self, event: TraceEvent) -> None:
        parts = [
            f"trace_type={event.type}",
            f"trace_id={event.trace_id}",
            f"category={event.category}",
        ]
        parts.extend(
            f"{k}={v}" for k, v in event.data.items() if v is not None
        )
        logger.debug(" ".join(parts))
