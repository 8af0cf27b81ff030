"""Typed application state for the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field

from varsmith.config import Settings
from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.refinement.engine import RefinementEngine
from varsmith.refinement.session import Session


@dataclass
class AppState:
    """Typed container for app.state attributes.

    Sessions live in memory only; a restart drops them.
    """

    settings: Settings
    dispatcher: TraceDispatcher
    engine: RefinementEngine
    sessions: dict[str, Session] = field(
        default_factory=lambda: dict[str, Session]()
    )
