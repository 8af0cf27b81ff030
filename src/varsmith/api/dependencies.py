"""FastAPI dependency injection for engine and session access."""

from __future__ import annotations

from fastapi import Request

from varsmith.api.app_state import AppState


def get_app_state(request: Request) -> AppState:
    """Get the typed AppState from app.state."""
    return request.app.state.typed  # type: ignore[no-any-return]
