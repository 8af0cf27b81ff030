"""Refinement session routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from varsmith.api.app_state import AppState
from varsmith.api.dependencies import get_app_state
from varsmith.api.schemas import APIResponse, ChangeRequestBody, SessionCreate
from varsmith.refinement.index import StaticIdentifierIndex
from varsmith.refinement.schemas import Artifact
from varsmith.refinement.session import Session
from varsmith.resilience.errors import SessionBusyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=APIResponse(success=False, error=message).model_dump(),
    )


def _session_payload(session: Session, busy: bool) -> dict[str, Any]:
    latest = session.quality.latest
    return {
        "session_id": session.session_id,
        "artifact": session.artifact.model_dump(mode="json"),
        "baseline_version": session.baseline.version,
        "busy": busy,
        "history": list(session.history),
        "quality": latest.model_dump() if latest else None,
        "created_at": session.created_at.isoformat(),
    }


@router.get("")
async def list_sessions(
    state: AppState = Depends(get_app_state),
) -> APIResponse:
    """List in-memory sessions."""
    guard = state.engine.guard
    return APIResponse(
        success=True,
        data=[
            _session_payload(s, guard.is_busy(s.session_id))
            for s in state.sessions.values()
        ],
    )


@router.post("")
async def create_session(
    body: SessionCreate,
    state: AppState = Depends(get_app_state),
) -> APIResponse:
    """Start a session from a baseline artifact and optional index."""
    baseline = Artifact(
        appearance_rules=body.appearance_rules,
        behavior_instructions=body.behavior_instructions,
    )
    index = (
        StaticIdentifierIndex(body.index) if body.index is not None else None
    )
    session = Session.create(baseline, index, state.settings)
    state.sessions[session.session_id] = session
    logger.info(
        "event=session_created session=%s index_entries=%d",
        session.session_id,
        len(index) if index is not None else 0,
    )
    return APIResponse(success=True, data=_session_payload(session, False))


@router.get("/{session_id}", response_model=None)
async def get_session(
    session_id: str,
    state: AppState = Depends(get_app_state),
) -> APIResponse | JSONResponse:
    """Current artifact and bookkeeping for one session."""
    session = state.sessions.get(session_id)
    if session is None:
        return _error(404, "Session not found")
    return APIResponse(
        success=True,
        data=_session_payload(session, state.engine.guard.is_busy(session_id)),
    )


@router.delete("/{session_id}", response_model=None)
async def delete_session(
    session_id: str,
    state: AppState = Depends(get_app_state),
) -> APIResponse | JSONResponse:
    """Drop a session that has no refinement in flight."""
    if session_id not in state.sessions:
        return _error(404, "Session not found")
    if state.engine.guard.is_busy(session_id):
        return _error(409, "Session has a refinement in flight")
    del state.sessions[session_id]
    return APIResponse(success=True)


@router.post("/{session_id}/change-requests", response_model=None)
async def submit_change_request(
    session_id: str,
    body: ChangeRequestBody,
    state: AppState = Depends(get_app_state),
) -> APIResponse | JSONResponse:
    """Run one change request through the refinement pipeline."""
    session = state.sessions.get(session_id)
    if session is None:
        return _error(404, "Session not found")
    try:
        result = await state.engine.submit_change_request(
            session, body.text, body.attached_target_descriptor
        )
    except SessionBusyError as exc:
        return _error(409, str(exc))
    return APIResponse(
        success=True,
        data=result.model_dump(mode="json"),
        metadata={"session_id": session_id},
    )
