"""Request/response schemas for the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field

from varsmith.refinement.schemas import IndexEntry


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionCreate(BaseModel):
    """Request body for POST /api/sessions.

    The baseline is usually empty (nothing applied yet); ``index`` lists
    the identifiers observed on the target page.
    """

    appearance_rules: str = ""
    behavior_instructions: str = ""
    index: list[IndexEntry] | None = None


class ChangeRequestBody(BaseModel):
    """Request body for POST /api/sessions/{id}/change-requests."""

    text: str = Field(min_length=1, max_length=10_000)
    attached_target_descriptor: str | None = Field(
        default=None, max_length=2_000
    )
