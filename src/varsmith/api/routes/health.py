"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from varsmith import __version__
from varsmith.api.app_state import AppState
from varsmith.api.dependencies import get_app_state
from varsmith.oracle._llm_call import breaker_states

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check for load balancers."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health/detailed")
async def health_detailed(
    state: AppState = Depends(get_app_state),
) -> dict[str, object]:
    """Component-level status of the refinement engine."""
    engine = state.engine
    chain = state.settings.litellm_model_chain
    components = {
        "generative_oracle": {
            "status": "configured",
            "models": chain,
            "circuits": breaker_states(chain),
        },
        "visual_assessment": {
            "status": (
                "enabled" if engine.assessment_enabled else "disabled"
            ),
        },
        "sessions": {
            "count": len(state.sessions),
            "active": engine.guard.active_sessions,
        },
        "tracing": {"handlers": state.dispatcher.handler_count},
    }
    return {
        "status": "healthy",
        "version": __version__,
        "components": components,
        "timestamp": datetime.now(UTC).isoformat(),
    }
