"""FastAPI application with lifespan startup."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

# Phase 1: Singleton logging, MUST be before any varsmith imports
# (they transitively import litellm which reads LITELLM_LOG at import time)
from varsmith.logging_config import setup_logging

setup_logging()

from fastapi import FastAPI  # noqa: E402

from varsmith import __version__  # noqa: E402
from varsmith.api.app_state import AppState  # noqa: E402
from varsmith.api.routes import health, sessions  # noqa: E402
from varsmith.config import Settings  # noqa: E402
from varsmith.logger import RefinementLogger  # noqa: E402
from varsmith.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from varsmith.observability import initialize_tracing  # noqa: E402
from varsmith.oracle.litellm_oracle import (  # noqa: E402
    LiteLLMGenerativeOracle,
)
from varsmith.refinement.engine import RefinementEngine  # noqa: E402

# Phase 2: Now that all imports (including litellm) are done,
# clear litellm's duplicate handlers.
cleanup_third_party_handlers()

_logger = logging.getLogger(__name__)


def build_app_state(settings: Settings) -> AppState:
    """Wire the engine and its collaborators from settings.

    The server has no observable surface, so visual assessment stays
    disabled here.
    """
    dispatcher = initialize_tracing(settings)
    engine = RefinementEngine(
        LiteLLMGenerativeOracle(settings),
        settings=settings,
        dispatcher=dispatcher,
        audit=RefinementLogger(
            log_dir=settings.log_dir, level=settings.log_level
        ),
    )
    return AppState(settings=settings, dispatcher=dispatcher, engine=engine)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = Settings()
    state = build_app_state(settings)
    app.state.settings = settings
    app.state.typed = state

    if not (settings.anthropic_api_key or settings.openai_api_key):
        _logger.warning("event=no_provider_key action=oracle_calls_will_fail")
    _logger.info(
        "event=startup models=%s busy_policy=%s",
        ",".join(settings.litellm_model_chain),
        settings.session_busy_policy,
    )

    yield

    _logger.info("event=shutdown sessions=%d", len(state.sessions))


app = FastAPI(
    title="varsmith",
    description=(
        "Iterative refinement and validation engine"
        " for page variations"
    ),
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(sessions.router)
