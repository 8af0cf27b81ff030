"""Process-wide logging setup, split around the litellm import.

``setup_logging()`` runs first: it pins LITELLM_LOG (read by litellm at
import time), configures the root logger and quiets chatty libraries.
``cleanup_third_party_handlers()`` runs once every module is imported and
strips the StreamHandlers litellm attaches to its own loggers, so records
reach the root handler exactly once.

Both steps run at most once per process.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

# Raised to WARNING so refinement events stay readable
_SUPPRESSED_LOGGERS = (
    *_LITELLM_LOGGERS,
    "openai._base_client",
    "httpx",
    "httpcore",
    "uvicorn.access",
)

_configured = False
_handlers_cleaned = False


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger before litellm is imported."""
    global _configured  # noqa: PLW0603
    if _configured:
        return
    _configured = True

    os.environ.setdefault("LITELLM_LOG", "WARNING")

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def cleanup_third_party_handlers() -> None:
    """Drop litellm's own handlers and let its records propagate to root."""
    global _handlers_cleaned  # noqa: PLW0603
    if _handlers_cleaned:
        return
    _handlers_cleaned = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
