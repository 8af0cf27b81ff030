"""Environment-based configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from varsmith.constants import BusyPolicy

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # LLM Provider
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Model chain (first = primary, rest = fallbacks tried in order)
    litellm_model_chain: Annotated[list[str], NoDecode] = [
        "anthropic/claude-3-5-sonnet-latest",
        "openai/gpt-4.1-mini",
    ]
    # Vision-capable chain for the qualitative assessment oracle
    litellm_vision_chain: Annotated[list[str], NoDecode] = [
        "openai/gpt-4.1-mini",
    ]
    llm_timeout_seconds: int = 60

    # Per-call suspension timeout (oracle, capture, apply, reset)
    oracle_timeout_seconds: float = 15.0

    # Budgets
    max_generation_attempts: int = 3
    max_assessment_iterations: int = 5

    # Classifier
    history_window: int = 3

    # Validator heuristics
    regression_min_size: int = 50
    regression_ratio: float = 0.2

    # Assessment heuristics
    defect_keyword_overlap: float = 0.6
    repeat_match_fraction: float = 0.7
    repeat_limit: int = 2
    entity_growth_multiple: float = 2.0

    # Quality monitor
    quality_history_size: int = 10

    # Concurrency
    session_busy_policy: BusyPolicy = BusyPolicy.REJECT

    # Directories
    log_dir: Path = Path("logs")

    # Logging
    log_level: str = "INFO"
    debug_mode: bool = False

    # Observability
    trace_enabled: bool = True

    # API
    host: str = "127.0.0.1"
    port: int = 8000

    @field_validator(
        "litellm_model_chain", "litellm_vision_chain", mode="before"
    )
    @classmethod
    def _parse_chain(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("litellm_model_chain", "litellm_vision_chain")
    @classmethod
    def _validate_chain(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError(
                "model chain must contain at least one model"
            )
        seen: set[str] = set()
        dupes: list[str] = []
        for m in v:
            if m in seen:
                dupes.append(m)
            seen.add(m)
        if dupes:
            logger.warning(
                "Duplicate models in model chain: %s",
                ", ".join(dupes),
            )
        return v

    @field_validator("max_generation_attempts", "max_assessment_iterations")
    @classmethod
    def _validate_budget(cls, v: int) -> int:
        if v < 1:
            raise ValueError("budgets must allow at least one attempt")
        return v

    @field_validator(
        "defect_keyword_overlap",
        "repeat_match_fraction",
        "regression_ratio",
    )
    @classmethod
    def _validate_fraction(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("fractions must be in (0, 1]")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }
