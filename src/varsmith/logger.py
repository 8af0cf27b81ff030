"""Structured JSON logger for refinement requests, stages and errors."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from varsmith.constants import ERROR_TRUNCATION_CHARS
from varsmith.logging_config import LOG_DATEFMT, LOG_FORMAT

__all__ = ["RefinementLogger", "LOG_FORMAT", "LOG_DATEFMT"]


class RefinementLogger:
    """One JSON object per line in ``refinement.log``, keyed by request_id."""

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        self._log_dir = log_dir
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger("varsmith.refinement.audit")
        self._logger.setLevel(getattr(logging, level.upper()))
        # Audit lines go to the file only, never to the console
        self._logger.propagate = False

        log_file = str(log_dir / "refinement.log")
        if not any(
            getattr(h, "baseFilename", None) == log_file
            for h in self._logger.handlers
        ):
            handler = logging.FileHandler(log_file)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def _write(self, level: int, payload: dict[str, Any]) -> None:
        payload["timestamp"] = datetime.now(UTC).isoformat()
        self._logger.log(level, json.dumps(payload, default=str))

    def log_request(
        self,
        request_id: str,
        session_id: str,
        text: str,
        status: str,
        attempts: int,
        duration_ms: float,
    ) -> None:
        self._write(
            logging.INFO,
            {
                "type": "request",
                "request_id": request_id,
                "session_id": session_id,
                "text": text[:ERROR_TRUNCATION_CHARS],
                "status": status,
                "attempts": attempts,
                "duration_ms": duration_ms,
            },
        )

    def log_stage(
        self,
        request_id: str,
        stage_name: str,
        status: str,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        self._write(
            logging.INFO,
            {
                "type": "stage",
                "request_id": request_id,
                "stage": stage_name,
                "status": status,
                "duration_ms": duration_ms,
                "error": error,
            },
        )

    def log_error(
        self,
        request_id: str,
        component: str,
        error: str,
    ) -> None:
        self._write(
            logging.ERROR,
            {
                "type": "error",
                "request_id": request_id,
                "component": component,
                "error": error[:ERROR_TRUNCATION_CHARS],
            },
        )
