"""Refinement error taxonomy and oracle-failure classification.

The exception types mark the failure semantics of the pipeline:

- ``OracleParseError``: an oracle answered but the payload is unusable.
- ``GenerationExhaustedError``: the generation budget ran out; the
  caller must be rolled back.
- ``AssessmentError``: visual tooling failed; the pipeline fails open.
- ``SessionBusyError``: a second writer tried to enter a session.
- ``ClarificationInvariantError``: an AMBIGUOUS classification without
  enough interpretations to ask the user anything.

``classify_error`` tags raw oracle exceptions for structured logging.
"""

from __future__ import annotations

import asyncio
from enum import Enum


class RefinementError(Exception):
    """Base class for every error raised by the refinement engine."""


class OracleParseError(RefinementError):
    """Oracle response had no parseable structured region."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class GenerationExhaustedError(RefinementError):
    """All generation attempts failed validation or errored."""

    def __init__(self, attempts: int, errors: list[str]) -> None:
        super().__init__(
            f"Generation failed after {attempts} attempt(s)"
        )
        self.attempts = attempts
        self.errors = errors


class AssessmentError(RefinementError):
    """Qualitative oracle or observable-surface collaborator failed."""


class SessionBusyError(RefinementError):
    """A refinement is already in flight for this session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session {session_id} already has a refinement in flight"
        )
        self.session_id = session_id


class ClarificationInvariantError(RefinementError):
    """AMBIGUOUS classification carried fewer than two interpretations."""


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, network errors
    SERVER = "server"  # 500, 502, 503
    TIMEOUT = "timeout"  # deadline exceeded
    CLIENT = "client"  # 400, 401, 403
    PARSE = "parse"  # oracle answered with garbage
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an oracle failure for logging and attempt bookkeeping.

    Checks our own types and structured attributes (status_code) first,
    then falls back to string matching for untyped exceptions.
    """
    if isinstance(error, OracleParseError):
        return ErrorClass.PARSE

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT

    msg = str(error).lower()

    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("400", "401", "403", "404")):
        return ErrorClass.CLIENT

    return ErrorClass.UNKNOWN


def describe_failure(error: BaseException) -> str:
    """One-line description of a failed oracle call for error histories."""
    error_class = classify_error(error)
    if error_class is ErrorClass.TIMEOUT:
        return "oracle timed out"
    detail = str(error) or type(error).__name__
    return f"oracle {error_class.value} error: {detail}"
