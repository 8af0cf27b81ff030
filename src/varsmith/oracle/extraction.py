"""Tolerant extraction of structured payloads from free-form oracle text.

Oracles wrap JSON in prose and markdown fences, or append commentary
after it. Only the first balanced ``{...}`` region is parsed; everything
before and after it is discarded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from varsmith.resilience.errors import OracleParseError


@dataclass(frozen=True)
class Extraction:
    """Either a parsed object or the reason extraction failed."""

    value: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def success(cls, value: dict[str, Any]) -> Extraction:
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> Extraction:
        return cls(error=error)

    def unwrap(self, raw: str = "") -> dict[str, Any]:
        """Return the parsed object or raise OracleParseError."""
        if self.value is None:
            raise OracleParseError(self.error or "no structured payload", raw)
        return self.value


def find_balanced_region(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, or None.

    Braces inside double-quoted strings (with backslash escapes) do not
    count toward the balance.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : pos + 1]
    return None


def extract_json_object(text: str) -> Extraction:
    """Parse the first balanced region of text as a JSON object."""
    if not text or not text.strip():
        return Extraction.failure("empty response")

    region = find_balanced_region(text)
    if region is None:
        return Extraction.failure("no balanced {...} region found")

    try:
        data = json.loads(region)
    except json.JSONDecodeError as exc:
        return Extraction.failure(f"invalid JSON in region: {exc.msg}")

    if not isinstance(data, dict):
        return Extraction.failure("structured region is not an object")
    return Extraction.success(data)
