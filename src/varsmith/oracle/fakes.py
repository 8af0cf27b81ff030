"""Deterministic in-process collaborators.

Lets the whole pipeline run without network access or a browser.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence
from typing import Any

from varsmith.refinement.schemas import (
    Artifact,
    AssessmentVerdict,
    SurfaceSnapshot,
)

Scripted = str | BaseException


class ScriptedGenerativeOracle:
    """Replays canned responses in order; exceptions are raised.

    The last response repeats once the script runs out.
    """

    def __init__(self, responses: Sequence[Scripted]) -> None:
        if not responses:
            raise ValueError("at least one scripted response is required")
        self._responses = list(responses)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(self, prompt: str, context: dict[str, Any]) -> str:
        index = min(len(self.calls), len(self._responses) - 1)
        self.calls.append((prompt, dict(context)))
        response = self._responses[index]
        if isinstance(response, BaseException):
            raise response
        return response

    def prompts_for(self, task: str) -> list[str]:
        return [p for p, ctx in self.calls if ctx.get("task") == task]


class ScriptedAssessmentOracle:
    """Replays verdicts in order; the last one repeats."""

    def __init__(
        self, verdicts: Sequence[AssessmentVerdict | BaseException]
    ) -> None:
        if not verdicts:
            raise ValueError("at least one scripted verdict is required")
        self._verdicts = list(verdicts)
        self.call_count = 0

    async def assess(
        self,
        request: str,
        before: SurfaceSnapshot,
        after: SurfaceSnapshot,
        calibration: dict[str, Any],
    ) -> AssessmentVerdict:
        index = min(self.call_count, len(self._verdicts) - 1)
        self.call_count += 1
        verdict = self._verdicts[index]
        if isinstance(verdict, BaseException):
            raise verdict
        return verdict


def _fingerprint(artifact: Artifact) -> bytes:
    digest = hashlib.sha256(
        (artifact.appearance_rules + "\0" + artifact.behavior_instructions)
        .encode("utf-8")
    )
    return digest.digest()


class FakeSurface:
    """Observable surface whose captures are derived from the artifact.

    ``effects`` maps an applied artifact to entity counts; without it the
    baseline counts are reported unchanged. An empty artifact renders
    exactly like the baseline.
    """

    def __init__(
        self,
        baseline_counts: dict[str, int] | None = None,
        effects: Callable[[Artifact], dict[str, int]] | None = None,
    ) -> None:
        self._baseline_counts = dict(baseline_counts or {})
        self._effects = effects
        self._applied: Artifact | None = None
        self.reset_count = 0
        self.apply_count = 0
        self.capture_count = 0

    async def reset(self) -> None:
        self.reset_count += 1
        self._applied = None

    async def apply(self, artifact: Artifact) -> None:
        self.apply_count += 1
        self._applied = artifact

    async def capture(self, target: str | None = None) -> SurfaceSnapshot:
        self.capture_count += 1
        applied = self._applied
        if applied is None or applied.is_empty:
            return SurfaceSnapshot(
                image=b"baseline", entity_counts=self._baseline_counts
            )
        counts = (
            self._effects(applied)
            if self._effects is not None
            else self._baseline_counts
        )
        return SurfaceSnapshot(image=_fingerprint(applied), entity_counts=counts)
