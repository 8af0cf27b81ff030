"""Protocol-based collaborator interfaces.

Concrete adapters satisfy these protocols structurally (no inheritance).
Test doubles can be plain classes or mocks matching the same signature.
"""

from typing import Any, Protocol

from varsmith.refinement.schemas import (
    Artifact,
    AssessmentVerdict,
    IndexEntry,
    SurfaceSnapshot,
)


class GenerativeOracle(Protocol):
    async def generate(self, prompt: str, context: dict[str, Any]) -> str: ...


class AssessmentOracle(Protocol):
    async def assess(
        self,
        request: str,
        before: SurfaceSnapshot,
        after: SurfaceSnapshot,
        calibration: dict[str, Any],
    ) -> AssessmentVerdict: ...


class ObservableSurface(Protocol):
    async def capture(self, target: str | None = None) -> SurfaceSnapshot: ...
    async def apply(self, artifact: Artifact) -> None: ...
    async def reset(self) -> None: ...


class IdentifierIndex(Protocol):
    def query(self, descriptor: str) -> list[IndexEntry]: ...
