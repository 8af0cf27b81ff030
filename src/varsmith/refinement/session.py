"""Explicit per-session refinement state."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from varsmith.config import Settings
from varsmith.constants import ID_HEX_LENGTH
from varsmith.oracle.protocols import IdentifierIndex
from varsmith.refinement.quality import QualityMonitor
from varsmith.refinement.schemas import Artifact, Snapshot


def new_session_id() -> str:
    return uuid.uuid4().hex[:ID_HEX_LENGTH]


@dataclass
class Session:
    """Everything one refinement conversation owns.

    ``artifact`` and ``snapshot`` are written only by the RollbackManager;
    everything else here is bookkeeping for the classifier and monitor.
    """

    session_id: str
    baseline: Artifact
    artifact: Artifact
    snapshot: Snapshot
    index: IdentifierIndex | None
    quality: QualityMonitor
    history: deque[str]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        baseline: Artifact | None = None,
        index: IdentifierIndex | None = None,
        settings: Settings | None = None,
        session_id: str | None = None,
        current: Artifact | None = None,
    ) -> Session:
        """New session; ``current`` resumes from an already-applied artifact."""
        settings = settings or Settings()
        baseline = baseline or Artifact.empty()
        current = current or baseline
        return cls(
            session_id=session_id or new_session_id(),
            baseline=baseline,
            artifact=current,
            snapshot=Snapshot(artifact=current),
            index=index,
            quality=QualityMonitor(settings.quality_history_size),
            # request/response pairs; the classifier reads the tail
            history=deque(maxlen=max(2, settings.history_window * 2)),
        )

    def remember(self, turn: str) -> None:
        self.history.append(turn)

    def reset(self, baseline: Artifact | None = None) -> None:
        """Start over from a new baseline capture."""
        self.baseline = baseline or Artifact.empty()
        self.artifact = self.baseline
        self.snapshot = Snapshot(artifact=self.baseline)
        self.quality.reset()
        self.history.clear()
