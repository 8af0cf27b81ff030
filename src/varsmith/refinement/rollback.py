"""Rollback manager: the single source of truth for accepted artifacts."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from varsmith.refinement.schemas import Artifact, Snapshot
from varsmith.refinement.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollbackReport:
    """What a restore put back in place."""

    session_id: str
    restored_version: int
    reason: str


class RollbackManager:
    """Holds exactly one current snapshot per session.

    ``commit`` moves the snapshot forward before success is reported, so
    a later failure never rolls back further than the last acceptance.
    """

    def commit(
        self,
        session: Session,
        artifact: Artifact,
        index_view: Iterable[str] = (),
    ) -> Artifact:
        accepted = artifact.accepted_as(session.snapshot.artifact.version + 1)
        session.snapshot = Snapshot(
            artifact=accepted, identifier_index_view=tuple(index_view)
        )
        session.artifact = accepted
        logger.info(
            "event=snapshot_committed session=%s version=%d",
            session.session_id,
            accepted.version,
        )
        return accepted

    def restore(
        self,
        session: Session,
        reason: str,
        to: Snapshot | None = None,
    ) -> RollbackReport:
        """Put the snapshot (or an earlier one, ``to``) back as current."""
        if to is not None:
            session.snapshot = to
        session.artifact = session.snapshot.artifact
        logger.warning(
            "event=rollback session=%s version=%d reason=%s",
            session.session_id,
            session.artifact.version,
            reason,
        )
        return RollbackReport(
            session_id=session.session_id,
            restored_version=session.artifact.version,
            reason=reason,
        )
