"""In-memory identifier index with token-overlap search."""

from __future__ import annotations

import re
from collections.abc import Iterable

from varsmith.refinement.schemas import IndexEntry

_TOKEN = re.compile(r"[a-z0-9]+")
DEFAULT_LIMIT = 10


def _tokens(text: str) -> set[str]:
    return set(_TOKEN.findall(text.lower()))


class StaticIdentifierIndex:
    """Identifier index over a fixed list of entries.

    ``query`` always returns an exact identifier match first (when one
    exists), followed by entries ranked by shared tokens between the
    descriptor and each entry's identifier, kind and description.
    """

    def __init__(
        self, entries: Iterable[IndexEntry], limit: int = DEFAULT_LIMIT
    ) -> None:
        self._entries: dict[str, IndexEntry] = {}
        for entry in entries:
            self._entries.setdefault(entry.identifier, entry)
        self._limit = limit

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    @property
    def identifiers(self) -> list[str]:
        return list(self._entries)

    def query(self, descriptor: str) -> list[IndexEntry]:
        descriptor = descriptor.strip()
        if not descriptor:
            return []

        results: list[IndexEntry] = []
        exact = self._entries.get(descriptor)
        if exact is not None:
            results.append(exact)

        wanted = _tokens(descriptor)
        if not wanted:
            return results

        scored: list[tuple[float, IndexEntry]] = []
        for entry in self._entries.values():
            if entry is exact:
                continue
            have = _tokens(
                f"{entry.identifier} {entry.kind or ''} {entry.description}"
            )
            shared = len(wanted & have)
            if shared:
                scored.append((shared / len(wanted) * entry.confidence, entry))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        results.extend(entry for _, entry in scored)
        return results[: self._limit]
