"""Per-entity mutual exclusion.

Every governance mutation is a read-modify-write of a whole document.
Two callers voting on the same proposal at once would otherwise both
read the pre-vote tally and the second write would drop the first
ballot's weight. Holding the entity's lock for the whole
read-compute-write cycle keeps ballots and tallies consistent.

Locks are re-entrant so an operation that already holds a proposal's
lock can call helpers that take it again. An entry lives only while
some caller holds or waits on it, so ids that are probed once (or
never existed) do not accumulate.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class EntityLocks:
    """A reference-counted map of ``(collection, entity_id)`` -> RLock.

    Usage:
        locks = EntityLocks()
        with locks.hold("proposals", proposal_id):
            ...  # load, mutate, persist
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, collection: str, entity_id: str) -> Iterator[None]:
        key = (collection, entity_id)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    @property
    def tracked(self) -> int:
        """Number of entities currently held or waited on."""
        with self._guard:
            return len(self._entries)
