"""Ledger store: collection/document persistence for DAO entities.

Each entity is one row per collection:

    {"id": <str>, "data": <JSON-serialisable dict>, "timestamp": <epoch ms>}

The store is deliberately simple and non-transactional. Callers never
assume atomicity across several calls; entity-level serialisation is the
job of ``EntityLocks``. Documents are copied on the way in and out, so a
caller mutating a returned dict never changes stored state.

``find`` is an explicit O(n) scan over a collection with equality
filters. There are no secondary indexes.
"""

from __future__ import annotations

import copy
import json
import threading
import time
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable


COLLECTIONS = (
    "teams",
    "members",
    "contributions",
    "proposals",
    "votes",
    "royalties",
    "meta",
)


@runtime_checkable
class LedgerStore(Protocol):
    """Contract every store backend satisfies."""

    def insert(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        ...

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        ...

    def list(
        self, collection: str, limit: Optional[int] = None, offset: int = 0,
    ) -> list[dict[str, Any]]:
        ...

    def find(self, collection: str, **filters: Any) -> list[dict[str, Any]]:
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class InMemoryLedgerStore:
    """Dict-backed store. State lives for the lifetime of the object.

    Usage:
        store = InMemoryLedgerStore()
        store.insert("proposals", "p1", proposal.to_record())
        data = store.get("proposals", "p1")
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self._guard = threading.Lock()

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        rows = self._rows.get(collection)
        if rows is None:
            raise ValueError(f"Unknown collection: {collection}")
        return rows

    def insert(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with self._guard:
            rows = self._collection(collection)
            if doc_id in rows:
                raise ValueError(f"Duplicate document id in {collection}: {doc_id}")
            rows[doc_id] = {
                "id": doc_id,
                "data": copy.deepcopy(data),
                "timestamp": _now_ms(),
            }
            try:
                self._flush()
            except Exception:
                del rows[doc_id]
                raise

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._guard:
            row = self._collection(collection).get(doc_id)
            return copy.deepcopy(row["data"]) if row is not None else None

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Replace a document wholesale (read-modify-write is the caller's job)."""
        with self._guard:
            rows = self._collection(collection)
            if doc_id not in rows:
                raise ValueError(f"Document {doc_id} not found in {collection}")
            previous = rows[doc_id]
            rows[doc_id] = {
                "id": doc_id,
                "data": copy.deepcopy(data),
                "timestamp": _now_ms(),
            }
            try:
                self._flush()
            except Exception:
                rows[doc_id] = previous
                raise

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._guard:
            rows = self._collection(collection)
            previous = rows.pop(doc_id, None)
            if previous is None:
                return False
            try:
                self._flush()
            except Exception:
                rows[doc_id] = previous
                raise
            return True

    def list(
        self, collection: str, limit: Optional[int] = None, offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return documents in insertion order."""
        with self._guard:
            rows = list(self._collection(collection).values())
        rows = rows[offset:] if limit is None else rows[offset:offset + limit]
        return [copy.deepcopy(r["data"]) for r in rows]

    def find(self, collection: str, **filters: Any) -> list[dict[str, Any]]:
        """Full scan of a collection, keeping documents whose fields equal filters."""
        return [
            doc for doc in self.list(collection)
            if all(doc.get(key) == value for key, value in filters.items())
        ]

    def count(self, collection: str) -> int:
        with self._guard:
            return len(self._collection(collection))

    def _flush(self) -> None:
        """Hook for durable subclasses. Called with the guard held.

        A raising flush makes the calling write roll back its row.
        """


class JsonFileLedgerStore(InMemoryLedgerStore):
    """In-memory store mirrored to a single JSON file after every write.

    The whole file is rewritten on each mutation (write to a temp file,
    then rename). Not crash-safe across multi-document operations.
    """

    def __init__(self, storage_path: Path) -> None:
        super().__init__()
        self._storage_path = storage_path
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._storage_path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        for collection, rows in raw.items():
            if collection not in self._rows:
                raise ValueError(
                    f"Unknown collection in {self._storage_path}: {collection}"
                )
            for row in rows:
                self._rows[collection][row["id"]] = row

    def _flush(self) -> None:
        payload = {c: list(rows.values()) for c, rows in self._rows.items()}
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(payload, f, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError):
            tmp.unlink(missing_ok=True)
            raise
        tmp.replace(self._storage_path)
