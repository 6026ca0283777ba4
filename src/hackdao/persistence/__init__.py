"""Persistence layer — ledger store, entity locks, audit log, seeding."""

from hackdao.persistence.event_log import EventKind, EventLog, EventRecord
from hackdao.persistence.locks import EntityLocks
from hackdao.persistence.store import (
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStore,
)

__all__ = [
    "EventKind",
    "EventLog",
    "EventRecord",
    "EntityLocks",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerStore",
]
