"""Append-only event log — the audit trail of governance and settlement.

Every state change the service performs (proposal created, ballot cast,
proposal finalized or executed, pool calculated or settled) is appended
here as an immutable, hash-stamped record. The log can be mirrored to a
JSONL file and reloaded; reloading verifies every record's hash and
rejects duplicate event ids.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of DAO events."""
    # Directory
    TEAM_CREATED = "team_created"
    MEMBER_REGISTERED = "member_registered"
    MEMBER_JOINED_TEAM = "member_joined_team"
    MEMBER_LEFT_TEAM = "member_left_team"
    CONTRIBUTION_RECORDED = "contribution_recorded"
    CONTRIBUTION_VERIFIED = "contribution_verified"
    MILESTONE_COMPLETED = "milestone_completed"
    # Governance
    PROPOSAL_CREATED = "proposal_created"
    VOTE_CAST = "vote_cast"
    VOTING_EXTENDED = "voting_extended"
    PROPOSAL_FINALIZED = "proposal_finalized"
    PROPOSAL_EXECUTED = "proposal_executed"
    # Royalties
    POOL_CREATED = "pool_created"
    DISTRIBUTION_CALCULATED = "distribution_calculated"
    DISTRIBUTION_EXECUTED = "distribution_executed"
    PAYOUT_SKIPPED = "payout_skipped"
    # Housekeeping
    SAMPLE_DATA_SEEDED = "sample_data_seeded"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable audit event."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash.

        Payload values that are not JSON-native (Decimal, datetime) are
        stored as strings so the hash is reproducible after reload.
        """
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        clean_payload = json.loads(json.dumps(payload, default=str))
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=clean_payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, clean_payload,
            ),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence.

    Events can only be appended, never modified or deleted.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event. Raises ValueError on a duplicate event_id."""
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_record(), sort_keys=True, ensure_ascii=False) + "\n")

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_actor(self, actor_id: str) -> list[EventRecord]:
        return [e for e in self._events if e.actor_id == actor_id]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _load_from_file(self, path: Path) -> None:
        """Load events from JSONL, failing closed on tampering or replays."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
