"""Tests for the append-only event log — proves hashes, replay guards and JSONL reload."""

import json

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from hackdao.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "EVT-00000001", kind: EventKind = EventKind.VOTE_CAST) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="member_a",
        payload={"proposal_id": "prop_1", "weight": Decimal("1.20")},
        timestamp_utc=_now(),
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_changes_with_payload(self) -> None:
        other = EventRecord.create(
            event_id="EVT-00000001",
            event_kind=EventKind.VOTE_CAST,
            actor_id="member_a",
            payload={"proposal_id": "prop_1", "weight": "1.30"},
            timestamp_utc=_now(),
        )
        assert other.event_hash != _event().event_hash

    def test_decimal_payload_stored_as_string(self) -> None:
        assert _event().payload["weight"] == "1.20"

    def test_timestamp_format(self) -> None:
        assert _event().timestamp_utc == "2026-03-01T12:00:00Z"


class TestEventLog:
    def test_append_and_query(self) -> None:
        log = EventLog()
        log.append(_event("EVT-1", EventKind.PROPOSAL_CREATED))
        log.append(_event("EVT-2", EventKind.VOTE_CAST))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.VOTE_CAST)] == ["EVT-2"]
        assert len(log.events_for_actor("member_a")) == 2
        assert log.last_event.event_id == "EVT-2"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event("EVT-1"))
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_event("EVT-1"))

    def test_empty_log(self) -> None:
        log = EventLog()
        assert log.count == 0
        assert log.last_event is None

    def test_reload_from_jsonl(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("EVT-1", EventKind.POOL_CREATED))
        log.append(_event("EVT-2", EventKind.DISTRIBUTION_EXECUTED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[1].event_kind == EventKind.DISTRIBUTION_EXECUTED
        assert reloaded.events()[0].event_hash == log.events()[0].event_hash

    def test_tampered_file_fails_closed(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event("EVT-1"))

        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["weight"] = "9.99"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_replayed_line_fails_closed(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event("EVT-1"))
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")

        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
