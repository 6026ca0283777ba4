"""Tests for the service facade — proves engines, audit trail and result envelopes work together."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from hackdao.persistence.event_log import EventKind, EventLog, EventRecord
from hackdao.persistence.seed import seed_sample_data
from hackdao.policy.resolver import PolicyResolver
from hackdao.service import HackathonDAOService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service() -> HackathonDAOService:
    return HackathonDAOService(
        PolicyResolver.from_config_dir(CONFIG_DIR),
        event_log=EventLog(),
    )


@pytest.fixture
def seeded(service: HackathonDAOService) -> dict:
    return service.seed_sample_data(now=_now()).data


class TestSeed:
    def test_seed_creates_sample_world(self, service: HackathonDAOService, seeded: dict) -> None:
        assert seeded["seeded"] is True
        assert len(seeded["team_ids"]) == 2
        assert len(seeded["member_ids"]) == 3
        alice = service.directory.require_member(seeded["member_ids"][0])
        assert alice.role == "team_lead"
        assert service.event_log.events(EventKind.SAMPLE_DATA_SEEDED)

    def test_seed_is_idempotent(self, service: HackathonDAOService, seeded: dict) -> None:
        again = service.seed_sample_data(now=_now())
        assert again.success is True
        assert again.data == {"seeded": False}
        assert service.status()["teams"]["total"] == 2


class TestResultEnvelope:
    def test_engine_error_becomes_failed_result(self, service: HackathonDAOService) -> None:
        result = service.vote("ghost", "nobody", "for")
        assert result.success is False
        assert result.error_kind == "not_found"
        assert "ghost" in result.errors[0]

    def test_invalid_argument_kind(self, service: HackathonDAOService) -> None:
        result = service.register_member("Ada", role="overlord")
        assert result.error_kind == "invalid_argument"

    def test_directory_operations_record_events(self, service: HackathonDAOService) -> None:
        team_id = service.create_team("Rocket", created_by="admin").data["team_id"]
        member_id = service.register_member("Ada").data["member_id"]
        assert service.add_member_to_team(team_id, member_id).data["team_size"] == 1
        cid = service.record_contribution(team_id, member_id, "code", 10).data["contribution_id"]
        assert service.verify_contribution(cid, "admin").success is True

        kinds = [e.event_kind for e in service.event_log.events()]
        assert kinds == [
            EventKind.TEAM_CREATED,
            EventKind.MEMBER_REGISTERED,
            EventKind.MEMBER_JOINED_TEAM,
            EventKind.CONTRIBUTION_RECORDED,
            EventKind.CONTRIBUTION_VERIFIED,
        ]
        assert [e.event_id for e in service.event_log.events()][:2] == ["EVT-00000001", "EVT-00000002"]


class TestGovernanceFlow:
    def _proposal(self, service: HackathonDAOService, seeded: dict, **kwargs) -> str:
        result = service.create_proposal(
            "team_decision", "Adopt Rust", "Rewrite it",
            proposed_by=seeded["member_ids"][0],
            team_id=seeded["team_ids"][0],
            now=_now(),
            **kwargs,
        )
        assert result.success, result.errors
        return result.data["proposal_id"]

    def test_decisive_vote_finalizes(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        pid = self._proposal(service, seeded)

        first = service.vote(pid, alice, "for", now=_now())
        assert first.success is True
        assert first.data["weight"] == Decimal("1.22")
        assert first.data["finalized_status"] == "passed"

        late = service.vote(pid, bob, "for", now=_now())
        assert late.success is False
        assert late.error_kind == "invalid_state"

    def test_undecided_vote_stays_active(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        pid = self._proposal(service, seeded, quorum_required="1")
        result = service.vote(pid, bob, "for", now=_now())
        assert "finalized_status" not in result.data
        stats = service.proposal_stats(pid, now=_now())
        assert stats.data["status"] == "active"
        assert stats.data["can_execute"] is False

    def test_explicit_finalize_and_execute(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        pid = self._proposal(service, seeded, duration_days=1, quorum_required="1")
        service.vote(pid, bob, "for", now=_now())

        early = service.finalize_proposal(pid, now=_now())
        assert early.error_kind == "invalid_state"

        done = service.finalize_proposal(pid, now=_now() + timedelta(days=2))
        assert done.data["status"] == "expired"
        assert service.execute_proposal(pid).error_kind == "invalid_state"

    def test_undecided_vote_at_deadline_stays_active(
        self, service: HackathonDAOService, seeded: dict,
    ) -> None:
        alice, bob, _ = seeded["member_ids"]
        pid = self._proposal(service, seeded, duration_days=1, quorum_required="1")
        result = service.vote(pid, bob, "for", now=_now() + timedelta(days=1))
        assert result.success is True
        assert "finalized_status" not in result.data
        assert service.proposals.require_proposal(pid).status.value == "active"

    def test_removal_shrinks_quorum_for_open_proposal(
        self, service: HackathonDAOService, seeded: dict,
    ) -> None:
        alice, bob, _ = seeded["member_ids"]
        team_id = seeded["team_ids"][0]
        pid = self._proposal(service, seeded, quorum_required="1")
        assert "finalized_status" not in service.vote(pid, bob, "for", now=_now()).data

        removed = service.remove_member_from_team(team_id, alice)
        assert removed.data["team_size"] == 1
        assert service.event_log.events(EventKind.MEMBER_LEFT_TEAM)
        assert service.finalize_proposal(pid, now=_now()).data["status"] == "passed"

    def test_extend_voting(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        pid = self._proposal(service, seeded)
        assert service.extend_voting(pid, bob).error_kind == "not_eligible"

        result = service.extend_voting(pid, alice, reason="Need more time", extension_days=2)
        assert result.success is True
        assert result.data["expires_utc"] == (_now() + timedelta(days=9)).isoformat()
        assert service.event_log.events(EventKind.VOTING_EXTENDED)

    def test_proposal_creation_failure(self, service: HackathonDAOService, seeded: dict) -> None:
        result = service.create_proposal(
            "team_decision", "x", "y", proposed_by="m", team_id="ghost", now=_now(),
        )
        assert result.error_kind == "not_found"


class TestRoyaltyFlow:
    def test_immediate_settlement(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        result = service.distribute_royalties(
            seeded["team_ids"][0], "1000.00", name="Grand Prize",
            require_approval=False, now=_now(),
        )
        assert result.success, result.errors
        settlement = result.data["settlement"]
        assert settlement["total_paid"] == Decimal("1000.00")
        assert settlement["skipped_member_ids"] == []
        amounts = {line["member_id"]: line["amount"] for line in settlement["paid"]}
        assert amounts == {alice: Decimal("666.67"), bob: Decimal("333.33")}
        assert result.data["pool"]["status"] == "distributed"

        totals = service.member_royalties(alice)
        assert totals.data["total_earned"] == Decimal("666.67")
        kinds = {e.event_kind for e in service.event_log.events()}
        assert EventKind.DISTRIBUTION_EXECUTED in kinds

    def test_approval_gated_settlement(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        result = service.distribute_royalties(seeded["team_ids"][0], "500.00", now=_now())
        assert result.success, result.errors
        pool_id = result.data["pool_id"]
        proposal_id = result.data["proposal_id"]
        assert result.data["pool"]["status"] == "calculated"
        assert service.proposals.require_proposal(proposal_id).proposed_by == "admin"

        early = service.execute_distribution(pool_id, now=_now())
        assert early.error_kind == "invalid_state"
        assert proposal_id in early.errors[0]

        vote = service.vote(proposal_id, alice, "for", now=_now())
        assert vote.data["finalized_status"] == "passed"
        assert service.execute_distribution(pool_id, now=_now()).error_kind == "invalid_state"
        executed = service.execute_proposal(proposal_id, now=_now())
        assert executed.data["action"] == "royalty_distribution_approved"
        assert executed.data["target_id"] == pool_id

        settled = service.execute_distribution(pool_id, now=_now())
        assert settled.success is True
        assert settled.data["total_paid"] == Decimal("500.00")
        assert service.pool_report(pool_id).data["status"] == "distributed"

    def test_no_contributions_reported(self, service: HackathonDAOService, seeded: dict) -> None:
        result = service.distribute_royalties(
            seeded["team_ids"][1], "100.00", require_approval=False, now=_now(),
        )
        assert result.success is False
        assert result.error_kind == "no_contributions"
        assert service.royalty.team_pools(seeded["team_ids"][1]) == []
        assert not service.event_log.events(EventKind.POOL_CREATED)

    def test_rejected_approval_blocks_settlement(self, service: HackathonDAOService, seeded: dict) -> None:
        alice, bob, _ = seeded["member_ids"]
        result = service.distribute_royalties(seeded["team_ids"][0], "500.00", now=_now())
        pool_id, proposal_id = result.data["pool_id"], result.data["proposal_id"]
        service.vote(proposal_id, alice, "against", now=_now())
        assert service.finalize_proposal(proposal_id, now=_now()).data["status"] == "rejected"

        blocked = service.execute_distribution(pool_id, now=_now())
        assert blocked.error_kind == "invalid_state"
        assert service.pool_report(pool_id).data["status"] == "calculated"

    def test_unknown_member_royalties(self, service: HackathonDAOService) -> None:
        assert service.member_royalties("ghost").error_kind == "not_found"

    def test_unknown_pool_report(self, service: HackathonDAOService) -> None:
        assert service.pool_report("ghost").error_kind == "not_found"


class TestStatus:
    def test_status_counts(self, service: HackathonDAOService, seeded: dict) -> None:
        service.distribute_royalties(seeded["team_ids"][0], "10.00", now=_now())
        status = service.status(now=_now())
        assert status["teams"]["total"] == 2
        assert status["members"]["total"] == 3
        assert status["contributions"] == {"total": 2, "verified": 2}
        assert status["proposals"]["open"] == 1
        assert status["proposals"]["by_status"]["active"] == 1
        assert status["royalty_pools"]["calculated"] == 1
        assert status["events"] == service.event_log.count


class TestEventLogFailure:
    def test_log_failure_surfaces_as_warning(self) -> None:
        log = EventLog()
        log.append(EventRecord.create(
            event_id="EVT-00000002",
            event_kind=EventKind.TEAM_CREATED,
            actor_id="admin",
            payload={},
            timestamp_utc=_now(),
        ))
        service = HackathonDAOService(PolicyResolver.from_config_dir(CONFIG_DIR), event_log=log)

        result = service.create_team("Rocket", created_by="admin")
        assert result.success is True
        assert "Event log failure" in result.data["warning"]
        assert service.directory.require_team(result.data["team_id"]).name == "Rocket"

    def test_distribution_event_failure_surfaces_as_warning(self) -> None:
        log = EventLog()
        log.append(EventRecord.create(
            event_id="EVT-00000002",
            event_kind=EventKind.TEAM_CREATED,
            actor_id="admin",
            payload={},
            timestamp_utc=_now(),
        ))
        service = HackathonDAOService(PolicyResolver.from_config_dir(CONFIG_DIR), event_log=log)
        created = seed_sample_data(service.store, service.directory, now=_now())

        result = service.distribute_royalties(
            created["team_ids"][0], "100.00", require_approval=False, now=_now(),
        )
        assert result.success is True
        assert "Event log failure" in result.data["warning"]
        assert result.data["settlement"]["total_paid"] == Decimal("100.00")
        assert log.events(EventKind.DISTRIBUTION_EXECUTED)


class TestDirectoryReports:
    def test_scored_contribution_and_leaderboard(
        self, service: HackathonDAOService, seeded: dict,
    ) -> None:
        alice, bob, charlie = seeded["member_ids"]
        result = service.record_contribution(
            seeded["team_ids"][1], charlie, "testing",
            data={"test_count": 40, "has_e2e_tests": True},
        )
        assert result.data["score"] == Decimal("240")

        board = service.leaderboard(limit=2).data
        assert [t["team_id"] for t in board["teams"]] == [seeded["team_ids"][1], seeded["team_ids"][0]]
        assert [m["member_id"] for m in board["members"]] == [charlie, alice]

    def test_team_and_member_stats(self, service: HackathonDAOService, seeded: dict) -> None:
        alice = seeded["member_ids"][0]
        team = service.team_stats(seeded["team_ids"][0]).data
        assert team["total_score"] == Decimal("180")
        assert team["contributions_by_type"] == {"code": 1, "research": 1}

        member = service.member_stats(alice).data
        assert member["contributions_by_type"]["code"] == {"count": 1, "total_score": Decimal("120")}
        assert service.member_stats("ghost").error_kind == "not_found"

    def test_contribution_stats(self, service: HackathonDAOService, seeded: dict) -> None:
        stats = service.contribution_stats(start=_now() - timedelta(days=9, hours=1)).data
        assert stats["total"] == 1
        assert stats["by_type"] == {"research": {"count": 1, "total_score": Decimal("60")}}
