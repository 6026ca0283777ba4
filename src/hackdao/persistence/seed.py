"""Sample data for demos and the CLI.

Seeding is gated on an explicit ``meta/seed`` document, not on whether
the teams collection happens to be empty, so a deployment that deletes
its last team is never re-seeded behind its back.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog

from hackdao.models.common import to_iso
from hackdao.persistence.store import LedgerStore
from hackdao.teams.directory import Directory

logger = structlog.get_logger()

SEED_FLAG_ID = "seed"


def is_seeded(store: LedgerStore) -> bool:
    return store.get("meta", SEED_FLAG_ID) is not None


def seed_sample_data(
    store: LedgerStore,
    directory: Directory,
    now: Optional[datetime] = None,
) -> Optional[dict[str, Any]]:
    """Create two teams, three members and two verified contributions.

    Returns the created ids, or None if the store was already seeded.
    """
    if is_seeded(store):
        logger.info("seed_skipped", reason="already_seeded")
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    start = now - timedelta(days=30)

    ai_team = directory.create_team(
        "AI Innovators", created_by="admin",
        description="Building the future of AI", max_members=5, now=start,
    )
    chain_team = directory.create_team(
        "Blockchain Builders", created_by="admin",
        description="Decentralized solutions", max_members=4, now=start,
    )

    alice = directory.register_member(
        "Alice Johnson", email="alice@example.com",
        wallet="0x1234567890abcdef1234567890abcdef12345678",
        role="team_lead", now=start,
    )
    bob = directory.register_member(
        "Bob Smith", email="bob@example.com",
        wallet="0xabcdef1234567890abcdef1234567890abcdef12",
        role="member", now=start,
    )
    charlie = directory.register_member(
        "Charlie Davis", email="charlie@example.com",
        wallet="0x234567890abcdef234567890abcdef2345678901",
        role="member", now=start,
    )

    directory.add_member_to_team(ai_team.team_id, alice.member_id)
    directory.add_member_to_team(ai_team.team_id, bob.member_id)
    directory.add_member_to_team(chain_team.team_id, charlie.member_id)

    auth = directory.record_contribution(
        ai_team.team_id, alice.member_id, "code", "120",
        description="Implemented authentication system",
        timestamp=now - timedelta(days=10),
    )
    research = directory.record_contribution(
        ai_team.team_id, bob.member_id, "research", "60",
        description="ML model research",
        timestamp=now - timedelta(days=9),
    )
    for contribution in (auth, research):
        directory.verify_contribution(
            contribution.contribution_id, alice.member_id, now=now - timedelta(days=8),
        )

    result = {
        "team_ids": [ai_team.team_id, chain_team.team_id],
        "member_ids": [alice.member_id, bob.member_id, charlie.member_id],
        "contribution_ids": [auth.contribution_id, research.contribution_id],
    }
    store.insert("meta", SEED_FLAG_ID, {"seeded_utc": to_iso(now), **result})
    logger.info("sample_data_seeded", teams=2, members=3, contributions=2)
    return result
