"""HackDAO CLI — command-line interface for the governance and royalty engines.

Usage:
    hackdao status
    hackdao seed
    hackdao create-proposal --type team_decision --title "Adopt Rust" --proposer m1 --team t1
    hackdao vote --proposal prop_ab12 --voter m2 --choice for
    hackdao distribute --team t1 --amount 1000.00 --model weighted --no-approval
    hackdao leaderboard --limit 5
    hackdao check-invariants

Settings may come from the environment or a ``.env`` file:
    HACKDAO_CONFIG_DIR, HACKDAO_DATA_DIR, HACKDAO_LOG_LEVEL, HACKDAO_LOG_JSON
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from hackdao.models.governance import ProposalType, VoteChoice
from hackdao.models.royalty import DistributionModel
from hackdao.persistence.event_log import EventLog
from hackdao.persistence.store import JsonFileLedgerStore
from hackdao.policy.invariants import check_config_dir
from hackdao.policy.resolver import PolicyResolver
from hackdao.service import HackathonDAOService, ServiceResult
from hackdao.telemetry.logging import setup_logging


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(config_dir: Path, data_dir: Path) -> HackathonDAOService:
    """Create a service backed by files under ``data_dir``."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir)
    store = JsonFileLedgerStore(data_dir / "ledger.json")
    event_log = EventLog(storage_path=data_dir / "events.jsonl")
    return HackathonDAOService(resolver, store=store, event_log=event_log)


def _service(args: argparse.Namespace) -> HackathonDAOService:
    return _make_service(args.config, args.data_dir)


def _emit(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed ({result.error_kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    print(json.dumps(_service(args).status(), indent=2, default=str))
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    return _emit(_service(args).seed_sample_data())


def cmd_create_proposal(args: argparse.Namespace) -> int:
    return _emit(_service(args).create_proposal(
        proposal_type=args.proposal_type,
        title=args.title,
        description=args.description,
        proposed_by=args.proposer,
        team_id=args.team,
        duration_days=args.days,
        quorum_required=args.quorum,
        approval_threshold=args.threshold,
    ))


def cmd_vote(args: argparse.Namespace) -> int:
    return _emit(_service(args).vote(
        args.proposal, args.voter, args.choice, reason=args.reason,
    ))


def cmd_finalize(args: argparse.Namespace) -> int:
    return _emit(_service(args).finalize_proposal(args.proposal))


def cmd_execute_proposal(args: argparse.Namespace) -> int:
    return _emit(_service(args).execute_proposal(args.proposal))


def cmd_proposal_stats(args: argparse.Namespace) -> int:
    return _emit(_service(args).proposal_stats(args.proposal))


def cmd_distribute(args: argparse.Namespace) -> int:
    return _emit(_service(args).distribute_royalties(
        team_id=args.team,
        amount=args.amount,
        name=args.name,
        currency=args.currency,
        model=args.model,
        require_approval=not args.no_approval,
        proposed_by=args.proposer,
    ))


def cmd_execute_distribution(args: argparse.Namespace) -> int:
    return _emit(_service(args).execute_distribution(args.pool))


def cmd_pool_report(args: argparse.Namespace) -> int:
    return _emit(_service(args).pool_report(args.pool))


def cmd_member_royalties(args: argparse.Namespace) -> int:
    return _emit(_service(args).member_royalties(args.member))


def cmd_leaderboard(args: argparse.Namespace) -> int:
    return _emit(_service(args).leaderboard(limit=args.limit))


def cmd_remove_member(args: argparse.Namespace) -> int:
    return _emit(_service(args).remove_member_from_team(args.team, args.member))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Validate the governance parameter file."""
    errors = check_config_dir(args.config)
    if errors:
        print("Invariant check failed:")
        for error in errors:
            print(f" - {error}")
        return 1
    print("Invariant check passed.")
    return 0


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hackdao",
        description="HackDAO — governance and royalty engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("HACKDAO_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.environ.get("HACKDAO_DATA_DIR", DEFAULT_DATA)),
        help="Directory for ledger.json and events.jsonl (default: data/)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("HACKDAO_LOG_LEVEL", "WARNING"),
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=_env_flag("HACKDAO_LOG_JSON"),
        help="Emit logs as JSON lines",
    )
    sub = parser.add_subparsers(dest="command")

    # status / seed
    sub.add_parser("status", help="Show system status")
    sub.add_parser("seed", help="Load sample teams, members and contributions (once)")

    # create-proposal
    p_create = sub.add_parser("create-proposal", help="Create a proposal")
    p_create.add_argument(
        "--type", dest="proposal_type", required=True,
        choices=[t.value for t in ProposalType],
        help="Proposal type",
    )
    p_create.add_argument("--title", required=True, help="Proposal title")
    p_create.add_argument("--description", default="", help="Proposal description")
    p_create.add_argument("--proposer", required=True, help="Proposing member ID")
    p_create.add_argument("--team", required=True, help="Team ID")
    p_create.add_argument("--days", type=int, help="Voting period in days")
    p_create.add_argument("--quorum", help="Quorum fraction (Decimal)")
    p_create.add_argument("--threshold", help="Approval threshold fraction (Decimal)")

    # vote
    p_vote = sub.add_parser("vote", help="Cast a vote")
    p_vote.add_argument("--proposal", required=True, help="Proposal ID")
    p_vote.add_argument("--voter", required=True, help="Voting member ID")
    p_vote.add_argument("--choice", required=True, choices=[c.value for c in VoteChoice])
    p_vote.add_argument("--reason", default="", help="Optional reason")

    # finalize / execute-proposal / proposal-stats
    for name, help_text in (
        ("finalize", "Finalize a decided or expired proposal"),
        ("execute-proposal", "Apply a passed proposal's action"),
        ("proposal-stats", "Show quorum and approval for a proposal"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--proposal", required=True, help="Proposal ID")

    # distribute
    p_dist = sub.add_parser("distribute", help="Create and calculate a royalty pool")
    p_dist.add_argument("--team", required=True, help="Team ID")
    p_dist.add_argument("--amount", required=True, help="Pool amount (Decimal)")
    p_dist.add_argument("--name", help="Pool name")
    p_dist.add_argument("--currency", help="Currency code (default from config)")
    p_dist.add_argument(
        "--model", choices=[m.value for m in DistributionModel],
        help="Distribution model (default from config)",
    )
    p_dist.add_argument("--proposer", help="Member proposing the approval")
    p_dist.add_argument(
        "--no-approval", action="store_true",
        help="Settle immediately instead of opening an approval proposal",
    )

    # execute-distribution / pool-report
    for name, help_text in (
        ("execute-distribution", "Settle a calculated pool"),
        ("pool-report", "Show a pool's distribution rows"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--pool", required=True, help="Pool ID")

    # member-royalties
    p_member = sub.add_parser("member-royalties", help="Total royalties for a member")
    p_member.add_argument("--member", required=True, help="Member ID")

    # leaderboard / remove-member
    p_board = sub.add_parser("leaderboard", help="Top teams and members by contribution score")
    p_board.add_argument("--limit", type=int, default=10, help="Entries per board")

    p_remove = sub.add_parser("remove-member", help="Take a member off a team")
    p_remove.add_argument("--team", required=True, help="Team ID")
    p_remove.add_argument("--member", required=True, help="Member ID")

    # check-invariants
    sub.add_parser("check-invariants", help="Validate governance_params.json")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.log_level, json_output=args.log_json)

    commands = {
        "status": cmd_status,
        "seed": cmd_seed,
        "create-proposal": cmd_create_proposal,
        "vote": cmd_vote,
        "finalize": cmd_finalize,
        "execute-proposal": cmd_execute_proposal,
        "proposal-stats": cmd_proposal_stats,
        "distribute": cmd_distribute,
        "execute-distribution": cmd_execute_distribution,
        "pool-report": cmd_pool_report,
        "member-royalties": cmd_member_royalties,
        "leaderboard": cmd_leaderboard,
        "remove-member": cmd_remove_member,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
