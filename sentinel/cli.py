#!/usr/bin/env python3
"""
Sentinel Command Line Interface

Usage:
    sentinel invite <subject_id> [--host <host>]
    sentinel scan <station_id> <subject_id> <tier> [--modality QR|FACE|PLATE] [--resolve approve|reject]
    sentinel incidents [--limit <n>]
    sentinel grant <subject_id> <tier>
    sentinel grants
    sentinel locations
    sentinel check-config
"""

import argparse
import json
import sys

from pydantic import ValidationError

from . import config
from .db import SqliteApprovalGrantStore
from .engine import create_orchestrator, get_catalog, open_database
from .logging_config import configure_logging
from .orchestrator import Modality, ScanRequest
from .stores import PersistenceUnavailable
from .subjects import DirectoryUnavailable, UnknownSubjectError
from .tiers import UnknownTierError, access_guidance, display_label


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _ask_resolution() -> str:
    """Prompt the operator at the desk for a manual-review decision."""
    while True:
        try:
            answer = input("Manual clearance required. [a]pprove / [r]eject / [c]ancel: ").strip().lower()
        except EOFError:
            return "cancel"
        if answer in ("a", "approve"):
            return "approve"
        if answer in ("r", "reject"):
            return "reject"
        if answer in ("c", "cancel", ""):
            return "cancel"


def cmd_invite(args) -> int:
    orchestrator = create_orchestrator(db=open_database(args.db))
    orchestrator.register_invitation(args.subject_id, host=args.host)
    print(f"✓ Invitation registered for {args.subject_id}", file=sys.stderr)
    return 0


def cmd_scan(args) -> int:
    """Run one checkpoint scan, resolving manual review at the desk if needed."""
    orchestrator = create_orchestrator(db=open_database(args.db))
    request = ScanRequest(
        station_id=args.station_id,
        subject_id=args.subject_id,
        tier=args.tier,
        modality=Modality(args.modality.upper())
    )
    session = orchestrator.scan(request)

    if session.awaiting_review():
        decision = args.resolve or ("cancel" if args.no_input else _ask_resolution())
        if decision == "approve":
            orchestrator.approve(session, operator=args.operator)
        elif decision == "reject":
            orchestrator.reject(session, operator=args.operator)
        else:
            orchestrator.cancel(session)
            _print_json(session.to_dict())
            print("\n… Session cancelled; no clearance recorded", file=sys.stderr)
            return 2

    out = session.to_dict()
    verdict = orchestrator.close(session)
    out["label"] = display_label(session.tier, privileged=session.subject.is_staff())
    out["guidance"] = access_guidance(session.tier) if verdict.allowed() else None
    _print_json(out)

    if verdict.allowed():
        print(f"\n✓ ALLOW: {verdict.reason}", file=sys.stderr)
        return 0
    print(f"\n✗ DENY: {verdict.reason}", file=sys.stderr)
    return 1


def cmd_incidents(args) -> int:
    orchestrator = create_orchestrator(db=open_database(args.db))
    _print_json([i.to_dict() for i in orchestrator.incident_feed(args.limit)])
    return 0


def cmd_grant(args) -> int:
    catalog = get_catalog()
    tier = catalog.resolve(args.tier)
    grant = SqliteApprovalGrantStore(open_database(args.db)).lookup(args.subject_id, tier)
    if grant is None:
        print(f"No clearance on record for {args.subject_id} at {tier.value}", file=sys.stderr)
        return 1
    _print_json(grant.to_dict())
    return 0


def cmd_grants(args) -> int:
    grants = SqliteApprovalGrantStore(open_database(args.db)).grants()
    _print_json([g.to_dict() for g in grants])
    return 0


def cmd_locations(args) -> int:
    catalog = get_catalog()
    rows = []
    for location in catalog.locations():
        row = location.to_dict()
        row["policy_class"] = catalog.classify(location.tier).value
        row["label"] = display_label(location.tier)
        rows.append(row)
    _print_json(rows)
    return 0


def cmd_check_config(args) -> int:
    checks = config.validate_config()
    _print_json({"env": config.ENV, "db_path": config.DB_PATH, "checks": checks})
    return 0 if all(checks.values()) else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="sentinel",
        description="Sentinel checkpoint access engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sentinel invite V-1005 --host S-2001
  sentinel scan GATE-1 V-1005 ORANGE
  sentinel scan GATE-2 V-1003 RED_2 --resolve approve --operator OPS-7
  sentinel incidents --limit 10
        """
    )
    parser.add_argument("--db", default=None, help="SQLite database path (default: SENTINEL_DB_PATH)")
    parser.add_argument("--log-level", default=None, help="Log level (default: SENTINEL_LOG_LEVEL)")
    parser.add_argument("--text-logs", action="store_true", help="Plain text logs instead of JSON")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    invite_parser = subparsers.add_parser("invite", help="Register a cross-zone invitation")
    invite_parser.add_argument("subject_id")
    invite_parser.add_argument("--host", help="Inviting host")

    scan_parser = subparsers.add_parser("scan", help="Run a checkpoint scan")
    scan_parser.add_argument("station_id")
    scan_parser.add_argument("subject_id")
    scan_parser.add_argument("tier")
    scan_parser.add_argument("-m", "--modality", default="QR", choices=[m.value for m in Modality])
    scan_parser.add_argument("--resolve", choices=["approve", "reject"], help="Resolve manual review")
    scan_parser.add_argument("--operator", default="operator", help="Resolving operator id")
    scan_parser.add_argument("--no-input", action="store_true", help="Cancel instead of prompting")

    incidents_parser = subparsers.add_parser("incidents", help="Show the incident feed")
    incidents_parser.add_argument("-n", "--limit", type=int, default=None)

    grant_parser = subparsers.add_parser("grant", help="Look up a persisted clearance")
    grant_parser.add_argument("subject_id")
    grant_parser.add_argument("tier")

    subparsers.add_parser("grants", help="List persisted clearances")
    subparsers.add_parser("locations", help="List destinations and their tiers")
    subparsers.add_parser("check-config", help="Validate configuration")

    args = parser.parse_args(argv)

    level = args.log_level or ("DEBUG" if config.is_debug() else config.LOG_LEVEL)
    configure_logging(level=level, json_format=config.LOG_JSON and not args.text_logs)

    commands = {
        "invite": cmd_invite,
        "scan": cmd_scan,
        "incidents": cmd_incidents,
        "grant": cmd_grant,
        "grants": cmd_grants,
        "locations": cmd_locations,
        "check-config": cmd_check_config,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return handler(args)
    except (UnknownTierError, UnknownSubjectError, ValidationError) as e:
        print(f"✗ Rejected: {e}", file=sys.stderr)
        return 3
    except (PersistenceUnavailable, DirectoryUnavailable) as e:
        print(f"✗ Unavailable: {e}", file=sys.stderr)
        return 4


if __name__ == "__main__":
    sys.exit(main())
