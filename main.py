#!/usr/bin/env python3
"""
Hacka-Fi -- command line entry point.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py status-check
  python main.py status-check --at 2026-03-01T12:00:00Z --json
  python main.py purge-nonces

Environment variables (see core/config.py for the full list):
  DATABASE_URL   SQLAlchemy URL shared by both stores. Empty uses local SQLite files.
  SECRET_KEY     JWT signing key (required unless DEBUG=true).
"""

import argparse
import json
import sys

from core.config import get_settings
from core.models import as_utc, utcnow


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_status_check(args: argparse.Namespace) -> int:
    from hackathons.status import run_status_check
    from hackathons.store import HackathonStore

    settings = get_settings()
    try:
        now = as_utc(args.at.replace("Z", "+00:00")) if args.at else utcnow()
    except ValueError:
        print(f"  [!] '{args.at}' is not an ISO 8601 timestamp.")
        return 2

    store = HackathonStore(settings.database_url) if settings.database_url else HackathonStore()
    try:
        result = run_status_check(store, now)
    finally:
        store.close()

    if args.json:
        print(
            json.dumps(
                {
                    "checked_at": now.isoformat(),
                    "processed": result.processed,
                    "updated": result.updated,
                    "transitions": result.transitions,
                    "failed": result.failed,
                },
                indent=2,
            )
        )
    else:
        print(f"\nStatus check at {now.isoformat()}")
        print("─" * 40)
        print(f"  {result.processed} active hackathon(s) checked, {result.updated} updated.")
        for t in result.transitions:
            print(f"  #{t['hackathon_id']}: {t['from_status']} -> {t['to_status']} ({t['reason']})")
        if result.failed:
            print(f"  [!] {len(result.failed)} hackathon(s) failed: {', '.join(map(str, result.failed))}")
    return 1 if result.failed else 0


def _cmd_purge_nonces(args: argparse.Namespace) -> int:
    from auth.store import AuthStore

    settings = get_settings()
    store = AuthStore(settings.database_url) if settings.database_url else AuthStore()
    try:
        purged = store.purge_expired_challenges()
    finally:
        store.close()
    print(f"  Purged {purged} expired nonce(s).")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="hackafi",
        description="Hacka-Fi -- blockchain hackathon platform API.",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development only)")
    serve.set_defaults(func=_cmd_serve)

    check = sub.add_parser("status-check", help="Apply due deadline transitions once and exit")
    check.add_argument("--at", metavar="ISO8601", help="Evaluate deadlines at this instant instead of now")
    check.add_argument("--json", action="store_true", help="Print the result as JSON")
    check.set_defaults(func=_cmd_status_check)

    purge = sub.add_parser("purge-nonces", help="Delete expired sign-in challenges")
    purge.set_defaults(func=_cmd_purge_nonces)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
