#!/usr/bin/env python3
"""
CaseTrack — Board watcher CLI.

Keeps a local board mirror in sync with the server and prints the columns
whenever a reconciliation pass changes something.

Commands:
    python scripts/watch_board.py --tenant 3
    python scripts/watch_board.py --tenant 3 --user 12 --scope mine --interval 2
    python scripts/watch_board.py --tenant 3 --once       # single pass, then exit
"""

import argparse
import os
import sys
import threading

sys.path.insert(0, ".")


def _print_board(mirror):
    print()
    for column, cards in mirror.as_columns().items():
        print(f"  {column} ({len(cards)})")
        print("  " + "─" * 60)
        for card in cards:
            ref = f" [{card.reference_code}]" if card.reference_code else ""
            print(f"    #{card.id:<6} {card.title:<30} {card.client or '':<20}{ref}")
    print()


def main():
    from casetrack.board import BoardApiClient, BoardMirror, BoardPoller, BoardSession
    from casetrack.board.mirror import BoardRenderer
    from casetrack.middleware.logging_config import setup_handlers

    parser = argparse.ArgumentParser(description="Watch the CaseTrack action board")
    parser.add_argument("--url", default=os.getenv("CASETRACK_URL", "http://localhost:5000"))
    parser.add_argument("--tenant", type=int, required=True, help="Tenant id")
    parser.add_argument("--user", type=int, default=None, help="Viewing user id")
    parser.add_argument("--scope", choices=("all", "mine"), default="all")
    parser.add_argument("--status", default=None, help="Server-side status filter")
    parser.add_argument("--interval", type=float,
                        default=float(os.getenv("BOARD_POLL_INTERVAL", "5")))
    parser.add_argument("--timeout", type=float,
                        default=float(os.getenv("BOARD_HTTP_TIMEOUT", "10")))
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    args = parser.parse_args()

    setup_handlers(os.getenv("LOG_LEVEL", "INFO"), json_format=False)

    try:
        session = BoardSession(
            base_url=args.url, tenant_id=args.tenant, user_id=args.user,
            scope=args.scope, status=args.status,
        )
    except ValueError as exc:
        print(f"  ❌ {exc}")
        sys.exit(1)

    changed = threading.Event()

    class _ChangeFlag(BoardRenderer):
        def on_insert(self, card):
            changed.set()

        def on_update(self, card, fields):
            changed.set()

        def on_remove(self, card):
            changed.set()

    client = BoardApiClient(session, timeout=args.timeout)
    mirror = BoardMirror(session.columns, renderer=_ChangeFlag())
    poller = BoardPoller(client, mirror, interval=args.interval)

    if args.once:
        result = poller.sync_now()
        if result is None:
            print(f"  ❌ {poller.last_error.message}")
            sys.exit(1)
        _print_board(mirror)
        return

    print(f"  Watching tenant {args.tenant} at {args.url} (Ctrl+C to stop)")
    poller.start()
    try:
        while True:
            if changed.wait(1.0):
                changed.clear()
                _print_board(mirror)
    except KeyboardInterrupt:
        print("\n  Stopped")
    finally:
        poller.stop(timeout=args.timeout)


if __name__ == "__main__":
    main()
