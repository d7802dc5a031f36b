#!/usr/bin/env python3
"""
Command-line entry point: run cron passes from an OS scheduler.

    webcron run      run due jobs with scope "cli" (default command)
    webcron list     show jobs with last and next run
    webcron prune    delete run states of jobs that are no longer registered
"""
import argparse
import logging
import sys
from typing import List, Optional

from webcron.core.config import settings
from webcron.core.cron.errors import CronValidationError, LockTimeoutError
from webcron.core.cron.models import Scope
from webcron.core.cron.service import Cron, build_cron

logger = logging.getLogger(__name__)


def _format_time(value) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


def cmd_run(cron: Cron, args: argparse.Namespace) -> int:
    executed = cron.run(Scope.CLI)
    for job in executed:
        print(f"Executed {job.name}")
    if not executed:
        print("No cron jobs due")
    return 0


def cmd_list(cron: Cron, args: argparse.Namespace) -> int:
    statuses = cron.status()
    if not statuses:
        print("No cron jobs registered")
        return 0
    width = max(len(s.name) for s in statuses)
    print(f"{'NAME':<{width}}  {'INTERVAL':<15}  {'LAST RUN':<25}  {'NEXT RUN':<25}  DUE")
    for s in statuses:
        print(
            f"{s.name:<{width}}  {s.interval:<15}  {_format_time(s.last_run):<25}  "
            f"{_format_time(s.next_run):<25}  {'yes' if s.due else 'no'}"
        )
    return 0


def cmd_prune(cron: Cron, args: argparse.Namespace) -> int:
    deleted = cron.prune()
    print(f"Deleted {deleted} orphaned run state(s)")
    return 0


COMMANDS = {
    "run": cmd_run,
    "list": cmd_list,
    "prune": cmd_prune,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webcron", description="Run and inspect cron jobs.")
    parser.add_argument("command", nargs="?", default="run", choices=sorted(COMMANDS), help="Command to run (default: run).")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level.")
    parser.add_argument("--init-db", action="store_true", help="Create missing tables before running.")
    return parser


def main(argv: Optional[List[str]] = None, cron: Optional[Cron] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if (args.debug or settings.debug) else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.init_db:
        from webcron.core.memory.db import init_db
        init_db()

    if cron is None:
        try:
            cron = build_cron()
        except CronValidationError as e:
            print(f"error: invalid cron configuration: {e}", file=sys.stderr)
            return 1

    try:
        return COMMANDS[args.command](cron, args)
    except LockTimeoutError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
