#!/usr/bin/env python3
"""
Expire overdue pending approval requests.

Run periodically (cron, systemd timer).  Every pending request whose
deadline has passed is moved to ``expired``; one failing row does not
stop the rest.  Exit status is 1 when any row failed.

Usage:
    python3 scripts/expire_approvals.py --database-url sqlite:///approvals.db
    python3 scripts/expire_approvals.py --as-of 2024-03-01T00:00:00+00:00
    DATABASE_URL=postgresql://... python3 scripts/expire_approvals.py
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from approval_config import get_active_policy
from approval_kernel.db.engine import (
    create_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from approval_kernel.exceptions import StorageError
from approval_kernel.logging_config import configure_logging
from approval_kernel.services.expiry_sweeper import ExpirySweeper

DEFAULT_DB_URL = "sqlite:///approvals.db"


def _parse_as_of(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Expire overdue approval requests")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", DEFAULT_DB_URL),
        help="SQLAlchemy URL (default: $DATABASE_URL or %(default)s)",
    )
    parser.add_argument(
        "--as-of",
        type=_parse_as_of,
        default=None,
        help="Sweep as of this ISO timestamp instead of now (naive = UTC)",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding approval_workflows.yaml",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before sweeping",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    policy = get_active_policy(args.config_dir)
    init_engine_from_url(args.database_url)
    try:
        if args.create_tables:
            create_tables()
        with session_scope() as session:
            result = ExpirySweeper(session, policy).sweep(args.as_of)
    except StorageError as exc:
        print(f"ERROR: sweep failed: {exc}", file=sys.stderr)
        return 1
    finally:
        reset_engine()

    print(
        f"Expired {len(result.expired_ids)} request(s) as of "
        f"{result.as_of.isoformat()}; skipped {len(result.skipped_ids)}, "
        f"failed {len(result.failed_ids)}"
    )
    for request_id in result.failed_ids:
        print(f"  FAILED {request_id}", file=sys.stderr)

    return 1 if result.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
