"""Tests for the periodic expiry job (scripts/expire_approvals.py)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from approval_config import get_active_policy
from approval_kernel.db.engine import (
    create_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from approval_kernel.domain.approval import ApprovalStatus, ApprovalType
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.services.approval_service import ApprovalService
from scripts.expire_approvals import build_parser, main

CREATED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def seeded_db(tmp_path):
    """A SQLite file with one overdue-able and one never-expiring request."""
    url = f"sqlite:///{tmp_path / 'sweep.db'}"
    init_engine_from_url(url)
    create_tables()
    clock = DeterministicClock(CREATED_AT)
    with session_scope() as session:
        service = ApprovalService(session, get_active_policy(), clock)
        override = service.create_request(
            ApprovalType.PRICE_OVERRIDE, "Override", "Price tag wrong", "u1", "U1", "branch-1",
        )
        disposal = service.create_request(
            ApprovalType.DISPOSAL, "Dispose", "Garment ruined", "u1", "U1", "branch-1",
            amount=Decimal("0"),
        )
    reset_engine()
    yield url, override, disposal
    reset_engine()


def _statuses(url, *request_ids):
    init_engine_from_url(url)
    try:
        with session_scope() as session:
            service = ApprovalService(session, get_active_policy())
            return [service.get_request(rid).status for rid in request_ids]
    finally:
        reset_engine()


class TestParser:
    def test_naive_as_of_is_utc(self):
        args = build_parser().parse_args(["--as-of", "2024-01-02T00:00:00"])
        assert args.as_of == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_bad_as_of_rejected(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--as-of", "tomorrow"])
        assert "not an ISO-8601 timestamp" in capsys.readouterr().err

    def test_database_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")
        assert build_parser().parse_args([]).database_url == "sqlite:///from-env.db"


class TestMain:
    def test_expires_overdue_requests(self, seeded_db, capsys):
        url, override, disposal = seeded_db
        as_of = (CREATED_AT + timedelta(hours=3)).isoformat()

        exit_code = main(["--database-url", url, "--as-of", as_of, "--log-level", "WARNING"])

        assert exit_code == 0
        assert "Expired 1 request(s)" in capsys.readouterr().out
        assert _statuses(url, override.request_id, disposal.request_id) == [
            ApprovalStatus.EXPIRED,
            ApprovalStatus.PENDING,
        ]

    def test_second_run_is_a_no_op(self, seeded_db, capsys):
        url, override, _ = seeded_db
        as_of = (CREATED_AT + timedelta(hours=3)).isoformat()

        main(["--database-url", url, "--as-of", as_of])
        capsys.readouterr()
        assert main(["--database-url", url, "--as-of", as_of]) == 0
        assert "Expired 0 request(s)" in capsys.readouterr().out

    def test_before_deadline_nothing_expires(self, seeded_db):
        url, override, _ = seeded_db
        as_of = (CREATED_AT + timedelta(hours=1)).isoformat()

        assert main(["--database-url", url, "--as-of", as_of]) == 0
        assert _statuses(url, override.request_id) == [ApprovalStatus.PENDING]

    def test_create_tables_on_empty_database(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'empty.db'}"
        assert main(["--database-url", url, "--create-tables"]) == 0
        assert "Expired 0 request(s)" in capsys.readouterr().out

    def test_missing_schema_reports_storage_error(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'no-schema.db'}"
        assert main(["--database-url", url]) == 1
        assert "sweep failed" in capsys.readouterr().err
