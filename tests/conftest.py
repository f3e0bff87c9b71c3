"""
Pytest fixtures for the approval kernel test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- The default approval policy, a deterministic clock and a recording notifier
- Service, selector and sweeper factories
- Captured structured logs

Environment Variables:
- APPROVALS_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL).
  Tables are created before and dropped after each test.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from approval_config import get_active_policy
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.approval import ApprovalType
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.selectors.approval_selector import ApprovalSelector
from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.expiry_sweeper import ExpirySweeper
from approval_kernel.services.notifications import RecordingNotifier

DEFAULT_BRANCH = "branch-westlands"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, approval_service):
            approval_service.create_request(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get(
        "APPROVALS_TEST_DATABASE_URL",
        f"sqlite:///{tmp_path / 'approvals.db'}",
    )


@pytest.fixture
def engine(database_url):
    """Initialize the engine and a clean schema for one test."""
    eng = init_engine_from_url(database_url)
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    """Session for one test; uncommitted work is rolled back afterwards."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(engine):
    """Open extra sessions (closed automatically at teardown)."""
    opened: list[Session] = []

    def _open() -> Session:
        sess = get_session()
        opened.append(sess)
        return sess

    yield _open

    for sess in opened:
        sess.rollback()
        sess.close()


# =============================================================================
# Policy, clock, notifier
# =============================================================================


@pytest.fixture(scope="session")
def policy():
    """The default approval policy shipped in approval_config/sets/default."""
    return get_active_policy()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# =============================================================================
# Service / selector fixtures
# =============================================================================


@pytest.fixture
def approval_service(session, policy, deterministic_clock, notifier):
    return ApprovalService(session, policy, deterministic_clock, notifier)


@pytest.fixture
def approval_selector(session, policy):
    return ApprovalSelector(session, policy)


@pytest.fixture
def expiry_sweeper(session, policy, deterministic_clock, notifier):
    return ExpirySweeper(session, policy, deterministic_clock, notifier)


@pytest.fixture
def make_request(approval_service):
    """
    Factory creating a pending request with sensible defaults.

    Usage::

        req = make_request(ApprovalType.REFUND, amount=Decimal("12000"))
    """

    def _make(
        approval_type: ApprovalType = ApprovalType.CASH_OUT,
        amount: Decimal | None = Decimal("500"),
        branch_id: str = DEFAULT_BRANCH,
        **overrides,
    ):
        fields = {
            "description": f"{approval_type.value} request",
            "reason": "Customer request at counter",
            "requested_by": "user-frontdesk-1",
            "requested_by_name": "Front Desk One",
            "branch_id": branch_id,
            "amount": amount,
        }
        fields.update(overrides)
        return approval_service.create_request(approval_type, **fields)

    return _make
