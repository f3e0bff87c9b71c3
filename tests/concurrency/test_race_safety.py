"""
Concurrency tests for single terminal resolution.

Every write is a conditional UPDATE guarded by ``status`` and ``version``.
These tests replay the interleavings that break a naive read-then-write:
a writer holding a stale snapshot must lose, re-read, and observe the
winner's decision.  Most use sequential simulation; the threaded test runs
only against PostgreSQL (APPROVALS_TEST_DATABASE_URL).
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from approval_kernel.db.engine import is_postgres, session_scope
from approval_kernel.domain.approval import ApprovalStatus, ApprovalType, HistoryAction, Role
from approval_kernel.exceptions import ApprovalNotPendingError, OptimisticLockError
from approval_kernel.services.approval_service import ApprovalService

pytestmark = pytest.mark.concurrency


def _serve_stale_first(monkeypatch, service, stale):
    """Make ``service`` read ``stale`` once, then the real row."""
    real_load = service._load
    calls = {"n": 0}

    def _load(request_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return stale
        return real_load(request_id)

    monkeypatch.setattr(service, "_load", _load)
    return calls


class TestTerminalRace:
    def test_two_approvers_only_first_wins(self, approval_service, make_request, monkeypatch):
        request = make_request()
        stale = approval_service.get_request(request.request_id)

        approval_service.approve(request.request_id, "mgr-a", "Manager A", Role.MANAGER)

        calls = _serve_stale_first(monkeypatch, approval_service, stale)
        with pytest.raises(ApprovalNotPendingError):
            approval_service.approve(request.request_id, "mgr-b", "Manager B", Role.MANAGER)
        assert calls["n"] == 2

        final = approval_service.get_request(request.request_id)
        assert final.final_approver == "mgr-a"
        assert len(final.history) == 1

    def test_approve_and_reject_race(self, approval_service, make_request, monkeypatch):
        request = make_request()
        stale = approval_service.get_request(request.request_id)

        approval_service.reject(request.request_id, "mgr-a", "Manager A", Role.MANAGER, "Duplicate")

        _serve_stale_first(monkeypatch, approval_service, stale)
        with pytest.raises(ApprovalNotPendingError) as exc_info:
            approval_service.approve(request.request_id, "gm-b", "GM B", Role.GENERAL_MANAGER)
        assert exc_info.value.status == "rejected"

        final = approval_service.get_request(request.request_id)
        assert final.status == ApprovalStatus.REJECTED
        assert [e.action for e in final.history] == [HistoryAction.REJECT]

    def test_sweep_and_approval_race(
        self, approval_service, make_request, deterministic_clock, monkeypatch,
    ):
        request = make_request(ApprovalType.PRICE_OVERRIDE, amount=None)
        stale = approval_service.get_request(request.request_id)
        deterministic_clock.advance(hours=3)

        assert approval_service.sweep_expired().expired_ids == [request.request_id]

        _serve_stale_first(monkeypatch, approval_service, stale)
        with pytest.raises(ApprovalNotPendingError):
            approval_service.approve(request.request_id, "mgr-a", "Manager A", Role.MANAGER)
        assert approval_service.get_request(request.request_id).status == ApprovalStatus.EXPIRED

    def test_stale_writer_across_sessions(self, session, session_factory, policy, deterministic_clock, monkeypatch):
        writer_a = ApprovalService(session, policy, deterministic_clock)
        request = writer_a.create_request(
            ApprovalType.CASH_OUT, "Float", "Till short", "u1", "U1", "branch-1",
            amount=Decimal("100"),
        )
        session.commit()

        other = session_factory()
        writer_b = ApprovalService(other, policy, deterministic_clock)
        stale = writer_b.get_request(request.request_id)
        other.commit()

        writer_a.approve(request.request_id, "mgr-a", "Manager A", Role.MANAGER)
        session.commit()

        _serve_stale_first(monkeypatch, writer_b, stale)
        with pytest.raises(ApprovalNotPendingError):
            writer_b.approve(request.request_id, "mgr-b", "Manager B", Role.MANAGER)
        other.rollback()

        assert writer_a.get_request(request.request_id).final_approver == "mgr-a"


class TestLostUpdates:
    def test_decision_retries_after_concurrent_comment(
        self, approval_service, make_request, monkeypatch, captured_logs,
    ):
        request = make_request()
        stale = approval_service.get_request(request.request_id)

        approval_service.comment(request.request_id, "aud", "Auditor", Role.AUDITOR, "Receipts ok")

        _serve_stale_first(monkeypatch, approval_service, stale)
        approved = approval_service.approve(request.request_id, "mgr-a", "Manager A", Role.MANAGER)

        assert approved.status == ApprovalStatus.APPROVED
        assert [e.action for e in approved.history] == [
            HistoryAction.COMMENT,
            HistoryAction.APPROVE,
        ]
        assert approved.version == 3
        conflicts = [r for r in captured_logs() if r["message"] == "approval_write_conflict"]
        assert len(conflicts) == 1
        assert conflicts[0]["operation"] == "approve"
        assert conflicts[0]["request_id"] == str(request.request_id)
        assert conflicts[0]["branch_id"] == request.branch_id

    def test_concurrent_comments_both_kept(self, approval_service, make_request, monkeypatch):
        request = make_request()
        stale = approval_service.get_request(request.request_id)

        approval_service.comment(request.request_id, "a", "A", Role.MANAGER, "first")

        _serve_stale_first(monkeypatch, approval_service, stale)
        final = approval_service.comment(request.request_id, "b", "B", Role.MANAGER, "second")

        assert [e.comment for e in final.history] == ["first", "second"]

    def test_persistent_conflict_raises_optimistic_lock(
        self, approval_service, make_request, monkeypatch, policy,
    ):
        request = make_request()
        stale = approval_service.get_request(request.request_id)
        approval_service.comment(request.request_id, "a", "A", Role.MANAGER, "bump version")

        monkeypatch.setattr(approval_service, "_load", lambda request_id: stale)
        with pytest.raises(OptimisticLockError) as exc_info:
            approval_service.approve(request.request_id, "mgr-a", "Manager A", Role.MANAGER)
        assert exc_info.value.code == "OPTIMISTIC_LOCK_CONFLICT"

        monkeypatch.undo()
        current = approval_service.get_request(request.request_id)
        assert current.is_pending
        assert current.version == 2


class TestThreadedApprovals:
    def test_parallel_approvers_single_winner(self, engine, policy, deterministic_clock):
        if not is_postgres():
            pytest.skip("needs a database with row-level locking")

        with session_scope() as s:
            request = ApprovalService(s, policy, deterministic_clock).create_request(
                ApprovalType.CASH_OUT, "Float", "Till short", "u1", "U1", "branch-1",
                amount=Decimal("100"),
            )

        workers = 8
        barrier = Barrier(workers)

        def _approve(i):
            barrier.wait()
            try:
                with session_scope() as s:
                    ApprovalService(s, policy, deterministic_clock).approve(
                        request.request_id, f"mgr-{i}", f"Manager {i}", Role.MANAGER,
                    )
                return "approved"
            except ApprovalNotPendingError:
                return "not_pending"

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_approve, range(workers)))

        assert outcomes.count("approved") == 1
        assert outcomes.count("not_pending") == workers - 1

        with session_scope() as s:
            final = ApprovalService(s, policy, deterministic_clock).get_request(request.request_id)
        assert final.status == ApprovalStatus.APPROVED
        assert len(final.history) == 1
