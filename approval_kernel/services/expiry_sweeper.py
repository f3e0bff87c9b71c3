"""
approval_kernel.services.expiry_sweeper -- Batch expiry of stale requests.

Responsibility:
    Finds pending requests whose ``expires_at`` has passed and moves each
    to ``expired``.  Meant to run periodically (see scripts/expire_approvals.py).

Architecture position:
    Kernel > Services.  Uses the same conditional-UPDATE discipline as
    ApprovalService so a sweep can never overwrite a concurrent decision.

Invariants enforced:
    - Only ``pending`` rows with ``expires_at <= as_of`` are touched; the
      guard is re-checked inside the UPDATE itself.
    - Idempotent: a second sweep with the same ``as_of`` expires nothing.
    - Per-item isolation: each row is expired inside its own SAVEPOINT; a
      failure of any kind on one row is logged, recorded and does not
      stop the sweep.
    - Expiry appends no history entry and leaves ``final_decision_date``
      unset; ``updated_at`` and ``version`` are advanced.

Failure modes:
    - StorageError if the candidate query itself fails.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from approval_kernel.db.engine import translate_storage_errors
from approval_kernel.domain.approval import ApprovalRequest, ApprovalStatus
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.policy import ApprovalPolicy
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.approval import ApprovalRequestModel
from approval_kernel.services.notifications import (
    APPROVAL_EXPIRED,
    ApprovalNotifier,
    NullNotifier,
    dispatch_notification,
)

logger = get_logger("services.expiry_sweeper")


@dataclass
class SweepResult:
    """Outcome of one sweep.

    ``skipped_ids`` holds candidates another writer resolved between the
    candidate query and the expiring UPDATE.
    """

    as_of: datetime
    expired_ids: list[UUID] = field(default_factory=list)
    skipped_ids: list[UUID] = field(default_factory=list)
    failed_ids: list[UUID] = field(default_factory=list)

    @property
    def expired_count(self) -> int:
        return len(self.expired_ids)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_ids)


class ExpirySweeper:
    """Expires overdue pending requests one row at a time."""

    def __init__(
        self,
        session: Session,
        policy: ApprovalPolicy | None = None,
        clock: Clock | None = None,
        notifier: ApprovalNotifier | None = None,
    ) -> None:
        self._session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._notifier = notifier or NullNotifier()

    def find_candidates(self, as_of: datetime) -> list[UUID]:
        """Pending requests due at ``as_of``, oldest deadline first."""
        with translate_storage_errors("find_expired"):
            rows = self._session.execute(
                select(ApprovalRequestModel.request_id)
                .where(
                    ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                    ApprovalRequestModel.expires_at.is_not(None),
                    ApprovalRequestModel.expires_at <= as_of,
                )
                .order_by(ApprovalRequestModel.expires_at)
            ).scalars().all()
        return list(rows)

    def sweep(self, now: datetime | None = None) -> SweepResult:
        as_of = now or self._clock.now()
        result = SweepResult(as_of=as_of)
        candidates = self.find_candidates(as_of)

        logger.info(
            "approval_sweep_started",
            extra={"as_of": as_of.isoformat(), "candidates": len(candidates)},
        )

        for request_id in candidates:
            with LogContext.bind(request_id=str(request_id)):
                try:
                    with self._session.begin_nested():
                        expired = self._expire_one(request_id, as_of)
                except Exception:
                    # Any single row (driver error, undecodable legacy value)
                    # is recorded and the sweep moves on.
                    logger.error("approval_sweep_item_failed", exc_info=True)
                    result.failed_ids.append(request_id)
                    continue

                if expired is None:
                    result.skipped_ids.append(request_id)
                    continue

                result.expired_ids.append(request_id)
                with LogContext.bind(branch_id=expired.branch_id):
                    logger.info("approval_expired")
                self._notify_expired(expired)

        logger.info(
            "approval_sweep_completed",
            extra={
                "as_of": as_of.isoformat(),
                "expired": len(result.expired_ids),
                "skipped": len(result.skipped_ids),
                "failed": len(result.failed_ids),
            },
        )
        return result

    def _expire_one(self, request_id: UUID, as_of: datetime) -> ApprovalRequest | None:
        """Expire one row if still due; None when another writer got there first."""
        outcome = self._session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.request_id == request_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                ApprovalRequestModel.expires_at <= as_of,
            )
            .values(
                status=ApprovalStatus.EXPIRED.value,
                updated_at=as_of,
                version=ApprovalRequestModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            return None

        model = self._session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return model.to_dto()

    def _notify_expired(self, request: ApprovalRequest) -> None:
        channels = ()
        if self._policy is not None:
            workflow = self._policy.get_workflow(request.approval_type)
            if workflow is not None:
                channels = workflow.notify_channels
        dispatch_notification(self._notifier, APPROVAL_EXPIRED, request, channels)
