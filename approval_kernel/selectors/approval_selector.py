"""
Module: approval_kernel.selectors.approval_selector
Responsibility: Read-only query access to approval requests: single lookup,
    listings by status and type, the "pending for this actor" queue, and
    statistics for a branch and date range.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and approval_engines (pure).  MUST NOT import from services/.

Invariants enforced:
    - Read-only: No mutations performed on any queried data.
    - DTO convention: public methods return ApprovalRequest DTOs (or
      ApprovalStatistics), never ORM models.
    - Ordering: listings are ordered by created_at descending, newest first.
    - Actor queue: only requests the actor's tier may resolve; scoped to
      the given branch unless the tier ranks at or above the policy's
      branch-agnostic tier.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
    - StorageError when the query itself fails.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from approval_engines.approval import can_approve, resolve_tier, sees_all_branches
from approval_engines.statistics import ApprovalStatistics, aggregate_statistics
from approval_kernel.db.engine import translate_storage_errors
from approval_kernel.domain.approval import (
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    Role,
)
from approval_kernel.domain.policy import ApprovalPolicy
from approval_kernel.models.approval import ApprovalRequestModel
from approval_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[ApprovalRequestModel]):
    """
    Selector for approval request queries.

    Contract:
        All public query methods return ApprovalRequest DTOs (or lists
        thereof).  ``pending_for_actor`` needs the policy to resolve roles.
    """

    def __init__(self, session: Session, policy: ApprovalPolicy):
        super().__init__(session)
        self._policy = policy

    def _fetch(self, stmt: Select) -> list[ApprovalRequest]:
        stmt = stmt.order_by(ApprovalRequestModel.created_at.desc())
        with translate_storage_errors("query_requests"):
            models = self.session.execute(stmt).scalars().all()
        return [m.to_dto() for m in models]

    def find(self, request_id: UUID) -> ApprovalRequest | None:
        """Get a request by its ID, or None."""
        with translate_storage_errors("query_requests"):
            model = self.session.execute(
                select(ApprovalRequestModel).where(
                    ApprovalRequestModel.request_id == request_id,
                )
            ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_by_status(
        self,
        status: ApprovalStatus,
        branch_id: str | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.status == ApprovalStatus(status).value,
        )
        if branch_id is not None:
            stmt = stmt.where(ApprovalRequestModel.branch_id == branch_id)
        return self._fetch(stmt)

    def list_by_type(
        self,
        approval_type: ApprovalType,
        status: ApprovalStatus | None = None,
        branch_id: str | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.approval_type == ApprovalType(approval_type).value,
        )
        if status is not None:
            stmt = stmt.where(
                ApprovalRequestModel.status == ApprovalStatus(status).value,
            )
        if branch_id is not None:
            stmt = stmt.where(ApprovalRequestModel.branch_id == branch_id)
        return self._fetch(stmt)

    def pending_for_actor(
        self,
        role: Role | str,
        branch_id: str | None = None,
    ) -> list[ApprovalRequest]:
        """Pending requests an actor holding ``role`` may resolve right now.

        Roles without a tier get an empty list.  ``branch_id`` is ignored
        for tiers that see every branch.
        """
        tier = resolve_tier(self._policy, role)
        if tier is None:
            return []

        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
        )
        if branch_id is not None and not sees_all_branches(self._policy, tier):
            stmt = stmt.where(ApprovalRequestModel.branch_id == branch_id)

        return [r for r in self._fetch(stmt) if can_approve(self._policy, role, r)]

    def statistics(
        self,
        branch_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ApprovalStatistics:
        """Roll up requests created in [start, end] for a branch (or all)."""
        stmt = select(ApprovalRequestModel)
        if branch_id is not None:
            stmt = stmt.where(ApprovalRequestModel.branch_id == branch_id)
        if start is not None:
            stmt = stmt.where(ApprovalRequestModel.created_at >= start)
        if end is not None:
            stmt = stmt.where(ApprovalRequestModel.created_at <= end)
        return aggregate_statistics(self._fetch(stmt))
