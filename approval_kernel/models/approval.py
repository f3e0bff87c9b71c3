"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval requests.  One row per request,
    with the ordered audit trail embedded as a JSON list (no join).

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    - Stored status is one of pending/approved/rejected/expired (DB check
      constraint); escalation is never a stored status.
    - Resolved requests are frozen: the ORM refuses to flush changes to a
      row whose loaded status is terminal.
    - History is append-only: the ORM refuses to flush a history value
      that does not start with the previously loaded history.
    - Requests are never deleted.

Failure modes:
    - ImmutabilityViolationError on ORM update of a resolved request, on a
      history rewrite, or on delete.
    - IntegrityError on an invalid status value.

Audit relevance:
    The embedded history is the governance audit trail.  Service writes go
    through compare-and-swap UPDATE statements keyed on ``status`` and
    ``version`` so no decision is ever lost to a concurrent writer.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, Numeric, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import (
    TERMINAL_APPROVAL_STATUSES,
    ApprovalHistoryEntry,
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    Priority,
    Tier,
)
from approval_kernel.exceptions import ImmutabilityViolationError

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_APPROVAL_STATUSES)


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        Status transitions go through ApprovalService's conditional updates.
        ``version`` increments on every write.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'expired')",
            name="ck_approval_requests_valid_status",
        ),
        # Expiry sweep
        Index("ix_approval_requests_expiry", "status", "expires_at"),
        # Pending-for-actor and branch listings
        Index(
            "ix_approval_requests_branch_status",
            "branch_id", "status", "created_at",
        ),
        # Listings by type
        Index("ix_approval_requests_type_status", "approval_type", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    approval_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_tier: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    final_approver: Mapped[str | None] = mapped_column(String(100), nullable=True)
    final_approver_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    final_decision_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    # ``metadata`` is reserved on declarative classes.
    request_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} "
            f"{self.approval_type} tier={self.current_tier} "
            f"status={self.status}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalRequest(
            request_id=self.request_id,
            approval_type=ApprovalType(self.approval_type),
            status=ApprovalStatus(self.status),
            current_tier=Tier(self.current_tier),
            description=self.description,
            reason=self.reason,
            requested_by=self.requested_by,
            requested_by_name=self.requested_by_name,
            branch_id=self.branch_id,
            branch_name=self.branch_name,
            created_at=self.created_at,
            updated_at=self.updated_at,
            priority=Priority(self.priority),
            amount=self.amount,
            entity_id=self.entity_id,
            entity_type=self.entity_type,
            history=tuple(
                ApprovalHistoryEntry.from_dict(item) for item in (self.history or [])
            ),
            final_approver=self.final_approver,
            final_approver_name=self.final_approver_name,
            final_decision_date=self.final_decision_date,
            rejection_reason=self.rejection_reason,
            expires_at=self.expires_at,
            escalated_at=self.escalated_at,
            metadata=dict(self.request_metadata or {}),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model from domain DTO."""
        return cls(
            request_id=dto.request_id,
            approval_type=dto.approval_type.value,
            status=dto.status.value,
            current_tier=dto.current_tier.value,
            amount=dto.amount,
            entity_id=dto.entity_id,
            entity_type=dto.entity_type,
            description=dto.description,
            reason=dto.reason,
            requested_by=dto.requested_by,
            requested_by_name=dto.requested_by_name,
            branch_id=dto.branch_id,
            branch_name=dto.branch_name,
            history=[entry.to_dict() for entry in dto.history],
            final_approver=dto.final_approver,
            final_approver_name=dto.final_approver_name,
            final_decision_date=dto.final_decision_date,
            rejection_reason=dto.rejection_reason,
            priority=dto.priority.value,
            expires_at=dto.expires_at,
            escalated_at=dto.escalated_at,
            request_metadata=dict(dto.metadata),
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            version=dto.version,
        )


# =============================================================================
# ORM-Level Immutability (resolved requests, append-only history)
# =============================================================================


@event.listens_for(ApprovalRequestModel, "before_update")
def prevent_resolved_update(mapper, connection, target):
    """Refuse ORM flushes that rewrite history or touch a resolved request."""
    state = inspect(target)

    status_history = state.attrs.status.history
    previous_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )
    if previous_status in _TERMINAL_VALUES:
        raise ImmutabilityViolationError(
            entity_type="ApprovalRequest",
            entity_id=str(target.request_id),
            reason=f"Request is {previous_status} -- cannot modify",
        )

    trail = state.attrs.history.history
    if trail.deleted:
        previous = list(trail.deleted[0] or [])
        current = list(target.history or [])
        if current[: len(previous)] != previous:
            raise ImmutabilityViolationError(
                entity_type="ApprovalRequest",
                entity_id=str(target.request_id),
                reason="Approval history is append-only -- cannot rewrite entries",
            )


@event.listens_for(ApprovalRequestModel, "before_delete")
def prevent_request_delete(mapper, connection, target):
    """Prevent deletion of approval requests."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalRequest",
        entity_id=str(target.request_id),
        reason="Approval requests are never deleted",
    )
