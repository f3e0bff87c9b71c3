"""
approval_kernel.services.approval_service -- Approval lifecycle management.

Responsibility:
    Manages the full lifecycle of approval requests: creation, approval,
    rejection, escalation, comments and expiry.  Delegates tier resolution
    and authorization to the pure approval engine.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and
    approval_engines.  The caller owns the session and its transaction.

Invariants enforced:
    - Pending precondition: approve/reject/escalate require ``pending``.
      ``comment`` is accepted in every status and never changes it.
    - Global-rank authorization: an actor resolves a request only if the
      actor's tier ranks at or above ``current_tier``.
    - At most one terminal transition: every write is a conditional UPDATE
      guarded by ``status`` and ``version``; a writer that loses the race
      re-reads and observes ApprovalNotPendingError.
    - Append-only history: each write stores the previously read history
      plus exactly one new entry, timestamped no earlier than the last.
    - Escalation never stores an ``escalated`` status: it bumps
      ``current_tier``, stamps ``escalated_at`` and stays ``pending``.

Failure modes:
    - ApprovalNotFoundError if request_id not found.
    - ApprovalNotPendingError on a resolved or expired request.
    - NoTierAssignedError when the actor's role has no tier.
    - UnauthorizedApproverError when the actor's tier is too low.
    - CannotEscalateFurtherError at the top of the hierarchy.
    - InvalidReasonError on an empty or too-short rejection reason.
    - UnknownApprovalTypeError for an unconfigured approval type.
    - InvalidAmountError for NaN, infinite or non-numeric amounts.
    - OptimisticLockError when every write attempt lost to other writers.
    - StorageError on any persistence failure.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from approval_engines.approval import (
    next_tier,
    required_tier,
    resolve_tier,
    tier_at_least,
)
from approval_kernel.db.engine import translate_storage_errors
from approval_kernel.domain.approval import (
    ApprovalHistoryEntry,
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    HistoryAction,
    Priority,
    Role,
    Tier,
    append_history,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.policy import ApprovalPolicy, WorkflowConfig
from approval_kernel.exceptions import (
    ApprovalNotFoundError,
    ApprovalNotPendingError,
    CannotEscalateFurtherError,
    InvalidAmountError,
    InvalidReasonError,
    NoTierAssignedError,
    OptimisticLockError,
    UnauthorizedApproverError,
    UnknownApprovalTypeError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.approval import ApprovalRequestModel
from approval_kernel.services.expiry_sweeper import ExpirySweeper, SweepResult
from approval_kernel.services.notifications import (
    APPROVAL_APPROVED,
    APPROVAL_COMMENTED,
    APPROVAL_ESCALATED,
    APPROVAL_REJECTED,
    APPROVAL_REQUESTED,
    ApprovalNotifier,
    NullNotifier,
    dispatch_notification,
)

logger = get_logger("services.approval_service")

# Builds the column values for one write from the freshly read snapshot.
_Decide = Callable[[ApprovalRequest, datetime], dict[str, Any]]


def _role_name(role: Role | str | None) -> str:
    if isinstance(role, Role):
        return role.value
    return str(role)


def _as_amount(amount: Decimal | int | str | None) -> Decimal | None:
    """Normalize to Decimal; None stays None (no amount)."""
    if amount is None:
        return None
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise InvalidAmountError(amount) from None
    if not value.is_finite():
        raise InvalidAmountError(amount)
    return value


class ApprovalService:
    """Manages approval request lifecycle."""

    def __init__(
        self,
        session: Session,
        policy: ApprovalPolicy,
        clock: Clock | None = None,
        notifier: ApprovalNotifier | None = None,
    ) -> None:
        self._session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._notifier = notifier or NullNotifier()

    @property
    def policy(self) -> ApprovalPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def preview_required_tier(
        self,
        approval_type: ApprovalType | str,
        amount: Decimal | None = None,
    ) -> Tier:
        """Tier a request would require if created now (no side effects)."""
        workflow = self._workflow_for(approval_type)
        return required_tier(self._policy, workflow.approval_type, _as_amount(amount))

    def create_request(
        self,
        approval_type: ApprovalType | str,
        description: str,
        reason: str,
        requested_by: str,
        requested_by_name: str,
        branch_id: str,
        amount: Decimal | None = None,
        priority: Priority | str = Priority.NORMAL,
        entity_id: str | None = None,
        entity_type: str | None = None,
        branch_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ApprovalRequest:
        """Create a new pending approval request.

        Any caller may raise a request; no authorization check is made.
        """
        workflow = self._workflow_for(approval_type)
        amount = _as_amount(amount)
        tier = required_tier(self._policy, workflow.approval_type, amount)
        now = self._clock.now()
        expires_at = (
            now + timedelta(hours=workflow.default_expiry_hours)
            if workflow.auto_expire
            else None
        )

        dto = ApprovalRequest(
            request_id=uuid4(),
            approval_type=workflow.approval_type,
            status=ApprovalStatus.PENDING,
            current_tier=tier,
            description=description,
            reason=reason,
            requested_by=requested_by,
            requested_by_name=requested_by_name,
            branch_id=branch_id,
            branch_name=branch_name,
            created_at=now,
            updated_at=now,
            priority=Priority(priority),
            amount=amount,
            entity_id=entity_id,
            entity_type=entity_type,
            expires_at=expires_at,
            metadata=dict(metadata or {}),
        )

        model = ApprovalRequestModel.from_dto(dto)
        with LogContext.bind(
            request_id=str(dto.request_id), actor_id=requested_by, branch_id=branch_id,
        ):
            with translate_storage_errors("create_request"):
                self._session.add(model)
                self._session.flush()
            created = model.to_dto()

            logger.info(
                "approval_request_created",
                extra={
                    "approval_type": created.approval_type.value,
                    "required_tier": created.current_tier.value,
                    "amount": amount,
                    "expires_at": expires_at,
                },
            )
        self._notify(APPROVAL_REQUESTED, created, workflow)
        return created

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: UUID,
        actor_id: str,
        actor_name: str,
        actor_role: Role | str,
        comment: str | None = None,
    ) -> ApprovalRequest:
        """Approve a pending request (terminal, single step)."""

        def decide(current: ApprovalRequest, now: datetime) -> dict[str, Any]:
            tier = self._authorize(current, actor_id, actor_role)
            entry = ApprovalHistoryEntry(
                tier=tier,
                actor_id=actor_id,
                actor_name=actor_name,
                action=HistoryAction.APPROVE,
                comment=comment,
                timestamp=now,
            )
            return {
                "status": ApprovalStatus.APPROVED.value,
                "history": self._with_entry(current, entry),
                "final_approver": actor_id,
                "final_approver_name": actor_name,
                "final_decision_date": now,
            }

        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            result = self._write(request_id, decide, operation="approve")
            self._log_outcome(
                result,
                "approval_decision_recorded",
                extra={
                    "decision": HistoryAction.APPROVE.value,
                    "actor_role": _role_name(actor_role),
                    "new_status": result.status.value,
                },
            )
        self._notify(APPROVAL_APPROVED, result)
        return result

    def reject(
        self,
        request_id: UUID,
        actor_id: str,
        actor_name: str,
        actor_role: Role | str,
        reason: str,
    ) -> ApprovalRequest:
        """Reject a pending request.  ``reason`` is mandatory."""
        cleaned = (reason or "").strip()
        if len(cleaned) < max(self._policy.min_reason_length, 1):
            raise InvalidReasonError(reason, self._policy.min_reason_length)

        def decide(current: ApprovalRequest, now: datetime) -> dict[str, Any]:
            tier = self._authorize(current, actor_id, actor_role)
            entry = ApprovalHistoryEntry(
                tier=tier,
                actor_id=actor_id,
                actor_name=actor_name,
                action=HistoryAction.REJECT,
                comment=cleaned,
                timestamp=now,
            )
            return {
                "status": ApprovalStatus.REJECTED.value,
                "history": self._with_entry(current, entry),
                "final_approver": actor_id,
                "final_approver_name": actor_name,
                "final_decision_date": now,
                "rejection_reason": cleaned,
            }

        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            result = self._write(request_id, decide, operation="reject")
            self._log_outcome(
                result,
                "approval_decision_recorded",
                extra={
                    "decision": HistoryAction.REJECT.value,
                    "actor_role": _role_name(actor_role),
                    "new_status": result.status.value,
                },
            )
        self._notify(APPROVAL_REJECTED, result)
        return result

    def escalate(
        self,
        request_id: UUID,
        actor_id: str,
        actor_name: str,
        actor_role: Role | str,
        comment: str | None = None,
    ) -> ApprovalRequest:
        """Hand a pending request to the next tier of the global hierarchy.

        The actor needs a tier but not the currently required one.
        """

        def decide(current: ApprovalRequest, now: datetime) -> dict[str, Any]:
            tier = resolve_tier(self._policy, actor_role)
            if tier is None:
                raise NoTierAssignedError(actor_id, _role_name(actor_role))
            target = next_tier(self._policy, current.current_tier)
            if target is None:
                raise CannotEscalateFurtherError(
                    str(current.request_id), current.current_tier.value,
                )
            entry = ApprovalHistoryEntry(
                tier=tier,
                actor_id=actor_id,
                actor_name=actor_name,
                action=HistoryAction.ESCALATE,
                comment=comment or f"Escalated to {target.value}",
                timestamp=now,
            )
            return {
                "current_tier": target.value,
                "history": self._with_entry(current, entry),
                "escalated_at": now,
            }

        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            result = self._write(request_id, decide, operation="escalate")
            self._log_outcome(
                result,
                "approval_escalated",
                extra={
                    "actor_role": _role_name(actor_role),
                    "new_tier": result.current_tier.value,
                },
            )
        self._notify(APPROVAL_ESCALATED, result)
        return result

    def comment(
        self,
        request_id: UUID,
        actor_id: str,
        actor_name: str,
        actor_role: Role | str,
        comment: str,
    ) -> ApprovalRequest:
        """Append a comment.  Allowed in any status; never changes it.

        Actors without a tier are recorded at the lowest tier.
        """

        def decide(current: ApprovalRequest, now: datetime) -> dict[str, Any]:
            tier = resolve_tier(self._policy, actor_role) or self._policy.lowest_tier
            entry = ApprovalHistoryEntry(
                tier=tier,
                actor_id=actor_id,
                actor_name=actor_name,
                action=HistoryAction.COMMENT,
                comment=comment,
                timestamp=now,
            )
            return {"history": self._with_entry(current, entry)}

        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            result = self._write(
                request_id, decide, operation="comment", require_pending=False,
            )
            self._log_outcome(
                result,
                "approval_comment_added",
                extra={"history_length": len(result.history)},
            )
        self._notify(APPROVAL_COMMENTED, result)
        return result

    # ------------------------------------------------------------------
    # Expiry and reads
    # ------------------------------------------------------------------

    def sweep_expired(self, now: datetime | None = None) -> SweepResult:
        """Expire every pending request whose deadline is at or before ``now``."""
        sweeper = ExpirySweeper(
            self._session, self._policy, self._clock, self._notifier,
        )
        return sweeper.sweep(now)

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        """Get approval request by ID."""
        return self._load(request_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _workflow_for(self, approval_type: ApprovalType | str) -> WorkflowConfig:
        try:
            key = ApprovalType(approval_type)
        except ValueError:
            raise UnknownApprovalTypeError(str(approval_type)) from None
        workflow = self._policy.get_workflow(key)
        if workflow is None:
            raise UnknownApprovalTypeError(key.value)
        return workflow

    def _authorize(
        self,
        current: ApprovalRequest,
        actor_id: str,
        actor_role: Role | str,
    ) -> Tier:
        tier = resolve_tier(self._policy, actor_role)
        if tier is None:
            raise NoTierAssignedError(actor_id, _role_name(actor_role))
        if not tier_at_least(self._policy, tier, current.current_tier):
            raise UnauthorizedApproverError(
                str(current.request_id),
                actor_id,
                tier.value,
                current.current_tier.value,
            )
        return tier

    def _with_entry(
        self,
        current: ApprovalRequest,
        entry: ApprovalHistoryEntry,
    ) -> list[dict[str, Any]]:
        return [e.to_dict() for e in append_history(current.history, entry)]

    def _load(self, request_id: UUID) -> ApprovalRequest:
        """Read the latest committed snapshot, raise if not found."""
        with translate_storage_errors("load_request"):
            model = self._session.execute(
                select(ApprovalRequestModel)
                .where(ApprovalRequestModel.request_id == request_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

        if model is None:
            raise ApprovalNotFoundError(str(request_id))
        return model.to_dto()

    def _write(
        self,
        request_id: UUID,
        decide: _Decide,
        *,
        operation: str,
        require_pending: bool = True,
    ) -> ApprovalRequest:
        """Optimistic read-check-write with a compare-and-swap UPDATE.

        The UPDATE matches only the version that was read (and, for
        decisions, only while still pending).  A miss means another writer
        got there first: re-read and re-check from scratch.
        """
        for attempt in range(1, self._policy.max_write_attempts + 1):
            current = self._load(request_id)
            if require_pending and not current.is_pending:
                raise ApprovalNotPendingError(str(request_id), current.status.value)

            now = self._clock.now()
            if current.history and now < current.history[-1].timestamp:
                now = current.history[-1].timestamp

            values = decide(current, now)
            values["version"] = current.version + 1
            values["updated_at"] = now

            stmt = update(ApprovalRequestModel).where(
                ApprovalRequestModel.request_id == request_id,
                ApprovalRequestModel.version == current.version,
            )
            if require_pending:
                stmt = stmt.where(
                    ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                )

            with translate_storage_errors(operation):
                result = self._session.execute(
                    stmt.values(**values).execution_options(
                        synchronize_session=False,
                    )
                )

            if result.rowcount == 1:
                return self._load(request_id)

            with LogContext.bind(branch_id=current.branch_id):
                logger.info(
                    "approval_write_conflict",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "read_version": current.version,
                    },
                )

        raise OptimisticLockError("ApprovalRequest", str(request_id))

    def _log_outcome(
        self,
        request: ApprovalRequest,
        message: str,
        extra: dict[str, Any],
    ) -> None:
        with LogContext.bind(branch_id=request.branch_id):
            logger.info(message, extra=extra)

    def _notify(
        self,
        event: str,
        request: ApprovalRequest,
        workflow: WorkflowConfig | None = None,
    ) -> None:
        workflow = workflow or self._policy.get_workflow(request.approval_type)
        channels = workflow.notify_channels if workflow is not None else ()
        dispatch_notification(self._notifier, event, request, channels)
