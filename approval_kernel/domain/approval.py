"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval workflow engine.  Defines the closed
vocabularies (approval types, statuses, tiers, roles, history actions,
priorities), the append-only history entry, and the frozen request
snapshot handed to every caller.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Lifecycle -- ``PENDING`` is the only non-terminal stored status.
  Escalation is an event recorded in history, never a stored status.
* Append-only history -- ``append_history`` returns a new tuple with the
  entry at the end; existing entries are never touched and timestamps
  never go backwards.
* Single resolution -- ``final_*`` fields and ``rejection_reason`` are
  populated only by the terminal approve/reject transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Vocabularies
# =========================================================================


class ApprovalType(str, Enum):
    """Category of sensitive operation being authorized."""

    VOUCHER = "voucher"
    CASH_OUT = "cash_out"
    DISPOSAL = "disposal"
    DISCOUNT = "discount"
    REFUND = "refund"
    PRICE_OVERRIDE = "price_override"
    CREDIT_EXTENSION = "credit_extension"


class ApprovalStatus(str, Enum):
    """Stored approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.EXPIRED,
})


class Tier(str, Enum):
    """Authority level.  Rank comes from the policy's tier hierarchy."""

    MANAGER = "manager"
    GENERAL_MANAGER = "general_manager"
    DIRECTOR = "director"
    ADMIN = "admin"


class Role(str, Enum):
    """Organizational role of a staff member."""

    ADMIN = "admin"
    DIRECTOR = "director"
    GENERAL_MANAGER = "general_manager"
    STORE_MANAGER = "store_manager"
    MANAGER = "manager"
    FINANCE_MANAGER = "finance_manager"
    LOGISTICS_MANAGER = "logistics_manager"
    WORKSTATION_MANAGER = "workstation_manager"
    FRONT_DESK = "front_desk"
    WORKSTATION_STAFF = "workstation_staff"
    SATELLITE_STAFF = "satellite_staff"
    DRIVER = "driver"
    CUSTOMER = "customer"
    AUDITOR = "auditor"
    INSPECTOR = "inspector"


class HistoryAction(str, Enum):
    """Action recorded in an approval history entry."""

    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"
    COMMENT = "comment"


class Priority(str, Enum):
    """Informational request priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotifyChannel(str, Enum):
    """Outbound notification channel hint."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"
    IN_APP = "in_app"


# =========================================================================
# History (audit trail)
# =========================================================================


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One immutable step of a request's audit trail."""

    tier: Tier
    actor_id: str
    actor_name: str
    action: HistoryAction
    timestamp: datetime
    comment: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the embedded JSON history column."""
        return {
            "tier": self.tier.value,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "action": self.action.value,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalHistoryEntry:
        return cls(
            tier=Tier(data["tier"]),
            actor_id=data["actor_id"],
            actor_name=data["actor_name"],
            action=HistoryAction(data["action"]),
            comment=data.get("comment"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


def append_history(
    history: tuple[ApprovalHistoryEntry, ...],
    entry: ApprovalHistoryEntry,
) -> tuple[ApprovalHistoryEntry, ...]:
    """Return ``history`` with ``entry`` appended.

    Raises:
        ValueError: if ``entry`` is timestamped before the last entry.
    """
    if history and entry.timestamp < history[-1].timestamp:
        raise ValueError(
            "History entries must be appended in time order: "
            f"{entry.timestamp.isoformat()} < {history[-1].timestamp.isoformat()}"
        )
    return history + (entry,)


# =========================================================================
# Request snapshot
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request.

    ``version`` increments on every successful write and is the optimistic
    concurrency guard for the next one.
    """

    request_id: UUID
    approval_type: ApprovalType
    status: ApprovalStatus
    current_tier: Tier
    description: str
    reason: str
    requested_by: str
    requested_by_name: str
    branch_id: str
    created_at: datetime
    updated_at: datetime
    priority: Priority = Priority.NORMAL
    amount: Decimal | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    branch_name: str | None = None
    history: tuple[ApprovalHistoryEntry, ...] = ()
    final_approver: str | None = None
    final_approver_name: str | None = None
    final_decision_date: datetime | None = None
    rejection_reason: str | None = None
    expires_at: datetime | None = None
    escalated_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES
