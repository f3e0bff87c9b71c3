"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    TERMINAL_APPROVAL_STATUSES,
    ApprovalHistoryEntry,
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    HistoryAction,
    NotifyChannel,
    Priority,
    Role,
    Tier,
    append_history,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.policy import (
    DEFAULT_TIER_HIERARCHY,
    AmountThreshold,
    ApprovalPolicy,
    WorkflowConfig,
)

__all__ = [
    "DEFAULT_TIER_HIERARCHY",
    "TERMINAL_APPROVAL_STATUSES",
    "AmountThreshold",
    "ApprovalHistoryEntry",
    "ApprovalPolicy",
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalType",
    "Clock",
    "DeterministicClock",
    "HistoryAction",
    "NotifyChannel",
    "Priority",
    "Role",
    "SystemClock",
    "Tier",
    "WorkflowConfig",
    "append_history",
]
