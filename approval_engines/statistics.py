"""
approval_engines.statistics -- Pure approval statistics rollup.

Responsibility:
    Aggregate a collection of approval request snapshots into status
    counts, a per-type breakdown, and the mean time-to-approval.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Filtering by branch and
    date range is the selector's job; this module sees only the result.

Invariants enforced:
    - Average approval time covers only requests that reached ``approved``
      and carry a final decision date.
    - No approved requests -> average is 0.0, never a division error.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from approval_kernel.domain.approval import ApprovalRequest, ApprovalStatus, ApprovalType

_SECONDS_PER_HOUR = 3600.0


@dataclass
class TypeBreakdown:
    """Open/closed counts for one approval type."""

    pending: int = 0
    approved: int = 0
    rejected: int = 0


@dataclass
class ApprovalStatistics:
    """Read-only rollup over a set of approval requests."""

    total_pending: int = 0
    total_approved: int = 0
    total_rejected: int = 0
    total_expired: int = 0
    by_type: dict[ApprovalType, TypeBreakdown] = field(default_factory=dict)
    average_approval_hours: float = 0.0

    @property
    def total(self) -> int:
        return (
            self.total_pending
            + self.total_approved
            + self.total_rejected
            + self.total_expired
        )


def aggregate_statistics(requests: Iterable[ApprovalRequest]) -> ApprovalStatistics:
    """Roll up ``requests`` into an ``ApprovalStatistics``."""
    stats = ApprovalStatistics()
    approval_seconds = 0.0
    approval_count = 0

    for request in requests:
        breakdown = stats.by_type.setdefault(request.approval_type, TypeBreakdown())

        if request.status == ApprovalStatus.PENDING:
            stats.total_pending += 1
            breakdown.pending += 1
        elif request.status == ApprovalStatus.APPROVED:
            stats.total_approved += 1
            breakdown.approved += 1
            if request.final_decision_date is not None:
                elapsed = request.final_decision_date - request.created_at
                approval_seconds += elapsed.total_seconds()
                approval_count += 1
        elif request.status == ApprovalStatus.REJECTED:
            stats.total_rejected += 1
            breakdown.rejected += 1
        elif request.status == ApprovalStatus.EXPIRED:
            stats.total_expired += 1

    if approval_count:
        stats.average_approval_hours = (
            approval_seconds / approval_count / _SECONDS_PER_HOUR
        )

    return stats
