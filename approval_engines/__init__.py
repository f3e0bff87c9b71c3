"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the approval services and selectors.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain (and sibling engine modules).
    MUST NOT import approval_kernel services, selectors or models.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Callers pass the
      policy and request snapshots explicitly.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines.approval import required_tier, can_approve
    from approval_engines.statistics import aggregate_statistics
"""

from approval_engines.approval import (
    can_approve,
    next_tier,
    required_tier,
    resolve_tier,
    sees_all_branches,
    tier_at_least,
)
from approval_engines.statistics import (
    ApprovalStatistics,
    TypeBreakdown,
    aggregate_statistics,
)

__all__ = [
    "ApprovalStatistics",
    "TypeBreakdown",
    "aggregate_statistics",
    "can_approve",
    "next_tier",
    "required_tier",
    "resolve_tier",
    "sees_all_branches",
    "tier_at_least",
]
