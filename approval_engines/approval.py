"""
approval_engines.approval -- Pure tier resolution and authorization engine.

Responsibility:
    Resolve a role to its authority tier, compute the minimum tier a request
    requires, decide whether an actor may resolve a request, and compute the
    next tier for escalation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types.

Invariants enforced:
    - Total resolver: every role (enum member or arbitrary string) resolves
      to a tier or None; unknown roles never raise.
    - Deterministic selection: thresholds sorted by ``min_amount`` descending
      before evaluation; first qualifying threshold wins.
    - Monotonic authorization: if a tier may resolve a request, every tier
      ranked above it may too.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - KeyError from ``required_tier`` / ``next_tier`` when the policy does
      not configure the approval type (services translate this).
"""

from __future__ import annotations

from decimal import Decimal

from approval_kernel.domain.approval import ApprovalRequest, ApprovalType, Role, Tier
from approval_kernel.domain.policy import ApprovalPolicy


def resolve_tier(policy: ApprovalPolicy, role: Role | str | None) -> Tier | None:
    """Map an organizational role to its authority tier, or None."""
    if role is None:
        return None
    if not isinstance(role, Role):
        try:
            role = Role(str(role).strip().lower())
        except ValueError:
            return None
    return policy.role_tiers.get(role)


def required_tier(
    policy: ApprovalPolicy,
    approval_type: ApprovalType,
    amount: Decimal | None = None,
) -> Tier:
    """Compute the minimum tier needed to resolve a request.

    Args:
        policy: The active approval policy.
        approval_type: The type of request.
        amount: Monetary amount, or None when the request carries none.

    Returns:
        The tier of the highest threshold whose ``min_amount`` the amount
        reaches, else the type's first declared tier.
    """
    workflow = policy.workflows[approval_type]

    if amount is None or not workflow.amount_thresholds:
        return workflow.first_tier

    ordered = sorted(
        workflow.amount_thresholds,
        key=lambda t: t.min_amount,
        reverse=True,
    )
    for threshold in ordered:
        if threshold.min_amount <= amount:
            return threshold.tier

    return workflow.first_tier


def tier_at_least(policy: ApprovalPolicy, tier: Tier, minimum: Tier) -> bool:
    """True when ``tier`` ranks at or above ``minimum`` globally."""
    return policy.rank(tier) >= policy.rank(minimum)


def can_approve(
    policy: ApprovalPolicy,
    role: Role | str | None,
    request: ApprovalRequest,
) -> bool:
    """Check whether an actor holding ``role`` may resolve ``request``.

    Uses the global hierarchy, not the type's own tier subset: any tier
    ranked at or above the request's current tier qualifies.
    """
    actor_tier = resolve_tier(policy, role)
    if actor_tier is None:
        return False
    return tier_at_least(policy, actor_tier, request.current_tier)


def next_tier(policy: ApprovalPolicy, tier: Tier) -> Tier | None:
    """The tier directly above ``tier``, or None at the top."""
    position = policy.rank(tier) + 1
    if position >= len(policy.tier_hierarchy):
        return None
    return policy.tier_hierarchy[position]


def sees_all_branches(policy: ApprovalPolicy, tier: Tier | None) -> bool:
    """True when ``tier`` is exempt from branch scoping."""
    if tier is None or policy.branch_agnostic_tier is None:
        return False
    return tier_at_least(policy, tier, policy.branch_agnostic_tier)
