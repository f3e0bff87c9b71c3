"""
Config -> Kernel Bridges.

Converts a validated ``ApprovalConfigurationSet`` into the kernel's
``ApprovalPolicy``.  Lives in approval_config (the producer) because the
kernel must NEVER import approval_config.

Usage:
    from approval_config.bridges import build_approval_policy

    policy = build_approval_policy(config_set)
"""

from __future__ import annotations

from decimal import Decimal

from approval_config.schema import ApprovalConfigurationSet, WorkflowDef
from approval_kernel.domain.approval import ApprovalType, NotifyChannel, Role, Tier
from approval_kernel.domain.policy import (
    AmountThreshold,
    ApprovalPolicy,
    WorkflowConfig,
)


def build_workflow(definition: WorkflowDef) -> WorkflowConfig:
    return WorkflowConfig(
        approval_type=ApprovalType(definition.approval_type),
        display_name=definition.display_name,
        tiers=tuple(Tier(t) for t in definition.tiers),
        default_expiry_hours=definition.default_expiry_hours,
        auto_expire=definition.auto_expire,
        amount_thresholds=tuple(
            AmountThreshold(tier=Tier(t.tier), min_amount=Decimal(t.min_amount))
            for t in definition.amount_thresholds
        ),
        notify_channels=tuple(NotifyChannel(c) for c in definition.notify_channels),
    )


def build_approval_policy(config: ApprovalConfigurationSet) -> ApprovalPolicy:
    """Build the kernel policy.  Roles absent from the file map to no tier."""
    role_tiers: dict[Role, Tier | None] = {role: None for role in Role}
    for role, tier in config.role_tiers:
        role_tiers[Role(role)] = Tier(tier) if tier is not None else None

    settings = config.settings
    return ApprovalPolicy(
        tier_hierarchy=tuple(Tier(t) for t in config.tier_hierarchy),
        role_tiers=role_tiers,
        workflows={
            ApprovalType(w.approval_type): build_workflow(w)
            for w in config.workflows
        },
        branch_agnostic_tier=(
            Tier(settings.branch_agnostic_tier)
            if settings.branch_agnostic_tier is not None
            else None
        ),
        min_reason_length=settings.min_reason_length,
        max_write_attempts=settings.max_write_attempts,
        version=f"{config.config_id}:v{config.version}",
        checksum=config.checksum,
    )
