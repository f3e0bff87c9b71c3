"""
Approval policy types (``approval_kernel.domain.policy``).

Responsibility
--------------
The immutable configuration object injected into every approval
service and selector: the global tier hierarchy, the role-to-tier table,
and the per-type workflow registry.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Built by
``approval_config.bridges`` from YAML, or directly by tests that need an
alternate policy.

Invariants enforced
-------------------
* One global ordering -- ``tier_hierarchy`` is the single source of truth
  for rank; workflows only choose which subset participates.
* Every tier referenced by a workflow or threshold exists in the
  hierarchy (checked in ``__post_init__``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from approval_kernel.domain.approval import ApprovalType, NotifyChannel, Role, Tier

DEFAULT_TIER_HIERARCHY: tuple[Tier, ...] = (
    Tier.MANAGER,
    Tier.GENERAL_MANAGER,
    Tier.DIRECTOR,
    Tier.ADMIN,
)


@dataclass(frozen=True)
class AmountThreshold:
    """Requests at or above ``min_amount`` require at least ``tier``."""

    tier: Tier
    min_amount: Decimal


@dataclass(frozen=True)
class WorkflowConfig:
    """Static workflow definition for one approval type."""

    approval_type: ApprovalType
    display_name: str
    tiers: tuple[Tier, ...]
    default_expiry_hours: int
    auto_expire: bool
    amount_thresholds: tuple[AmountThreshold, ...] = ()
    notify_channels: tuple[NotifyChannel, ...] = ()

    def __post_init__(self) -> None:
        if not self.tiers:
            raise ValueError(
                f"Workflow {self.approval_type.value} must declare at least one tier"
            )
        if self.default_expiry_hours <= 0:
            raise ValueError(
                f"Workflow {self.approval_type.value} needs a positive expiry window"
            )

    @property
    def first_tier(self) -> Tier:
        return self.tiers[0]


@dataclass(frozen=True)
class ApprovalPolicy:
    """The complete, immutable approval configuration.

    ``branch_agnostic_tier``: actors ranked at or above this tier see
    pending requests from every branch.  ``None`` scopes everyone to their
    own branch.
    """

    tier_hierarchy: tuple[Tier, ...]
    role_tiers: Mapping[Role, Tier | None]
    workflows: Mapping[ApprovalType, WorkflowConfig]
    branch_agnostic_tier: Tier | None = Tier.DIRECTOR
    min_reason_length: int = 3
    max_write_attempts: int = 3
    version: str = "1"
    checksum: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.tier_hierarchy:
            raise ValueError("Tier hierarchy must not be empty")
        if len(set(self.tier_hierarchy)) != len(self.tier_hierarchy):
            raise ValueError("Tier hierarchy must not repeat a tier")
        known = set(self.tier_hierarchy)

        for role, tier in self.role_tiers.items():
            if tier is not None and tier not in known:
                raise ValueError(
                    f"Role {role.value} maps to tier {tier.value} outside the hierarchy"
                )
        for approval_type, workflow in self.workflows.items():
            if workflow.approval_type != approval_type:
                raise ValueError(
                    f"Workflow registered under {approval_type.value} "
                    f"declares type {workflow.approval_type.value}"
                )
            referenced = set(workflow.tiers) | {
                t.tier for t in workflow.amount_thresholds
            }
            unknown = referenced - known
            if unknown:
                names = ", ".join(sorted(t.value for t in unknown))
                raise ValueError(
                    f"Workflow {approval_type.value} references unknown tiers: {names}"
                )
        if (
            self.branch_agnostic_tier is not None
            and self.branch_agnostic_tier not in known
        ):
            raise ValueError("branch_agnostic_tier must be part of the hierarchy")
        if self.max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")

        # Freeze the mappings so a shared policy cannot be edited in place.
        object.__setattr__(self, "role_tiers", MappingProxyType(dict(self.role_tiers)))
        object.__setattr__(self, "workflows", MappingProxyType(dict(self.workflows)))

    @property
    def lowest_tier(self) -> Tier:
        return self.tier_hierarchy[0]

    @property
    def highest_tier(self) -> Tier:
        return self.tier_hierarchy[-1]

    def rank(self, tier: Tier) -> int:
        """Position of ``tier`` in the hierarchy (0 = lowest)."""
        return self.tier_hierarchy.index(tier)

    def get_workflow(self, approval_type: ApprovalType) -> WorkflowConfig | None:
        return self.workflows.get(approval_type)
