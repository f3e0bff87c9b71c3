"""
Configuration Schema (``approval_config.schema``).

Responsibility
--------------
Frozen dataclasses mirroring the YAML layout of an approval configuration
set.  Values stay in their authored form (strings for tiers, roles and
amounts); ``bridges.py`` converts them into kernel types.

Architecture position
---------------------
**Config layer** -- pure data.  No I/O, no kernel imports.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AmountThresholdDef:
    """YAML-authored amount threshold."""

    tier: str
    min_amount: str


@dataclass(frozen=True)
class WorkflowDef:
    """YAML-authored workflow for one approval type."""

    approval_type: str
    display_name: str
    tiers: tuple[str, ...]
    default_expiry_hours: int
    auto_expire: bool = True
    amount_thresholds: tuple[AmountThresholdDef, ...] = ()
    notify_channels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalSettingsDef:
    """Engine-wide knobs."""

    branch_agnostic_tier: str | None = "director"
    min_reason_length: int = 3
    max_write_attempts: int = 3


@dataclass(frozen=True)
class ApprovalConfigurationSet:
    """A complete, parsed approval configuration set.

    ``role_tiers`` keeps authored order as ``(role, tier-or-None)`` pairs.
    """

    config_id: str
    version: int
    tier_hierarchy: tuple[str, ...]
    role_tiers: tuple[tuple[str, str | None], ...]
    workflows: tuple[WorkflowDef, ...]
    settings: ApprovalSettingsDef = ApprovalSettingsDef()
    checksum: str = ""
