"""
Configuration Validator (``approval_config.validator``).

Responsibility
--------------
Validates an ``ApprovalConfigurationSet`` before it is bridged into a
kernel ``ApprovalPolicy``.

Invariants enforced
-------------------
* The tier hierarchy is non-empty, unique and uses known tier names.
* Every role name is known and maps to a tier in the hierarchy (or null).
* Every approval type has exactly one workflow.
* Workflow tiers and threshold tiers all belong to the hierarchy.
* Threshold amounts are non-negative decimals, expiry windows positive.

Failure modes
-------------
* Validation errors  -> configuration MUST NOT be used.
* Validation warnings  -> configuration is usable but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from approval_config.schema import ApprovalConfigurationSet, WorkflowDef
from approval_kernel.domain.approval import ApprovalType, NotifyChannel, Role, Tier

_KNOWN_TIERS = frozenset(t.value for t in Tier)
_KNOWN_ROLES = frozenset(r.value for r in Role)
_KNOWN_TYPES = frozenset(t.value for t in ApprovalType)
_KNOWN_CHANNELS = frozenset(c.value for c in NotifyChannel)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ApprovalConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set.  A result with errors MUST NOT be used."""
    result = ConfigValidationResult()

    _validate_hierarchy(config, result)
    _validate_role_tiers(config, result)
    _validate_workflow_coverage(config, result)
    for workflow in config.workflows:
        _validate_workflow(config, workflow, result)
    _validate_settings(config, result)

    return result


def _validate_hierarchy(
    config: ApprovalConfigurationSet, result: ConfigValidationResult
) -> None:
    if not config.tier_hierarchy:
        result.add_error("tier_hierarchy must list at least one tier")
    seen: set[str] = set()
    for tier in config.tier_hierarchy:
        if tier not in _KNOWN_TIERS:
            result.add_error(f"tier_hierarchy: unknown tier '{tier}'")
        if tier in seen:
            result.add_error(f"tier_hierarchy: tier '{tier}' appears more than once")
        seen.add(tier)


def _validate_role_tiers(
    config: ApprovalConfigurationSet, result: ConfigValidationResult
) -> None:
    hierarchy = set(config.tier_hierarchy)
    mapped = set()
    for role, tier in config.role_tiers:
        mapped.add(role)
        if role not in _KNOWN_ROLES:
            result.add_error(f"role_tiers: unknown role '{role}'")
        if tier is not None and tier not in hierarchy:
            result.add_error(
                f"role_tiers: role '{role}' maps to tier '{tier}' "
                f"outside the hierarchy"
            )
    for role in sorted(_KNOWN_ROLES - mapped):
        result.add_warning(f"role_tiers: role '{role}' not listed; it has no tier")


def _validate_workflow_coverage(
    config: ApprovalConfigurationSet, result: ConfigValidationResult
) -> None:
    counts: dict[str, int] = {}
    for workflow in config.workflows:
        counts[workflow.approval_type] = counts.get(workflow.approval_type, 0) + 1
    for approval_type, count in sorted(counts.items()):
        if count > 1:
            result.add_error(
                f"workflows: '{approval_type}' is configured {count} times"
            )
    for approval_type in sorted(_KNOWN_TYPES - set(counts)):
        result.add_error(f"workflows: no workflow for approval type '{approval_type}'")


def _validate_workflow(
    config: ApprovalConfigurationSet,
    workflow: WorkflowDef,
    result: ConfigValidationResult,
) -> None:
    name = workflow.approval_type
    hierarchy = list(config.tier_hierarchy)

    if name not in _KNOWN_TYPES:
        result.add_error(f"workflow '{name}': unknown approval type")
    if not workflow.tiers:
        result.add_error(f"workflow '{name}': must declare at least one tier")
    if workflow.default_expiry_hours <= 0:
        result.add_error(f"workflow '{name}': default_expiry_hours must be positive")

    for tier in workflow.tiers:
        if tier not in hierarchy:
            result.add_error(f"workflow '{name}': tier '{tier}' outside the hierarchy")
    ranks = [hierarchy.index(t) for t in workflow.tiers if t in hierarchy]
    if ranks != sorted(ranks):
        result.add_warning(f"workflow '{name}': tiers not listed lowest first")

    for threshold in workflow.amount_thresholds:
        if threshold.tier not in hierarchy:
            result.add_error(
                f"workflow '{name}': threshold tier '{threshold.tier}' "
                f"outside the hierarchy"
            )
        try:
            amount = Decimal(threshold.min_amount)
        except InvalidOperation:
            result.add_error(
                f"workflow '{name}': threshold amount "
                f"'{threshold.min_amount}' is not a number"
            )
            continue
        if amount < 0:
            result.add_error(
                f"workflow '{name}': threshold amount {amount} is negative"
            )

    for channel in workflow.notify_channels:
        if channel not in _KNOWN_CHANNELS:
            result.add_error(f"workflow '{name}': unknown channel '{channel}'")


def _validate_settings(
    config: ApprovalConfigurationSet, result: ConfigValidationResult
) -> None:
    settings = config.settings
    if (
        settings.branch_agnostic_tier is not None
        and settings.branch_agnostic_tier not in config.tier_hierarchy
    ):
        result.add_error(
            f"settings: branch_agnostic_tier '{settings.branch_agnostic_tier}' "
            f"outside the hierarchy"
        )
    if settings.min_reason_length < 1:
        result.add_error("settings: min_reason_length must be at least 1")
    if settings.max_write_attempts < 1:
        result.add_error("settings: max_write_attempts must be at least 1")
