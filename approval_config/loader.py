"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the approval YAML file and parses it into typed
``approval_config.schema`` dataclass instances.  This is build/test
tooling; the runtime entry point is ``approval_config.get_active_policy()``.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults for
  required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  authored data for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    AmountThresholdDef,
    ApprovalConfigurationSet,
    ApprovalSettingsDef,
    WorkflowDef,
)

CONFIG_FILENAME = "approval_workflows.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_threshold(data: dict[str, Any]) -> AmountThresholdDef:
    return AmountThresholdDef(
        tier=str(data["tier"]),
        min_amount=str(data["min_amount"]),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDef:
    """
    Parse a ``WorkflowDef`` from a dict.

    Raises:
        KeyError: if ``approval_type``, ``display_name``, ``tiers`` or
            ``default_expiry_hours`` is missing.
    """
    return WorkflowDef(
        approval_type=str(data["approval_type"]),
        display_name=str(data["display_name"]),
        tiers=tuple(str(t) for t in data["tiers"]),
        default_expiry_hours=int(data["default_expiry_hours"]),
        auto_expire=bool(data.get("auto_expire", True)),
        amount_thresholds=tuple(
            parse_threshold(t) for t in data.get("amount_thresholds") or ()
        ),
        notify_channels=tuple(str(c) for c in data.get("notify_channels") or ()),
    )


def parse_settings(data: dict[str, Any] | None) -> ApprovalSettingsDef:
    data = data or {}
    defaults = ApprovalSettingsDef()
    return ApprovalSettingsDef(
        branch_agnostic_tier=data.get(
            "branch_agnostic_tier", defaults.branch_agnostic_tier,
        ),
        min_reason_length=int(
            data.get("min_reason_length", defaults.min_reason_length)
        ),
        max_write_attempts=int(
            data.get("max_write_attempts", defaults.max_write_attempts)
        ),
    )


def parse_configuration_set(data: dict[str, Any]) -> ApprovalConfigurationSet:
    """Parse a whole configuration set; the checksum covers ``data`` as authored."""
    role_tiers = tuple(
        (str(role), str(tier) if tier is not None else None)
        for role, tier in (data.get("role_tiers") or {}).items()
    )
    return ApprovalConfigurationSet(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        tier_hierarchy=tuple(str(t) for t in data["tier_hierarchy"]),
        role_tiers=role_tiers,
        workflows=tuple(parse_workflow(w) for w in data.get("workflows") or ()),
        settings=parse_settings(data.get("settings")),
        checksum=compute_checksum(data),
    )


def load_configuration_set(config_dir: Path) -> ApprovalConfigurationSet:
    """Load ``approval_workflows.yaml`` from ``config_dir``."""
    return parse_configuration_set(load_yaml_file(config_dir / CONFIG_FILENAME))
