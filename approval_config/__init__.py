"""
approval_config -- single public entrypoint for approval configuration.

Responsibility:
    Provides the ONLY way to obtain the approval policy at runtime through
    ``get_active_policy()``.  Loads the YAML set, validates it, and bridges
    it into the kernel's immutable ``ApprovalPolicy``.

Architecture position:
    Configuration -- YAML-driven, validated before use.  Sits above
    ``approval_kernel``; the kernel MUST NEVER import from
    ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration directory or file is missing.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_policy()`` call emits an
    ``APPROVAL_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each decision back to the policy that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from approval_config.bridges import build_approval_policy
from approval_config.loader import load_configuration_set
from approval_config.validator import validate_configuration
from approval_kernel.domain.policy import ApprovalPolicy

_logger = logging.getLogger("approval_kernel.config")

# Default configuration set directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_active_policy(config_dir: Path | None = None) -> ApprovalPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Directory holding ``approval_workflows.yaml``.
            Defaults to approval_config/sets/default/.

    Raises:
        FileNotFoundError: If the configuration file is missing.
        ValueError: If configuration validation fails.
    """
    source_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    config_set = load_configuration_set(source_dir)

    validation = validate_configuration(config_set)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("approval_config_warning", extra={"warning": warning})

    policy = build_approval_policy(config_set)

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "config_set_id": config_set.config_id,
            "config_set_version": config_set.version,
            "checksum": config_set.checksum,
            "workflow_count": len(policy.workflows),
            "tier_count": len(policy.tier_hierarchy),
        },
    )
    return policy


__all__ = ["get_active_policy"]
