"""
payroll_config -- single public entrypoint for tenant payroll policy.

Responsibility:
    Provides the way to obtain payroll configuration at runtime through
    ``get_active_config()``.  Services receive the resulting
    ``PayrollConfig``; they never read configuration files themselves.

Architecture position:
    Configuration -- YAML-driven policy, validated at load time.  Sits
    above ``payroll_kernel`` and ``payroll_engines``; the kernel and engines
    MUST NEVER import from ``payroll_config``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set for the tenant / date.
    - ``ConfigurationError`` -- invalid policy values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PAYROLL_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from payroll_config.loader import (
    PayrollConfigSet,
    compute_checksum,
    load_config_set,
    load_yaml_file,
    parse_config_set,
)

_logger = logging.getLogger("payroll.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    tenant_id: str,
    as_of_date: date,
    config_dir: Path | None = None,
) -> PayrollConfigSet:
    """The public configuration entrypoint.

    Scans ``*.yaml`` files in ``config_dir`` (default:
    ``payroll_config/sets/``) and returns the set for ``tenant_id`` whose
    effective range covers ``as_of_date``.  When several match, the one
    with the latest ``effective_from`` wins.

    Raises:
        FileNotFoundError: If the directory is missing or nothing matches.
        ConfigurationError: If a configuration file holds invalid policy.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")

    candidates = [
        config_set
        for config_set in (load_config_set(p) for p in sorted(sets_dir.glob("*.yaml")))
        if config_set.covers(tenant_id, as_of_date)
    ]
    if not candidates:
        raise FileNotFoundError(
            f"No payroll configuration for tenant '{tenant_id}' "
            f"effective {as_of_date.isoformat()} in {sets_dir}"
        )
    active = max(candidates, key=lambda c: (c.effective_from, c.version))

    _logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "config_set_id": active.config_id,
            "config_set_version": active.version,
            "checksum": active.checksum,
            "tenant_id": active.tenant_id,
            "effective_from": active.effective_from.isoformat(),
            "tax_slab_count": len(active.config.tax_slabs),
            "statutory_rule_count": len(active.config.statutory_rules),
        },
    )
    return active


__all__ = [
    "PayrollConfigSet",
    "compute_checksum",
    "get_active_config",
    "load_config_set",
    "load_yaml_file",
    "parse_config_set",
]
