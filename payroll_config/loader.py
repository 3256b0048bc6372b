"""
Payroll Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads tenant payroll configuration files (YAML) and parses them into a
``PayrollConfigSet``: scope metadata plus a validated ``PayrollConfig``.
Runtime callers go through ``payroll_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the cycle config
schema (``payroll_modules.cycle.config``); the kernel and engines never
import from here.

Invariants enforced
-------------------
* No silent defaults for required fields: ``tenant_id`` and
  ``effective_from`` must be present.
* Policy values are validated by ``PayrollConfig`` when the set is parsed,
  so a bad file fails before any cycle is processed.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid policy values  -> ``ConfigurationError`` propagates.
* Invalid date format  -> ``ValueError`` from ``date.fromisoformat``.

Audit relevance
---------------
The checksum ties every processed cycle back to the exact configuration
file content that governed it.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from payroll_modules.cycle.config import PayrollConfig


@dataclass(frozen=True)
class PayrollConfigSet:
    """A tenant's payroll policy for a range of dates."""

    config_id: str
    version: int
    tenant_id: str
    effective_from: date
    effective_to: date | None
    config: PayrollConfig
    checksum: str
    description: str = ""

    def covers(self, tenant_id: str, as_of_date: date) -> bool:
        if tenant_id != self.tenant_id or as_of_date < self.effective_from:
            return False
        return self.effective_to is None or as_of_date <= self.effective_to


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_config_set(data: dict[str, Any]) -> PayrollConfigSet:
    """
    Parse a ``PayrollConfigSet`` from a dict.

    Preconditions:
        - ``data`` contains ``tenant_id`` and ``effective_from``; policy
          values live under ``payroll``.
    Raises:
        KeyError: if required keys are missing.
        ConfigurationError: if the policy values are invalid.
    """
    tenant_id = data["tenant_id"]
    version = data.get("version", 1)
    return PayrollConfigSet(
        config_id=data.get("config_id", f"{tenant_id}-v{version}"),
        version=version,
        tenant_id=tenant_id,
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        config=PayrollConfig.from_dict(data.get("payroll") or {}),
        checksum=compute_checksum(data),
        description=data.get("description", ""),
    )


def load_config_set(path: Path) -> PayrollConfigSet:
    """Load and parse one configuration file."""
    return parse_config_set(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
