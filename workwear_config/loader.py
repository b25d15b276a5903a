"""
Configuration Loader (``workwear_config.loader``).

Responsibility
--------------
Loads a company policy YAML file and parses it into a ``PolicySet`` of
frozen ``CompanyPolicy`` objects.  Runtime callers go through
``workwear_config.get_company_policy()``; tests use ``load_policy_set``
directly.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; flags that are not booleans
  raise ``ValueError``.  No silent defaults for required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  source data for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Duplicate company id  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workwear_config.schema import PolicySet
from workwear_kernel.domain.policy import CompanyPolicy

_FLAGS = (
    "enable_pr_po_workflow",
    "enable_site_admin_pr_approval",
    "require_company_admin_po_approval",
    "allow_multi_pr_po",
    "allow_personal_payments",
)


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


def _parse_flag(company_id: str, name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(
            f"Company {company_id!r}: flag {name!r} must be true or false, got {value!r}"
        )
    return value


def parse_company_policy(data: dict[str, Any]) -> CompanyPolicy:
    """
    Parse one ``companies:`` entry.

    Only ``company_id`` is required; absent flags default to off.

    Raises:
        KeyError: ``company_id`` missing.
        ValueError: a flag is not a boolean or the currency is blank.
    """
    company_id = data["company_id"]
    if not isinstance(company_id, str) or not company_id.strip():
        raise ValueError(f"company_id must be a non-empty string, got {company_id!r}")

    flags = {
        name: _parse_flag(company_id, name, data[name])
        for name in _FLAGS
        if name in data
    }

    currency = data.get("currency", "INR")
    if not isinstance(currency, str) or not currency.strip():
        raise ValueError(f"Company {company_id!r}: currency must be a non-empty string")

    return CompanyPolicy(company_id=company_id.strip(), currency=currency.strip(), **flags)


def parse_policy_set(data: dict[str, Any]) -> PolicySet:
    """
    Parse a full policy document.

    Raises:
        KeyError: ``name`` or ``companies`` missing.
        ValueError: ``companies`` is not a list, or a company appears twice.
    """
    name = data["name"]
    entries = data["companies"]
    if not isinstance(entries, list):
        raise ValueError("'companies' must be a list")

    policies: dict[str, CompanyPolicy] = {}
    for entry in entries:
        policy = parse_company_policy(entry)
        if policy.company_id in policies:
            raise ValueError(f"Duplicate company_id {policy.company_id!r}")
        policies[policy.company_id] = policy

    return PolicySet(
        name=name,
        version=int(data.get("version", 1)),
        policies=policies,
        checksum=compute_checksum(data),
    )


def load_policy_set(path: Path) -> PolicySet:
    """Load and parse a policy YAML file."""
    return parse_policy_set(load_yaml_file(path))
