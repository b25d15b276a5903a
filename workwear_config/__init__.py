"""
workwear_config -- single public entrypoint for company policy configuration.

Responsibility:
    Provides the only way to obtain a ``CompanyPolicy`` at runtime through
    ``get_company_policy()``.  No other component reads policy files.

Architecture position:
    Configuration -- sits above ``workwear_kernel``.  The kernel never
    imports from ``workwear_config``; it receives ``CompanyPolicy`` objects
    (or a ``PolicySet`` acting as its ``PolicySource``).

Audit relevance:
    Every successful ``get_company_policy()`` call emits a
    ``WORKWEAR_CONFIG_TRACE`` log entry carrying the policy set name,
    version, checksum and the flags in force.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path

from workwear_config.loader import load_policy_set
from workwear_config.schema import PolicySet
from workwear_kernel.domain.policy import CompanyPolicy

_logger = logging.getLogger("workwear_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "companies.yaml"


def get_company_policy(
    company_id: str,
    config_path: Path | None = None,
) -> CompanyPolicy:
    """The public configuration entrypoint.

    Args:
        company_id: Client company identifier.
        config_path: Override path to the policy YAML.  Defaults to
            ``workwear_config/sets/companies.yaml``.

    Raises:
        FileNotFoundError: The policy file does not exist.
        ValueError / KeyError: The policy file is malformed.
        CompanyNotFoundError: No policy for ``company_id``.
    """
    policy_set = load_policy_set(config_path or _DEFAULT_CONFIG_PATH)
    policy = policy_set.get(company_id)

    _logger.info(
        "WORKWEAR_CONFIG_TRACE",
        extra={
            "trace_type": "WORKWEAR_CONFIG_TRACE",
            "policy_set": policy_set.name,
            "version": policy_set.version,
            "checksum": policy_set.checksum,
            "company_id": company_id,
            "policy": asdict(policy),
        },
    )
    return policy


__all__ = [
    "PolicySet",
    "get_company_policy",
    "load_policy_set",
]
