"""
Company policy configuration schema.

A ``PolicySet`` is the human-authored source artifact: one YAML file
listing every client company and its approval/payment flags.  The loader
parses YAML into these types; the kernel consumes the resulting
``CompanyPolicy`` objects through the ``PolicySource`` protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from workwear_kernel.domain.policy import CompanyPolicy
from workwear_kernel.exceptions import CompanyNotFoundError


@dataclass(frozen=True)
class PolicySet:
    """Versioned set of company policies, keyed by company id."""

    name: str
    version: int
    policies: Mapping[str, CompanyPolicy] = field(default_factory=dict)
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "policies", MappingProxyType(dict(self.policies)))

    def get(self, company_id: str) -> CompanyPolicy:
        """
        Policy for ``company_id``.

        Raises:
            CompanyNotFoundError: The set has no entry for that company.
        """
        try:
            return self.policies[company_id]
        except KeyError:
            raise CompanyNotFoundError(company_id) from None

    def __contains__(self, company_id: object) -> bool:
        return company_id in self.policies

    def __len__(self) -> int:
        return len(self.policies)
