"""
Company policy (``workwear_kernel.domain.policy``).

The per-company flags that decide which approval stages an order passes
through and whether overage is charged to the employee.  Compiled from
YAML by ``workwear_config``; the kernel only ever sees these frozen
objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CompanyPolicy:
    """Approval and payment policy for one client company."""

    company_id: str
    enable_pr_po_workflow: bool = False
    enable_site_admin_pr_approval: bool = False
    require_company_admin_po_approval: bool = False
    allow_multi_pr_po: bool = False
    allow_personal_payments: bool = False
    currency: str = "INR"

    def __post_init__(self) -> None:
        if not self.company_id:
            raise ValueError("company_id is required")

    @property
    def requires_site_admin_approval(self) -> bool:
        """True when orders wait in ``Awaiting approval`` for a Site Admin PR."""
        return self.enable_pr_po_workflow and self.enable_site_admin_pr_approval


class PolicySource(Protocol):
    """Anything that can hand out a company's policy.

    Implementations raise ``CompanyNotFoundError`` for unknown companies.
    """

    def get(self, company_id: str) -> CompanyPolicy:
        ...
