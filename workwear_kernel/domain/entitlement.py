"""
Entitlement domain types (``workwear_kernel.domain.entitlement``).

Responsibility
--------------
Pure value objects for an employee's per-category allowance and for the
quantity already consumed against it.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Category keys are open-ended.  The four legacy categories (``shirt``,
  ``pant``, ``shoe``, ``jacket``) are always present as fixed fields;
  everything else lives in the ``categories`` mapping.
* Keys are normalised (trimmed, lowercased) at construction so lookups
  never miss on casing drift.
* consumed <= total is NOT enforced.  Exceeding the allowance is what
  triggers personal payment, not an error.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

LEGACY_CATEGORIES: tuple[str, ...] = ("shirt", "pant", "shoe", "jacket")


def normalize_category(category: str | None) -> str:
    """Trim and lowercase a category label. ``None`` becomes ``""``."""
    return (category or "").strip().lower()


@dataclass(frozen=True)
class CategoryLedger:
    """Per-category integer quantities for one employee.

    Shared shape of ``EmployeeEntitlement`` and ``ConsumedEntitlement``.
    """

    employee_id: str
    shirt: int = 0
    pant: int = 0
    shoe: int = 0
    jacket: int = 0
    categories: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.employee_id:
            raise ValueError("employee_id is required")
        for name in LEGACY_CATEGORIES:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        normalized: dict[str, int] = {}
        for key, value in self.categories.items():
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Quantity for '{key}' must be an integer, got {value!r}")
            norm = normalize_category(key)
            if not norm:
                continue
            normalized[norm] = normalized.get(norm, 0) + value
        object.__setattr__(self, "categories", MappingProxyType(normalized))

    @classmethod
    def from_mapping(cls, employee_id: str, quantities: Mapping[str, int]):
        """Split a flat ``{category: quantity}`` mapping into legacy fields and extras."""
        legacy: dict[str, int] = {}
        extra: dict[str, int] = {}
        for key, value in quantities.items():
            norm = normalize_category(key)
            if norm in LEGACY_CATEGORIES:
                legacy[norm] = legacy.get(norm, 0) + value
            elif norm:
                extra[norm] = extra.get(norm, 0) + value
        return cls(employee_id=employee_id, categories=extra, **legacy)

    def legacy(self, name: str) -> int:
        """Value of a legacy fixed field (0 for anything else)."""
        if name in LEGACY_CATEGORIES:
            return getattr(self, name)
        return 0

    def merged(self) -> dict[str, int]:
        """The merged {dynamic, legacy} map; dynamic keys override legacy ones."""
        merged = {name: getattr(self, name) for name in LEGACY_CATEGORIES}
        merged.update(self.categories)
        return merged

    def keys(self) -> tuple[str, ...]:
        """Every category key this ledger knows about."""
        return tuple(self.merged().keys())


@dataclass(frozen=True)
class EmployeeEntitlement(CategoryLedger):
    """Total allowance per category.  Read-only to the order engine."""


@dataclass(frozen=True)
class ConsumedEntitlement(CategoryLedger):
    """Quantity already ordered per category."""


@dataclass(frozen=True)
class EntitlementBalance:
    """Result of a remaining-allowance lookup for one category.

    ``entitlement_key`` / ``consumed_key`` are the ledger keys the lookup
    actually matched (``None`` when nothing non-zero was found).
    """

    category: str
    total: int
    consumed: int
    entitlement_key: str | None = None
    consumed_key: str | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.consumed)
