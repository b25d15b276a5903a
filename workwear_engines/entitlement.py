"""
workwear_engines.entitlement -- Remaining-allowance lookup.

Responsibility:
    Answer "how many more items of this category may the employee order
    without paying?" from an entitlement record and a consumption record,
    tolerating category-label drift between the catalogue and the ledger.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``remaining`` is never negative and never raises; absent records
      contribute 0.
    - The input category is probed before any alias, so an exact key
      always wins over a synonym.  Aliases are probed in sorted order.
    - Lookup is a pure function of its inputs.
    - A category entitled under its own key is charged only against
      consumption under that key (see ``balance``).

Lookup order, per probed label:
    1. the merged {dynamic, legacy} map, by exact key;
    2. the legacy fixed field the label maps to (shirt / pant / shoe /
       jacket and their plural or synonym spellings).
The first non-zero value found is used.
"""

from __future__ import annotations

from workwear_engines.categories import resolve_aliases
from workwear_kernel.domain.entitlement import (
    CategoryLedger,
    ConsumedEntitlement,
    EmployeeEntitlement,
    EntitlementBalance,
    normalize_category,
)

LEGACY_FIELD_FOR_LABEL: dict[str, str] = {
    "shirt": "shirt",
    "shirts": "shirt",
    "pant": "pant",
    "pants": "pant",
    "trouser": "pant",
    "trousers": "pant",
    "shoe": "shoe",
    "shoes": "shoe",
    "jacket": "jacket",
    "jackets": "jacket",
    "blazer": "jacket",
    "blazers": "jacket",
}


def _probe(ledger: CategoryLedger, label: str) -> tuple[str | None, int]:
    merged = ledger.merged()
    value = merged.get(label, 0)
    if value:
        return label, value
    legacy_field = LEGACY_FIELD_FOR_LABEL.get(label)
    if legacy_field is not None:
        value = ledger.legacy(legacy_field)
        if value:
            return legacy_field, value
    return None, 0


def lookup(ledger: CategoryLedger | None, category: str | None) -> tuple[str | None, int]:
    """Find the ledger key and quantity recorded for ``category``.

    Returns:
        ``(key, quantity)`` for the first non-zero match, else ``(None, 0)``.
    """
    if ledger is None:
        return None, 0
    norm = normalize_category(category)
    if not norm:
        return None, 0

    aliases = resolve_aliases(norm, ledger.keys())
    key, value = _probe(ledger, norm)
    if value:
        return key, value
    for alias in sorted(aliases - {norm}):
        key, value = _probe(ledger, alias)
        if value:
            return key, value
    return None, 0


def balance(
    entitlement: EmployeeEntitlement | None,
    consumed: ConsumedEntitlement | None,
    category: str | None,
) -> EntitlementBalance:
    """Total, consumed and remaining allowance for ``category``.

    When the entitlement is held under the category's own key, consumption
    is read under that key only; "sweatshirt" must not count what was
    consumed as "shirt".
    """
    norm = normalize_category(category)
    entitlement_key, total = lookup(entitlement, category)
    consumed_key, used = lookup(consumed, category)
    own = {norm, LEGACY_FIELD_FOR_LABEL.get(norm)}
    if entitlement_key in own and consumed_key not in own:
        consumed_key, used = (None, 0) if consumed is None else _probe(consumed, entitlement_key)
    return EntitlementBalance(
        category=norm,
        total=total,
        consumed=used,
        entitlement_key=entitlement_key,
        consumed_key=consumed_key,
    )


def remaining(
    entitlement: EmployeeEntitlement | None,
    consumed: ConsumedEntitlement | None,
    category: str | None,
) -> int:
    """``max(0, total - consumed)`` for ``category``."""
    return balance(entitlement, consumed, category).remaining


def consumption_key(
    entitlement: EmployeeEntitlement | None,
    consumed: ConsumedEntitlement | None,
    category: str | None,
) -> str:
    """Ledger key under which an order of ``category`` is recorded.

    Prefers the key the consumption record already uses, then the key the
    entitlement matched, so that future lookups of the same category see
    the increment.  Falls back to the legacy field name or the normalised
    label.
    """
    result = balance(entitlement, consumed, category)
    if result.consumed_key:
        return result.consumed_key
    if result.entitlement_key:
        return result.entitlement_key
    norm = normalize_category(category)
    return LEGACY_FIELD_FOR_LABEL.get(norm, norm)
