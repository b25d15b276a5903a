"""
workwear_engines.composer -- Vendor split and personal-payment computation.

Responsibility:
    Turn a resolved cart into an order composition: group lines by vendor
    (one child order per vendor when more than one is involved), total the
    quantities per entitlement bucket, and price whatever exceeds the
    employee's remaining allowance as a personal payment.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only kernel domain types and sibling engines.

Invariants enforced:
    - Every cart line lands in exactly one vendor group; vendor groups keep
      the order in which their vendor first appears in the cart.
    - Sum of vendor-group totals equals the composition total.
    - Personal payment is charged only when the company allows it, and only
      for the exceeded quantity; it is allocated across the matching cart
      lines in cart order, each line charged at its own unit price.
    - Money stays exact ``Decimal`` until the output boundary, where it is
      rounded to 2 places (half-up).

Failure modes:
    - ValueError if the cart (after dropping zero-quantity lines) is empty.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from workwear_engines import entitlement as ledger
from workwear_engines.categories import group_categories
from workwear_engines.tracer import traced_engine
from workwear_kernel.domain.entitlement import (
    ConsumedEntitlement,
    EmployeeEntitlement,
    normalize_category,
)
from workwear_kernel.domain.orders import CartItem
from workwear_kernel.domain.values import ZERO, round_money
from workwear_kernel.logging_config import get_logger

logger = get_logger("engines.composer")


@dataclass(frozen=True)
class VendorGroup:
    """Cart lines fulfilled by one vendor."""

    vendor_id: str
    vendor_name: str
    items: tuple[CartItem, ...]

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        """Exact (unrounded) sum of line totals."""
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def total(self) -> Decimal:
        return round_money(self.subtotal)


@dataclass(frozen=True)
class CategoryOverage:
    """Per-bucket comparison of ordered quantity against remaining allowance."""

    categories: tuple[str, ...]
    ordered: int
    remaining: int
    charge: Decimal = ZERO

    @property
    def exceeded(self) -> int:
        return max(0, self.ordered - self.remaining)


@dataclass(frozen=True)
class Composition:
    """Result of composing a cart."""

    items: tuple[CartItem, ...]
    vendor_groups: tuple[VendorGroup, ...]
    overages: tuple[CategoryOverage, ...]
    personal_payment_amount: Decimal

    @property
    def is_split(self) -> bool:
        return len(self.vendor_groups) > 1

    @property
    def item_count(self) -> int:
        return sum(group.item_count for group in self.vendor_groups)

    @property
    def total(self) -> Decimal:
        """Rounded order total; always the sum of the rounded vendor totals."""
        return sum((group.total for group in self.vendor_groups), ZERO)

    @property
    def is_personal_payment(self) -> bool:
        return self.personal_payment_amount > ZERO

    @property
    def exceeded_quantity(self) -> int:
        return sum(overage.exceeded for overage in self.overages)


def group_by_vendor(items: Sequence[CartItem]) -> tuple[VendorGroup, ...]:
    """Group cart lines by ``vendor_id``, keeping first-appearance order."""
    order: list[str] = []
    grouped: dict[str, list[CartItem]] = {}
    names: dict[str, str] = {}
    for item in items:
        if item.vendor_id not in grouped:
            order.append(item.vendor_id)
            grouped[item.vendor_id] = []
            names[item.vendor_id] = item.vendor_name
        grouped[item.vendor_id].append(item)
    return tuple(
        VendorGroup(vendor_id=vid, vendor_name=names[vid], items=tuple(grouped[vid]))
        for vid in order
    )


def allocate_charge(items: Sequence[CartItem], exceeded: int) -> Decimal:
    """Charge ``exceeded`` units against ``items`` in the given order.

    Each line absorbs up to its own quantity at its own unit price.
    Returns the exact (unrounded) charge.
    """
    charge = ZERO
    outstanding = exceeded
    for item in items:
        if outstanding <= 0:
            break
        units = min(item.quantity, outstanding)
        charge += item.unit_price * units
        outstanding -= units
    return charge


def bucket_items(items: Sequence[CartItem]) -> list[tuple[tuple[str, ...], list[CartItem]]]:
    """Cart lines grouped by entitlement bucket, buckets in first-appearance order."""
    buckets = group_categories(item.category for item in items)
    result: list[tuple[tuple[str, ...], list[CartItem]]] = []
    for bucket in buckets:
        members = [item for item in items if normalize_category(item.category) in bucket]
        result.append((bucket, members))
    return result


@traced_engine("composer", "1.0", fingerprint_fields=("items",))
def compose(
    items: Sequence[CartItem],
    entitlement: EmployeeEntitlement | None,
    consumed: ConsumedEntitlement | None,
    allow_personal_payments: bool,
) -> Composition:
    """Compose a resolved cart into vendor groups and a personal-payment amount.

    Args:
        items: Resolved cart lines.  Zero-quantity lines are ignored.
        entitlement: The employee's allowance (``None`` counts as zero).
        consumed: The employee's consumption (``None`` counts as zero).
        allow_personal_payments: Company flag; when False nothing is charged.

    Raises:
        ValueError: If no line has a positive quantity.
    """
    active = tuple(item for item in items if item.quantity > 0)
    if not active:
        raise ValueError("Cart has no items with a positive quantity")

    vendor_groups = group_by_vendor(active)

    overages: list[CategoryOverage] = []
    total_charge = ZERO
    for bucket, members in bucket_items(active):
        ordered = sum(item.quantity for item in members)
        left = ledger.remaining(entitlement, consumed, bucket[0])
        exceeded = max(0, ordered - left)
        charge = ZERO
        if exceeded and allow_personal_payments:
            charge = allocate_charge(members, exceeded)
        total_charge += charge
        overages.append(
            CategoryOverage(
                categories=bucket,
                ordered=ordered,
                remaining=left,
                charge=round_money(charge),
            )
        )

    composition = Composition(
        items=active,
        vendor_groups=vendor_groups,
        overages=tuple(overages),
        personal_payment_amount=round_money(total_charge),
    )

    logger.info(
        "order_composed",
        extra={
            "vendor_count": len(vendor_groups),
            "is_split": composition.is_split,
            "item_count": composition.item_count,
            "total": str(composition.total),
            "exceeded_quantity": composition.exceeded_quantity,
            "personal_payment_amount": str(composition.personal_payment_amount),
        },
    )
    return composition
