"""
Order Placement Service (``workwear_kernel.services.order_service``).

Responsibility
--------------
Turns an employee's cart into persisted orders: resolves cart lines
against the product catalogue, composes vendor splits and personal
payment through ``workwear_engines.composer``, records entitlement
consumption, and writes the parent / child order rows with the initial
status the company policy dictates.

Architecture position
---------------------
**Kernel services layer**.  Pure computation is delegated to
``workwear_engines``; counters go through ``ConsumptionLedgerService``.

Invariants enforced
-------------------
* Each public write method owns the transaction boundary (``commit`` on
  success, ``rollback`` on failure or exception).
* Conservation: consumption is incremented in the same transaction that
  inserts the order, by exactly the ordered quantity per alias bucket.
* Snapshot consistency: composition uses the consumption rows locked at
  the start of the attempt.  A lost race (ConcurrentUpdateError) rolls the
  attempt back and retries on a fresh snapshot, a bounded number of times.
* Split totals: children are built from the composer's vendor groups, so
  child totals sum to the parent total and child items partition the
  parent's items.

Failure modes
-------------
* InvalidQuantityError / UnknownSizeError / EmptyCartError: cart rejected
  before any database work.
* VendorUnresolvedError: no cart line could be resolved to a vendor.
* CompanyNotFoundError / EmployeeNotFoundError: unknown company or an
  employee with no entitlement record.
* ConcurrentUpdateError: still losing the race after the last attempt.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.orm import Session

from workwear_engines.approval import aggregate_status, initial_stage
from workwear_engines.composer import Composition, VendorGroup, compose
from workwear_engines.entitlement import consumption_key
from workwear_kernel.domain.clock import Clock, SystemClock
from workwear_kernel.domain.entitlement import normalize_category
from workwear_kernel.domain.orders import (
    CartItem,
    CartLine,
    DeliveryDetails,
    DroppedItem,
    Order,
    OrderStatus,
)
from workwear_kernel.domain.policy import CompanyPolicy, PolicySource
from workwear_kernel.exceptions import (
    CatalogUnavailableError,
    ConcurrentUpdateError,
    EmployeeNotFoundError,
    EmptyCartError,
    InvalidQuantityError,
    UnknownSizeError,
    VendorUnresolvedError,
)
from workwear_kernel.logging_config import LogContext, get_logger
from workwear_kernel.models.order import OrderItemModel, OrderModel
from workwear_kernel.services.catalog import ProductCatalog
from workwear_kernel.services.consumption_service import ConsumptionLedgerService

logger = get_logger("services.orders")

DEFAULT_MAX_ATTEMPTS = 3


def new_order_id() -> str:
    """``ORD-`` followed by 12 upper-case hex digits."""
    return f"ORD-{uuid4().hex[:12].upper()}"


@dataclass(frozen=True)
class ComposedOrder:
    """A composed but not yet persisted order.

    ``dropped`` lists cart lines that could not be resolved to a vendor.
    """

    employee_id: str
    company_id: str
    composition: Composition
    dropped: tuple[DroppedItem, ...] = ()

    @property
    def items(self) -> tuple[CartItem, ...]:
        return self.composition.items

    @property
    def splits(self) -> tuple[VendorGroup, ...]:
        """One vendor group per child order; empty for a single-vendor cart."""
        if self.composition.is_split:
            return self.composition.vendor_groups
        return ()

    @property
    def is_split_order(self) -> bool:
        return self.composition.is_split

    @property
    def item_count(self) -> int:
        return self.composition.item_count

    @property
    def total(self) -> Decimal:
        return self.composition.total

    @property
    def is_personal_payment(self) -> bool:
        return self.composition.is_personal_payment

    @property
    def personal_payment_amount(self) -> Decimal:
        return self.composition.personal_payment_amount


class OrderPlacementService:
    """
    Composes and places employee orders.

    Contract
    --------
    * ``compose_order`` is read-only: it never writes and never commits.
    * ``place_order`` commits on success and rolls back on any failure.

    Guarantees
    ----------
    * Clock and order-id factory are injectable for deterministic testing.
    * Retries only on ConcurrentUpdateError; every other error propagates
      after rollback.

    Non-goals
    ---------
    * Does NOT decide whether an over-entitlement cart is acceptable at all;
      that gate belongs to the eligibility collaborator.
    """

    def __init__(
        self,
        session: Session,
        catalog: ProductCatalog,
        policies: PolicySource,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        id_factory: Callable[[], str] = new_order_id,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session = session
        self._catalog = catalog
        self._policies = policies
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._id_factory = id_factory
        self._ledger = ConsumptionLedgerService(session, self._clock)

    # =========================================================================
    # Cart resolution
    # =========================================================================

    def resolve_cart(
        self,
        employee_id: str,
        cart_lines: Sequence[CartLine],
    ) -> tuple[list[CartItem], list[DroppedItem]]:
        """
        Resolve raw cart lines against the catalogue.

        Zero-quantity lines are skipped and duplicate (product, size) lines
        are merged.  Lines whose product cannot be resolved to a vendor are
        returned in the dropped list.

        Raises:
            InvalidQuantityError: A quantity is negative or not an integer.
            UnknownSizeError: A size is not offered for its product.
            VendorUnresolvedError: Every line was dropped.
            EmptyCartError: No line had a positive quantity.
        """
        merged: dict[tuple[str, str | None], int] = {}
        for line in cart_lines:
            quantity = line.quantity
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
                raise InvalidQuantityError(line.product_id, quantity)
            if quantity == 0:
                continue
            key = (line.product_id, line.size)
            merged[key] = merged.get(key, 0) + quantity

        items: list[CartItem] = []
        dropped: list[DroppedItem] = []
        for (product_id, size), quantity in merged.items():
            try:
                product = self._catalog.resolve(product_id)
            except Exception as exc:
                logger.warning(
                    "catalog_lookup_failed",
                    extra={"product_id": product_id, "error": str(exc)},
                    exc_info=True,
                )
                dropped.append(DroppedItem(product_id, str(exc), CatalogUnavailableError.code))
                continue

            if product is None:
                dropped.append(
                    DroppedItem(product_id, "product not in catalogue", VendorUnresolvedError.code)
                )
                continue
            if not product.vendor_id:
                dropped.append(
                    DroppedItem(product_id, "product has no vendor", VendorUnresolvedError.code)
                )
                continue
            if not product.offers_size(size):
                raise UnknownSizeError(product_id, size or "")

            items.append(CartItem.from_product(product, quantity, size))

        for item in dropped:
            logger.warning(
                "cart_item_dropped",
                extra={"product_id": item.product_id, "reason": item.reason, "code": item.code},
            )

        if not items:
            if dropped:
                raise VendorUnresolvedError(
                    dropped[0].product_id, "no cart item could be resolved to a vendor"
                )
            raise EmptyCartError(employee_id)
        return items, dropped

    # =========================================================================
    # Composition (read-only)
    # =========================================================================

    def compose_order(
        self,
        employee_id: str,
        company_id: str,
        cart_lines: Sequence[CartLine],
    ) -> ComposedOrder:
        """Preview the order a cart would produce, without writing anything."""
        policy = self._policies.get(company_id)
        items, dropped = self.resolve_cart(employee_id, cart_lines)
        composition = compose(
            items=items,
            entitlement=self._ledger.load_entitlement(employee_id),
            consumed=self._ledger.load_consumed(employee_id),
            allow_personal_payments=policy.allow_personal_payments,
        )
        return ComposedOrder(
            employee_id=employee_id,
            company_id=company_id,
            composition=composition,
            dropped=tuple(dropped),
        )

    # =========================================================================
    # Placement
    # =========================================================================

    def place_order(
        self,
        employee_id: str,
        company_id: str,
        cart_lines: Sequence[CartLine],
        delivery: DeliveryDetails | None = None,
        actor_email: str | None = None,
    ) -> Order:
        """
        Place an order: consume entitlement and persist the order rows.

        Args:
            employee_id: The ordering employee.
            company_id: The employee's company (selects the policy).
            cart_lines: Raw cart lines.
            delivery: Delivery address and dispatch preference.
            actor_email: Who is placing the order (defaults to the employee).

        Returns:
            The placed order; for a split order, the parent with its children.
        """
        actor = actor_email or employee_id
        delivery = delivery or DeliveryDetails()

        with LogContext.bind(employee_id=employee_id, actor_id=actor):
            policy = self._policies.get(company_id)
            items, dropped = self.resolve_cart(employee_id, cart_lines)

            attempt = 0
            while True:
                attempt += 1
                try:
                    order = self._place_once(
                        employee_id, policy, items, delivery, actor,
                    )
                    self._session.commit()
                except ConcurrentUpdateError as exc:
                    self._session.rollback()
                    if attempt >= self._max_attempts:
                        logger.error(
                            "order_placement_conflict_exhausted",
                            extra={"attempts": attempt, "entity_id": exc.entity_id},
                        )
                        raise
                    logger.warning(
                        "consumption_conflict_retry",
                        extra={"attempt": attempt, "entity_id": exc.entity_id},
                    )
                    continue
                except Exception:
                    self._session.rollback()
                    raise

                logger.info(
                    "order_placed",
                    extra={
                        "order_id": order.order_id,
                        "company_id": company_id,
                        "status": order.status.value,
                        "pr_status": order.pr_status.value if order.pr_status else None,
                        "is_split_order": order.is_split_order,
                        "split_count": len(order.splits),
                        "item_count": order.item_count,
                        "total": str(order.total),
                        "personal_payment_amount": str(order.personal_payment_amount),
                        "dropped_count": len(dropped),
                        "attempt": attempt,
                    },
                )
                return order

    def _place_once(
        self,
        employee_id: str,
        policy: CompanyPolicy,
        items: list[CartItem],
        delivery: DeliveryDetails,
        actor: str,
    ) -> Order:
        if not self._ledger.has_entitlement_record(employee_id):
            raise EmployeeNotFoundError(employee_id)

        entitlement = self._ledger.load_entitlement(employee_id)
        consumed = self._ledger.load_consumed(employee_id, lock=True)
        composition = compose(
            items=items,
            entitlement=entitlement,
            consumed=consumed,
            allow_personal_payments=policy.allow_personal_payments,
        )

        # Ledger key per normalised category, resolved against the snapshot.
        keys: dict[str, str] = {}
        increments: dict[str, int] = {}
        for overage in composition.overages:
            key = consumption_key(entitlement, consumed, overage.categories[0])
            for category in overage.categories:
                keys[category] = key
            increments[key] = increments.get(key, 0) + overage.ordered
        for key, quantity in increments.items():
            self._ledger.consume(employee_id, key, quantity, actor)

        stage = initial_stage(policy)
        order_id = self._id_factory()
        now = self._clock.now()

        def build(
            row_id: str,
            lines: Sequence[CartItem],
            vendor: VendorGroup | None,
            total: Decimal,
            item_count: int,
            parent_id: str | None = None,
            personal_payment: Decimal = Decimal("0"),
        ) -> OrderModel:
            return OrderModel(
                order_id=row_id,
                parent_order_id=parent_id,
                is_split_order=composition.is_split,
                company_id=policy.company_id,
                employee_id=employee_id,
                vendor_id=vendor.vendor_id if vendor else None,
                vendor_name=vendor.vendor_name if vendor else None,
                status=stage.status.value,
                pr_status=stage.pr_status.value if stage.pr_status else None,
                source_type=stage.source_type.value,
                location_auto_approved=stage.location_auto_approved,
                item_count=item_count,
                total=total,
                is_personal_payment=personal_payment > 0,
                personal_payment_amount=personal_payment,
                delivery_address=delivery.delivery_address,
                dispatch_preference=delivery.dispatch_preference,
                estimated_delivery_time=delivery.estimated_delivery_time,
                order_date=now,
                created_by=actor,
                items=[
                    OrderItemModel(
                        line_number=n,
                        product_id=item.product_id,
                        product_name=item.name,
                        category=item.category,
                        entitlement_key=keys.get(normalize_category(item.category)),
                        size=item.size,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        vendor_id=item.vendor_id,
                        vendor_name=item.vendor_name,
                        created_by=actor,
                    )
                    for n, item in enumerate(lines, start=1)
                ],
            )

        single_vendor = None if composition.is_split else composition.vendor_groups[0]
        parent = build(
            order_id,
            composition.items,
            single_vendor,
            composition.total,
            composition.item_count,
            personal_payment=composition.personal_payment_amount,
        )
        self._session.add(parent)

        children: list[OrderModel] = []
        if composition.is_split:
            for n, group in enumerate(composition.vendor_groups, start=1):
                child = build(
                    f"{order_id}-{n}",
                    group.items,
                    group,
                    group.total,
                    group.item_count,
                    parent_id=order_id,
                )
                children.append(child)
            self._session.add_all(children)

        self._session.flush()

        display = None
        if children:
            display = aggregate_status(OrderStatus(c.status) for c in children)
        return parent.to_dto(children, display_status=display)
