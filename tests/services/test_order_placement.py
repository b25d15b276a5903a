"""
Tests for OrderPlacementService.

Tests cover:
- cart resolution: quantities, sizes, duplicates, unresolved vendors
- split orders: child ids, totals and items partition the parent
- entitlement consumption recorded under the resolved ledger key
- personal payment on over-entitlement orders
- initial status per company policy
- retry on lost consumption races, rollback on every failure
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from workwear_kernel.domain.orders import (
    CartLine,
    DeliveryDetails,
    DisplayStatus,
    OrderStatus,
    PRStatus,
    SourceType,
)
from workwear_kernel.exceptions import (
    CatalogUnavailableError,
    CompanyNotFoundError,
    ConcurrentUpdateError,
    EmployeeNotFoundError,
    EmptyCartError,
    InvalidQuantityError,
    UnknownSizeError,
    VendorUnresolvedError,
)
from workwear_kernel.models.order import OrderModel
from workwear_kernel.services.catalog import InMemoryProductCatalog
from workwear_kernel.services.consumption_service import ConsumptionLedgerService
from workwear_kernel.services.order_service import OrderPlacementService, new_order_id
from tests.conftest import EMPLOYEE_ID, make_products, sequential_ids


def order_count(session) -> int:
    return session.scalar(select(func.count()).select_from(OrderModel))


class FlakyCatalog(InMemoryProductCatalog):
    """Catalogue whose lookup of one product always fails."""

    def __init__(self, broken: str):
        super().__init__(make_products())
        self._broken = broken

    def resolve(self, product_id):
        if product_id == self._broken:
            raise ConnectionError("catalogue timed out")
        return super().resolve(product_id)


# =============================================================================
# Cart resolution
# =============================================================================


class TestResolveCart:

    def test_duplicate_lines_are_merged(self, placement, employee):
        items, dropped = placement.resolve_cart(
            employee, [CartLine("SHIRT-1", 1, "M"), CartLine("SHIRT-1", 2, "M")]
        )
        assert len(items) == 1
        assert items[0].quantity == 3
        assert dropped == []

    def test_same_product_different_size_kept_apart(self, placement, employee):
        items, _ = placement.resolve_cart(
            employee, [CartLine("SHIRT-1", 1, "M"), CartLine("SHIRT-1", 1, "L")]
        )
        assert [(i.size, i.quantity) for i in items] == [("M", 1), ("L", 1)]

    def test_zero_quantity_skipped(self, placement, employee):
        items, _ = placement.resolve_cart(
            employee, [CartLine("SHIRT-1", 0, "M"), CartLine("SHOE-1", 1)]
        )
        assert [i.product_id for i in items] == ["SHOE-1"]

    @pytest.mark.parametrize("quantity", [-1, 1.5, True])
    def test_invalid_quantity(self, placement, employee, quantity):
        with pytest.raises(InvalidQuantityError):
            placement.resolve_cart(employee, [CartLine("SHOE-1", quantity)])

    def test_unknown_size(self, placement, employee):
        with pytest.raises(UnknownSizeError) as exc_info:
            placement.resolve_cart(employee, [CartLine("SHIRT-1", 1, "XXL")])
        assert exc_info.value.size == "XXL"

    def test_unsized_product_accepts_any_size(self, placement, employee):
        items, _ = placement.resolve_cart(employee, [CartLine("SHOE-1", 1, "42")])
        assert items[0].size == "42"

    def test_unresolvable_lines_dropped_and_reported(self, placement, employee):
        items, dropped = placement.resolve_cart(
            employee,
            [CartLine("SHOE-1", 1), CartLine("ORPHAN-1", 1), CartLine("NOPE", 1)],
        )
        assert [i.product_id for i in items] == ["SHOE-1"]
        assert [(d.product_id, d.code) for d in dropped] == [
            ("ORPHAN-1", VendorUnresolvedError.code),
            ("NOPE", VendorUnresolvedError.code),
        ]

    def test_catalogue_failure_dropped(self, session, policies, employee):
        service = OrderPlacementService(session, FlakyCatalog("SHOE-1"), policies)
        items, dropped = service.resolve_cart(
            employee, [CartLine("SHOE-1", 1), CartLine("BELT-1", 1)]
        )
        assert [i.product_id for i in items] == ["BELT-1"]
        assert dropped[0].code == CatalogUnavailableError.code
        assert "timed out" in dropped[0].reason

    def test_every_line_unresolvable(self, placement, employee):
        with pytest.raises(VendorUnresolvedError):
            placement.resolve_cart(employee, [CartLine("ORPHAN-1", 1)])

    def test_empty_cart(self, placement, employee):
        with pytest.raises(EmptyCartError):
            placement.resolve_cart(employee, [CartLine("SHOE-1", 0)])
        with pytest.raises(EmptyCartError):
            placement.resolve_cart(employee, [])


# =============================================================================
# Composition preview
# =============================================================================


class TestComposeOrder:

    def test_preview_does_not_consume(self, placement, ledger, employee):
        composed = placement.compose_order(
            employee, "ACME",
            [CartLine("SHIRT-1", 3, "M"), CartLine("SHOE-1", 1), CartLine("ORPHAN-1", 1)],
        )

        assert composed.is_split_order
        assert [s.vendor_id for s in composed.splits] == ["V-A", "V-B"]
        assert composed.total == Decimal("1900.00")
        assert composed.personal_payment_amount == Decimal("500.00")
        assert [d.product_id for d in composed.dropped] == ["ORPHAN-1"]
        assert ledger.load_consumed(employee).shirt == 0

    def test_single_vendor_preview_has_no_splits(self, placement, employee):
        composed = placement.compose_order(employee, "ACME", [CartLine("SHIRT-1", 1, "S")])
        assert composed.splits == ()
        assert composed.item_count == 1


# =============================================================================
# Placement
# =============================================================================


class TestPlaceSplitOrder:

    def test_parent_and_children(self, split_order):
        order = split_order

        assert order.order_id == "O1"
        assert order.is_split_order
        assert order.parent_order_id is None
        assert order.vendor_id is None
        assert [s.order_id for s in order.splits] == ["O1-1", "O1-2"]
        assert all(s.parent_order_id == "O1" for s in order.splits)
        assert [s.vendor_id for s in order.splits] == ["V-A", "V-B"]

    def test_split_totals_add_up(self, split_order):
        order = split_order

        assert [s.total for s in order.splits] == [Decimal("1000"), Decimal("400")]
        assert order.total == Decimal("1400")
        assert sum(s.total for s in order.splits) == order.total
        assert sum(s.item_count for s in order.splits) == order.item_count == 3

    def test_children_partition_parent_items(self, split_order):
        parent_lines = sorted((i.product_id, i.quantity) for i in split_order.items)
        child_lines = sorted(
            (i.product_id, i.quantity) for s in split_order.splits for i in s.items
        )
        assert parent_lines == child_lines

    def test_initial_status(self, split_order):
        assert split_order.status == OrderStatus.AWAITING_APPROVAL
        assert split_order.display_status == DisplayStatus.AWAITING_APPROVAL
        assert split_order.pr_status == PRStatus.PENDING_SITE_ADMIN_APPROVAL
        assert split_order.source_type == SourceType.PR_PO
        assert all(s.status == OrderStatus.AWAITING_APPROVAL for s in split_order.splits)

    def test_consumption_recorded(self, split_order, ledger):
        consumed = ledger.load_consumed(EMPLOYEE_ID)
        assert consumed.shirt == 2
        assert consumed.shoe == 1
        assert not split_order.is_personal_payment

    def test_rows_persisted(self, split_order, session):
        assert order_count(session) == 3


class TestConsumption:

    def test_over_entitlement_charges_personal_payment(self, placement, ledger, employee):
        order = placement.place_order(employee, "ACME", [CartLine("SHIRT-1", 3, "M")])

        assert order.is_personal_payment
        assert order.personal_payment_amount == Decimal("500")
        assert ledger.load_consumed(employee).shirt == 3

    def test_later_order_sees_earlier_consumption(self, placement, employee):
        first = placement.place_order(employee, "ACME", [CartLine("SHIRT-1", 2, "M")])
        second = placement.place_order(employee, "ACME", [CartLine("SHIRT-1", 1, "L")])

        assert not first.is_personal_payment
        assert second.personal_payment_amount == Decimal("500")

    def test_alias_recorded_under_entitlement_key(self, placement, ledger, employee):
        order = placement.place_order(employee, "ACME", [CartLine("BELT-1", 1)])

        assert order.items[0].entitlement_key == "accessory"
        assert ledger.load_consumed(employee).categories["accessory"] == 1

        again = placement.place_order(employee, "ACME", [CartLine("BELT-1", 1)])
        assert again.personal_payment_amount == Decimal("250")

    def test_trouser_draws_on_pant_field(self, placement, ledger, employee):
        placement.place_order(employee, "ACME", [CartLine("TROUSER-1", 2)])
        assert ledger.load_consumed(employee).pant == 2

    def test_no_charge_when_company_disallows(self, placement, ledger, employee):
        order = placement.place_order(employee, "GLOBEX", [CartLine("SHIRT-1", 4, "M")])

        assert not order.is_personal_payment
        assert order.personal_payment_amount == Decimal("0")
        assert ledger.load_consumed(employee).shirt == 4


class TestInitialStateByPolicy:

    def test_manual_company_skips_approval(self, placement, employee):
        order = placement.place_order(employee, "UMBRELLA", [CartLine("SHOE-1", 1)])
        assert order.status == OrderStatus.AWAITING_FULFILMENT
        assert order.pr_status is None
        assert order.source_type == SourceType.MANUAL

    def test_site_admin_step_disabled(self, placement, employee):
        order = placement.place_order(employee, "INITECH", [CartLine("SHOE-1", 1)])
        assert order.status == OrderStatus.AWAITING_FULFILMENT
        assert order.pr_status == PRStatus.PENDING_COMPANY_ADMIN_APPROVAL
        assert order.location_auto_approved


class TestPlacementDetails:

    def test_delivery_details_stored(self, placement, employee, deterministic_clock):
        order = placement.place_order(
            employee,
            "ACME",
            [CartLine("SHOE-1", 1)],
            delivery=DeliveryDetails("Plant 4, Gate 2", "EXPRESS", "3-5 days"),
            actor_email="emp1@acme.example",
        )
        assert order.delivery.delivery_address == "Plant 4, Gate 2"
        assert order.delivery.dispatch_preference == "EXPRESS"
        assert order.delivery.estimated_delivery_time == "3-5 days"
        assert order.vendor_id == "V-B"
        assert order.order_date is not None

    def test_default_order_id_format(self):
        order_id = new_order_id()
        assert order_id.startswith("ORD-")
        assert len(order_id) == 16
        assert order_id[4:] == order_id[4:].upper()

    def test_order_placed_logged(self, placement, employee, captured_logs):
        placement.place_order(employee, "ACME", [CartLine("SHOE-1", 1)])

        placed = [r for r in captured_logs() if r["message"] == "order_placed"]
        assert len(placed) == 1
        assert placed[0]["order_id"] == "O1"
        assert placed[0]["employee_id"] == EMPLOYEE_ID


class TestPlacementFailures:

    def test_unknown_employee(self, placement, session):
        with pytest.raises(EmployeeNotFoundError):
            placement.place_order("EMP-404", "ACME", [CartLine("SHOE-1", 1)])
        assert order_count(session) == 0

    def test_unknown_company(self, placement, employee, session):
        with pytest.raises(CompanyNotFoundError):
            placement.place_order(employee, "HOOLI", [CartLine("SHOE-1", 1)])
        assert order_count(session) == 0

    def test_max_attempts_must_be_positive(self, session, catalog, policies):
        with pytest.raises(ValueError):
            OrderPlacementService(session, catalog, policies, max_attempts=0)


class TestConflictRetry:

    def test_retries_after_lost_race(
        self, monkeypatch, placement, ledger, session, employee, captured_logs,
    ):
        original = ConsumptionLedgerService.consume
        calls = {"n": 0}

        def flaky(self, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConcurrentUpdateError("consumed_entitlement", f"{EMPLOYEE_ID}:shirt")
            return original(self, *args, **kwargs)

        monkeypatch.setattr(ConsumptionLedgerService, "consume", flaky)

        order = placement.place_order(employee, "ACME", [CartLine("SHIRT-1", 1, "M")])

        assert order.order_id == "O1"
        assert calls["n"] == 2
        assert order_count(session) == 1
        assert ledger.load_consumed(employee).shirt == 1
        assert any(r["message"] == "consumption_conflict_retry" for r in captured_logs())

    def test_gives_up_after_max_attempts(
        self, monkeypatch, session, catalog, policies, deterministic_clock, employee,
        captured_logs,
    ):
        calls = {"n": 0}

        def always_conflict(self, *args, **kwargs):
            calls["n"] += 1
            raise ConcurrentUpdateError("consumed_entitlement", f"{EMPLOYEE_ID}:shirt")

        monkeypatch.setattr(ConsumptionLedgerService, "consume", always_conflict)
        service = OrderPlacementService(
            session, catalog, policies, clock=deterministic_clock,
            max_attempts=2, id_factory=sequential_ids("X"),
        )

        with pytest.raises(ConcurrentUpdateError):
            service.place_order(employee, "ACME", [CartLine("SHIRT-1", 1, "M")])

        assert calls["n"] == 2
        assert order_count(session) == 0
        assert any(
            r["message"] == "order_placement_conflict_exhausted" for r in captured_logs()
        )
