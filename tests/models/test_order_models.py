"""
ORM model tests for the order persistence layer.

Tests: OrderModel / OrderItemModel -- DTO conversion, structural
constraints, and the module-level engine and session_scope helpers.

These are ORM-level tests only.  Service-layer behaviour is tested elsewhere.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from workwear_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from workwear_kernel.domain.orders import DisplayStatus, OrderStatus, PRStatus, SourceType
from workwear_kernel.models.order import OrderItemModel, OrderModel

ORDERED_AT = datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc)


def _make_order(order_id="ORD-1", status="Awaiting approval", **overrides) -> OrderModel:
    fields = dict(
        order_id=order_id,
        company_id="ACME",
        employee_id="EMP-1",
        vendor_id="V-A",
        vendor_name="Alpha Uniforms",
        status=status,
        pr_status="PENDING_SITE_ADMIN_APPROVAL",
        source_type="PR_PO",
        item_count=2,
        total=Decimal("1000.00"),
        order_date=ORDERED_AT,
        created_by="EMP-1",
        items=[
            OrderItemModel(
                line_number=1,
                product_id="SHIRT-1",
                product_name="Oxford shirt",
                category="Shirt",
                entitlement_key="shirt",
                size="M",
                quantity=2,
                unit_price=Decimal("500"),
                vendor_id="V-A",
                vendor_name="Alpha Uniforms",
                created_by="EMP-1",
            )
        ],
    )
    fields.update(overrides)
    return OrderModel(**fields)


class TestOrderModel:

    def test_round_trip_to_dto(self, session):
        session.add(_make_order())
        session.commit()

        model = session.execute(
            select(OrderModel).where(OrderModel.order_id == "ORD-1")
        ).scalar_one()
        order = model.to_dto()

        assert order.status == OrderStatus.AWAITING_APPROVAL
        assert order.display_status == DisplayStatus.AWAITING_APPROVAL
        assert order.pr_status == PRStatus.PENDING_SITE_ADMIN_APPROVAL
        assert order.source_type == SourceType.PR_PO
        assert order.total == Decimal("1000.00")
        assert order.delivery.dispatch_preference == "STANDARD"
        assert not order.is_split_order
        [line] = order.items
        assert line.entitlement_key == "shirt"
        assert line.line_total == Decimal("1000")

    def test_child_converts_to_split(self, session):
        session.add(_make_order("ORD-1-1", parent_order_id="ORD-1", is_split_order=True))
        session.flush()

        split = session.execute(select(OrderModel)).scalar_one().to_split_dto()

        assert split.parent_order_id == "ORD-1"
        assert split.vendor_name == "Alpha Uniforms"
        assert split.item_count == 2

    def test_split_parent_flag(self):
        assert _make_order(is_split_order=True).is_split_parent
        assert not _make_order(is_split_order=True, parent_order_id="ORD-0").is_split_parent
        assert not _make_order().is_split_parent

    def test_display_status_not_storable(self, session):
        session.add(_make_order(status="Partially Dispatched"))
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_duplicate_order_id_rejected(self, session):
        session.add(_make_order())
        session.flush()
        session.add(_make_order())
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_item_quantity_must_be_positive(self, session):
        order = _make_order()
        order.items[0].quantity = 0
        session.add(order)
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestSessionScope:

    @pytest.fixture(autouse=True)
    def _module_engine(self):
        init_engine_from_url("sqlite://")
        create_tables()
        yield
        reset_engine()

    def test_commits_on_success(self):
        with session_scope() as session:
            session.add(_make_order())

        with session_scope() as session:
            assert session.execute(select(OrderModel.order_id)).scalars().all() == ["ORD-1"]

    def test_rolls_back_and_reraises(self):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(_make_order())
                session.flush()
                raise RuntimeError("boom")

        with session_scope() as session:
            assert session.execute(select(OrderModel)).first() is None

    def test_uninitialised_engine(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_session()
