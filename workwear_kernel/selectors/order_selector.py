"""
Module: workwear_kernel.selectors.order_selector
Responsibility: Read-side views of orders: a single order with its split
    children and aggregate status, approval queues, an employee's orders,
    and purchase orders by number.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - A split parent's display status is always computed from its children
      at read time (``aggregate_status``); it is never read from a column.
"""

from __future__ import annotations

from sqlalchemy import func, select

from workwear_engines.approval import aggregate_status
from workwear_kernel.domain.orders import (
    Order,
    OrderStatus,
    PRStatus,
    PurchaseOrder,
)
from workwear_kernel.exceptions import OrderNotFoundError
from workwear_kernel.logging_config import get_logger
from workwear_kernel.models.order import OrderModel
from workwear_kernel.models.purchase_order import PurchaseOrderModel
from workwear_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.orders")


class OrderSelector(BaseSelector):
    """Read-only order queries returning frozen ``Order`` DTOs."""

    def find_model(self, order_id: str) -> OrderModel | None:
        return self.session.execute(
            select(OrderModel).where(OrderModel.order_id == order_id)
        ).scalar_one_or_none()

    def children_of(self, parent_order_id: str) -> list[OrderModel]:
        """Split children of a parent, in vendor order."""
        return list(
            self.session.execute(
                select(OrderModel)
                .where(OrderModel.parent_order_id == parent_order_id)
                .order_by(func.length(OrderModel.order_id), OrderModel.order_id)
            ).scalars()
        )

    def to_view(self, model: OrderModel) -> Order:
        """DTO for a row; split parents carry children and aggregate status."""
        if not model.is_split_parent:
            return model.to_dto()
        children = self.children_of(model.order_id)
        if not children:
            return model.to_dto()
        display = aggregate_status(OrderStatus(c.status) for c in children)
        return model.to_dto(children, display_status=display)

    def get(self, order_id: str) -> Order:
        """
        The order view for ``order_id``.

        Raises:
            OrderNotFoundError: If no order has that id.
        """
        model = self.find_model(order_id)
        if model is None:
            raise OrderNotFoundError(order_id)
        return self.to_view(model)

    def pending_site_admin_approval(self, company_id: str) -> list[Order]:
        """Top-level orders (standalone or split parents) awaiting a PR."""
        rows = self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.company_id == company_id,
                OrderModel.parent_order_id.is_(None),
                OrderModel.status == OrderStatus.AWAITING_APPROVAL.value,
                OrderModel.pr_status == PRStatus.PENDING_SITE_ADMIN_APPROVAL.value,
            )
            .order_by(OrderModel.order_date, OrderModel.order_id)
        ).scalars()
        return [self.to_view(row) for row in rows]

    def for_employee(self, employee_id: str) -> list[Order]:
        """An employee's top-level orders, oldest first."""
        rows = self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.employee_id == employee_id,
                OrderModel.parent_order_id.is_(None),
            )
            .order_by(OrderModel.order_date, OrderModel.order_id)
        ).scalars()
        return [self.to_view(row) for row in rows]

    def purchase_orders(self, company_id: str, po_number: str) -> list[PurchaseOrder]:
        """Every vendor PO raised under ``po_number``."""
        rows = self.session.execute(
            select(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.company_id == company_id,
                PurchaseOrderModel.po_number == po_number,
            )
            .order_by(PurchaseOrderModel.vendor_id)
        ).scalars()
        return [row.to_dto() for row in rows]
