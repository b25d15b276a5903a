"""
Module: workwear_kernel.models.order
Responsibility: ORM persistence for orders (standalone, split parents and
    their vendor children) and their line items.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``order_id`` is the business identifier and is unique.
    - ``status`` holds a stored fulfilment status only; the DB check
      constraint rejects the "Partially ..." display values.
    - Split children reference their parent through ``parent_order_id``;
      a row is a split parent iff ``is_split_order`` is true and
      ``parent_order_id`` is null.
    - Line items snapshot product data (name, category, price, vendor) at
      order time and record the ledger key their quantity was consumed
      under, so a rejection can release exactly what placement consumed.

Failure modes:
    - IntegrityError on a duplicate ``order_id``.
    - IntegrityError on an invalid status value.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workwear_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from workwear_kernel.domain.orders import Order, OrderLine, OrderSplit

_STORED_STATUSES = (
    "'Awaiting approval', 'Awaiting fulfilment', 'Awaiting Dispatch', "
    "'Dispatched', 'Delivered'"
)


class OrderModel(TrackedBase):
    """A placed order row.

    One row per standalone order, one per split parent, and one per
    vendor child of a split parent.
    """

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STORED_STATUSES})",
            name="chk_order_status_valid",
        ),
        Index("idx_order_parent", "parent_order_id"),
        Index("idx_order_employee", "employee_id"),
        Index("idx_order_company_status", "company_id", "status"),
        Index("idx_order_company_pr", "company_id", "pr_number"),
    )

    order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    parent_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_split_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    pr_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False, default="MANUAL")
    location_auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    is_personal_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    personal_payment_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    delivery_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dispatch_preference: Mapped[str] = mapped_column(String(50), nullable=False, default="STANDARD")
    estimated_delivery_time: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_date: Mapped[datetime] = mapped_column(nullable=False)

    pr_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pr_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    po_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    site_admin_approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    site_admin_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    company_admin_approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_admin_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)

    dispatched_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[OrderItemModel]] = relationship(
        "OrderItemModel",
        back_populates="order",
        order_by="OrderItemModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_id} status={self.status} pr={self.pr_status}>"

    @property
    def is_split_parent(self) -> bool:
        return self.is_split_order and self.parent_order_id is None

    def to_split_dto(self) -> OrderSplit:
        """Convert a child row to a frozen ``OrderSplit``."""
        from workwear_kernel.domain.orders import OrderSplit, OrderStatus, PRStatus

        return OrderSplit(
            order_id=self.order_id,
            parent_order_id=self.parent_order_id or "",
            vendor_id=self.vendor_id or "",
            vendor_name=self.vendor_name or "",
            status=OrderStatus(self.status),
            pr_status=PRStatus(self.pr_status) if self.pr_status else None,
            items=tuple(item.to_dto() for item in self.items),
            item_count=self.item_count,
            total=self.total,
            pr_number=self.pr_number,
            po_number=self.po_number,
        )

    def to_dto(self, children: list[OrderModel] | None = None, display_status=None) -> Order:
        """Convert to a frozen ``Order``.

        ``children`` are the split rows of a parent; ``display_status``
        defaults to the stored status.
        """
        from workwear_kernel.domain.orders import (
            DeliveryDetails,
            DisplayStatus,
            Order,
            OrderStatus,
            PRStatus,
            SourceType,
        )

        status = OrderStatus(self.status)
        return Order(
            order_id=self.order_id,
            employee_id=self.employee_id,
            company_id=self.company_id,
            status=status,
            display_status=display_status or DisplayStatus.from_order_status(status),
            pr_status=PRStatus(self.pr_status) if self.pr_status else None,
            source_type=SourceType(self.source_type),
            items=tuple(item.to_dto() for item in self.items),
            item_count=self.item_count,
            total=self.total,
            is_split_order=self.is_split_order,
            parent_order_id=self.parent_order_id,
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            splits=tuple(child.to_split_dto() for child in children or ()),
            is_personal_payment=self.is_personal_payment,
            personal_payment_amount=self.personal_payment_amount,
            delivery=DeliveryDetails(
                delivery_address=self.delivery_address,
                dispatch_preference=self.dispatch_preference,
                estimated_delivery_time=self.estimated_delivery_time,
            ),
            order_date=self.order_date,
            pr_number=self.pr_number,
            pr_date=self.pr_date,
            po_number=self.po_number,
            site_admin_approved_by=self.site_admin_approved_by,
            site_admin_approved_at=self.site_admin_approved_at,
            company_admin_approved_by=self.company_admin_approved_by,
            company_admin_approved_at=self.company_admin_approved_at,
            location_auto_approved=self.location_auto_approved,
            rejection_reason=self.rejection_reason,
            rejected_by=self.rejected_by,
        )


class OrderItemModel(TrackedBase):
    """One line of an order."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        Index("idx_order_item_order", "order_pk"),
    )

    order_pk: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    entitlement_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    order: Mapped[OrderModel] = relationship("OrderModel", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.product_id} x{self.quantity}>"

    def to_dto(self) -> OrderLine:
        from workwear_kernel.domain.orders import OrderLine

        return OrderLine(
            product_id=self.product_id,
            name=self.product_name,
            category=self.category,
            size=self.size,
            quantity=self.quantity,
            unit_price=self.unit_price,
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            entitlement_key=self.entitlement_key,
        )
