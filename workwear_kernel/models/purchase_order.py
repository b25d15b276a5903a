"""
Module: workwear_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders raised by Company
    Admins and the orders (PRs) each one covers.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(company_id, po_number, vendor_id): a PO number identifies one
      vendor-facing document per vendor within a company.
    - UNIQUE(purchase_order_pk, order_id): an order is linked to a PO once.

Failure modes:
    - IntegrityError on a duplicate PO row or link.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workwear_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from workwear_kernel.domain.orders import PurchaseOrder


class PurchaseOrderModel(TrackedBase):
    """A PO issued to one vendor."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint(
            "company_id", "po_number", "vendor_id",
            name="uq_purchase_order_company_number_vendor",
        ),
        Index("idx_purchase_order_company_number", "company_id", "po_number"),
    )

    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    po_number: Mapped[str] = mapped_column(String(100), nullable=False)
    po_date: Mapped[date] = mapped_column(Date, nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    links: Mapped[list[PurchaseOrderLinkModel]] = relationship(
        "PurchaseOrderLinkModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} vendor={self.vendor_id}>"

    def to_dto(self) -> PurchaseOrder:
        from workwear_kernel.domain.orders import PurchaseOrder

        pr_numbers = sorted({link.pr_number for link in self.links if link.pr_number})
        return PurchaseOrder(
            po_number=self.po_number,
            po_date=self.po_date,
            company_id=self.company_id,
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            order_ids=tuple(link.order_id for link in self.links),
            pr_numbers=tuple(pr_numbers),
            created_by=self.created_by,
        )


class PurchaseOrderLinkModel(TrackedBase):
    """Links one order (and its PR) to a purchase order."""

    __tablename__ = "purchase_order_links"

    __table_args__ = (
        UniqueConstraint("purchase_order_pk", "order_id", name="uq_purchase_order_link"),
        Index("idx_purchase_order_link_order", "order_id"),
    )

    purchase_order_pk: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pr_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    purchase_order: Mapped[PurchaseOrderModel] = relationship(
        "PurchaseOrderModel", back_populates="links",
    )
