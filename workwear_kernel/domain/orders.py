"""
Order domain types (``workwear_kernel.domain.orders``).

Responsibility
--------------
Pure value objects for the catalogue, the cart, placed orders (standalone,
split parents and their vendor children), the two status tracks and the
approval request/result shapes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``OrderStatus`` is the fulfilment track and is the only one stored on
  rows.  ``DisplayStatus`` adds the two "Partially ..." values which are
  only ever computed over a split order's children.
* ``PRStatus`` is a separate track; PR and order status never share
  values.
* Prices are ``Decimal``.  ``CartItem`` refuses negative quantities and
  prices at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from workwear_kernel.domain.values import ZERO, to_decimal

# =============================================================================
# Status tracks
# =============================================================================


class OrderStatus(str, Enum):
    """Fulfilment status stored on every order row."""

    AWAITING_APPROVAL = "Awaiting approval"
    AWAITING_FULFILMENT = "Awaiting fulfilment"
    AWAITING_DISPATCH = "Awaiting Dispatch"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"


class DisplayStatus(str, Enum):
    """Status shown for an order, including aggregates over split children."""

    AWAITING_APPROVAL = "Awaiting approval"
    AWAITING_FULFILMENT = "Awaiting fulfilment"
    AWAITING_DISPATCH = "Awaiting Dispatch"
    PARTIALLY_DISPATCHED = "Partially Dispatched"
    DISPATCHED = "Dispatched"
    PARTIALLY_DELIVERED = "Partially Delivered"
    DELIVERED = "Delivered"

    @classmethod
    def from_order_status(cls, status: OrderStatus) -> DisplayStatus:
        return cls(status.value)


class PRStatus(str, Enum):
    """Purchase-requisition track for PR/PO companies."""

    PENDING_SITE_ADMIN_APPROVAL = "PENDING_SITE_ADMIN_APPROVAL"
    SITE_ADMIN_APPROVED = "SITE_ADMIN_APPROVED"
    PENDING_COMPANY_ADMIN_APPROVAL = "PENDING_COMPANY_ADMIN_APPROVAL"
    COMPANY_ADMIN_APPROVED = "COMPANY_ADMIN_APPROVED"
    LINKED_TO_PO = "LINKED_TO_PO"
    REJECTED = "REJECTED"


class SourceType(str, Enum):
    """How the order entered the system."""

    PR_PO = "PR_PO"
    MANUAL = "MANUAL"


class ActorRole(str, Enum):
    """Roles asserted by callers of the approval operations."""

    EMPLOYEE = "EMPLOYEE"
    SITE_ADMIN = "SITE_ADMIN"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    VENDOR = "VENDOR"


@dataclass(frozen=True)
class Actor:
    """An authenticated caller, identified by email."""

    email: str
    role: ActorRole

    def __post_init__(self) -> None:
        if not self.email or not self.email.strip():
            raise ValueError("Actor email is required")


# =============================================================================
# Catalogue and cart
# =============================================================================


@dataclass(frozen=True)
class Product:
    """A catalogue product as resolved from the product collaborator."""

    product_id: str
    name: str
    category: str
    price: Decimal
    vendor_id: str
    vendor_name: str = ""
    sizes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.product_id:
            raise ValueError("product_id is required")
        object.__setattr__(self, "price", to_decimal(self.price))
        if self.price < ZERO:
            raise ValueError(f"Price cannot be negative: {self.price}")
        object.__setattr__(self, "sizes", tuple(self.sizes))

    def offers_size(self, size: str | None) -> bool:
        """True when the product is unsized or ``size`` is on its size list."""
        if not self.sizes:
            return True
        return size in self.sizes


@dataclass(frozen=True)
class CartLine:
    """What the employee put in the cart, before catalogue resolution."""

    product_id: str
    quantity: int
    size: str | None = None


@dataclass(frozen=True)
class CartItem:
    """A resolved cart line: product data snapshotted at order time."""

    product_id: str
    name: str
    category: str
    quantity: int
    unit_price: Decimal
    vendor_id: str
    vendor_name: str = ""
    size: str | None = None

    def __post_init__(self) -> None:
        if not self.product_id:
            raise ValueError("product_id is required")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValueError(f"Quantity must be an integer, got {self.quantity!r}")
        if self.quantity < 0:
            raise ValueError(f"Quantity cannot be negative: {self.quantity}")
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if self.unit_price < ZERO:
            raise ValueError(f"Price cannot be negative: {self.unit_price}")

    @classmethod
    def from_product(cls, product: Product, quantity: int, size: str | None = None) -> CartItem:
        return cls(
            product_id=product.product_id,
            name=product.name,
            category=product.category,
            quantity=quantity,
            unit_price=product.price,
            vendor_id=product.vendor_id,
            vendor_name=product.vendor_name,
            size=size,
        )

    @property
    def line_total(self) -> Decimal:
        """Exact (unrounded) price x quantity."""
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DroppedItem:
    """A cart line the composer could not place, with the reason and error code."""

    product_id: str
    reason: str
    code: str


@dataclass(frozen=True)
class DeliveryDetails:
    """Delivery data captured at placement."""

    delivery_address: str = ""
    dispatch_preference: str = "STANDARD"
    estimated_delivery_time: str | None = None


# =============================================================================
# Placed orders
# =============================================================================


@dataclass(frozen=True)
class OrderLine:
    """A persisted order line."""

    product_id: str
    name: str
    category: str
    size: str | None
    quantity: int
    unit_price: Decimal
    vendor_id: str
    vendor_name: str
    entitlement_key: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderSplit:
    """A vendor child of a split order."""

    order_id: str
    parent_order_id: str
    vendor_id: str
    vendor_name: str
    status: OrderStatus
    pr_status: PRStatus | None
    items: tuple[OrderLine, ...]
    item_count: int
    total: Decimal
    pr_number: str | None = None
    po_number: str | None = None


@dataclass(frozen=True)
class Order:
    """
    A placed order as seen by callers.

    For a split order this is the parent: ``splits`` carries the vendor
    children and ``display_status`` their aggregate.  Standalone orders
    have no splits and a ``display_status`` equal to ``status``.
    """

    order_id: str
    employee_id: str
    company_id: str
    status: OrderStatus
    display_status: DisplayStatus
    pr_status: PRStatus | None
    source_type: SourceType
    items: tuple[OrderLine, ...]
    item_count: int
    total: Decimal
    is_split_order: bool = False
    parent_order_id: str | None = None
    vendor_id: str | None = None
    vendor_name: str | None = None
    splits: tuple[OrderSplit, ...] = ()
    is_personal_payment: bool = False
    personal_payment_amount: Decimal = ZERO
    delivery: DeliveryDetails = field(default_factory=DeliveryDetails)
    order_date: datetime | None = None
    pr_number: str | None = None
    pr_date: date | None = None
    po_number: str | None = None
    site_admin_approved_by: str | None = None
    site_admin_approved_at: datetime | None = None
    company_admin_approved_by: str | None = None
    company_admin_approved_at: datetime | None = None
    location_auto_approved: bool = False
    rejection_reason: str | None = None
    rejected_by: str | None = None

    @property
    def is_child(self) -> bool:
        return self.parent_order_id is not None


@dataclass(frozen=True)
class PurchaseOrder:
    """A PO issued to one vendor, covering one or more approved PRs."""

    po_number: str
    po_date: date
    company_id: str
    vendor_id: str
    vendor_name: str
    order_ids: tuple[str, ...]
    pr_numbers: tuple[str, ...]
    created_by: str


# =============================================================================
# Approval requests and results
# =============================================================================


@dataclass(frozen=True)
class PRData:
    """PR number and date supplied by the approving Site Admin."""

    pr_number: str | None
    pr_date: date | None

    def __post_init__(self) -> None:
        # blank values are allowed here; approval reports them as missing
        if self.pr_number is not None and not isinstance(self.pr_number, str):
            raise TypeError(f"PR number must be a string, got {self.pr_number!r}")
        if self.pr_date is not None and not isinstance(self.pr_date, date):
            raise TypeError(f"PR date must be a date, got {self.pr_date!r}")


@dataclass(frozen=True)
class BulkFailure:
    """One failed id in a bulk approval."""

    order_id: str
    error: str
    code: str


@dataclass(frozen=True)
class BulkApprovalResult:
    """Outcome of a bulk approval: per-id success or failure."""

    success: tuple[str, ...]
    failed: tuple[BulkFailure, ...]
    cancelled: bool = False

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(f.order_id for f in self.failed)

    def failure_for(self, order_id: str) -> BulkFailure | None:
        for failure in self.failed:
            if failure.order_id == order_id:
                return failure
        return None


