"""SQLAlchemy ORM models for the workwear kernel."""

from workwear_kernel.models.entitlement import (
    ConsumedEntitlementModel,
    EmployeeEntitlementModel,
)
from workwear_kernel.models.order import OrderItemModel, OrderModel
from workwear_kernel.models.purchase_order import (
    PurchaseOrderLinkModel,
    PurchaseOrderModel,
)

__all__ = [
    "ConsumedEntitlementModel",
    "EmployeeEntitlementModel",
    "OrderItemModel",
    "OrderModel",
    "PurchaseOrderLinkModel",
    "PurchaseOrderModel",
]
