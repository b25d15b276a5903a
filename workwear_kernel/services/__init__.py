"""Services for the workwear kernel (write side)."""

from workwear_kernel.services.approval_service import OrderApprovalService
from workwear_kernel.services.catalog import InMemoryProductCatalog, ProductCatalog
from workwear_kernel.services.consumption_service import ConsumptionLedgerService
from workwear_kernel.services.order_service import (
    ComposedOrder,
    OrderPlacementService,
    new_order_id,
)

__all__ = [
    "ComposedOrder",
    "ConsumptionLedgerService",
    "InMemoryProductCatalog",
    "OrderApprovalService",
    "OrderPlacementService",
    "ProductCatalog",
    "new_order_id",
]
