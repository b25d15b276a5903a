"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from workwear_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workwear_kernel.domain.entitlement import (
    LEGACY_CATEGORIES,
    ConsumedEntitlement,
    EmployeeEntitlement,
    EntitlementBalance,
    normalize_category,
)
from workwear_kernel.domain.orders import (
    Actor,
    ActorRole,
    BulkApprovalResult,
    BulkFailure,
    CartItem,
    CartLine,
    DeliveryDetails,
    DisplayStatus,
    DroppedItem,
    Order,
    OrderLine,
    OrderSplit,
    OrderStatus,
    PRData,
    PRStatus,
    Product,
    PurchaseOrder,
    SourceType,
)
from workwear_kernel.domain.policy import CompanyPolicy, PolicySource
from workwear_kernel.domain.values import ZERO, round_money, to_decimal

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Entitlement
    "LEGACY_CATEGORIES",
    "ConsumedEntitlement",
    "EmployeeEntitlement",
    "EntitlementBalance",
    "normalize_category",
    # Orders
    "Actor",
    "ActorRole",
    "BulkApprovalResult",
    "BulkFailure",
    "CartItem",
    "CartLine",
    "DeliveryDetails",
    "DisplayStatus",
    "DroppedItem",
    "Order",
    "OrderLine",
    "OrderSplit",
    "OrderStatus",
    "PRData",
    "PRStatus",
    "Product",
    "PurchaseOrder",
    "SourceType",
    # Policy
    "CompanyPolicy",
    "PolicySource",
    # Values
    "ZERO",
    "round_money",
    "to_decimal",
]
