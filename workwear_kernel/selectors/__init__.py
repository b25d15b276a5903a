"""Read-only query selectors."""

from workwear_kernel.selectors.base import BaseSelector
from workwear_kernel.selectors.order_selector import OrderSelector

__all__ = [
    "BaseSelector",
    "OrderSelector",
]
