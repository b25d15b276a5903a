"""
Module: workwear_kernel.services.catalog
Responsibility: The product/vendor catalogue contract consumed by order
    composition, plus an in-memory implementation used by tests and local
    runs.

Architecture position: Kernel > Services.  The real catalogue lives in an
    external collaborator; only its contract is owned here.

Failure modes:
    - ``resolve`` returns None for an unknown product.  Implementations
      backed by a remote service may raise; callers wrap that into
      CatalogUnavailableError.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from workwear_kernel.domain.orders import Product


class ProductCatalog(Protocol):
    """Resolves a product id to its category, price and vendor."""

    def resolve(self, product_id: str) -> Product | None:
        ...


class InMemoryProductCatalog:
    """Dictionary-backed ``ProductCatalog``."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products: dict[str, Product] = {}
        for product in products:
            self.add(product)

    def add(self, product: Product) -> None:
        self._products[product.product_id] = product

    def resolve(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    def __len__(self) -> int:
        return len(self._products)
