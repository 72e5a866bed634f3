"""
Evolv Orders Engine — Catalog Lookup
====================================
Read-only product price and stock lookups at order creation.
Stock decrement belongs to the catalog owner, not to the order engine.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional, Protocol, Tuple

from core.commands.rejection import ReasonCode, RejectionReason
from core.primitives.money import to_decimal
from engines.pricing import CartLineItem


@dataclass(frozen=True)
class CatalogProduct:
    product_id: str
    name: str
    price: Decimal
    # (size, color) → units on hand. An empty color matches size-only stock.
    stock: Dict[Tuple[str, str], int] = field(default_factory=dict)
    active: bool = True

    def __post_init__(self):
        object.__setattr__(self, "price", to_decimal(self.price))

    def stock_for(self, size: str, color: str) -> int:
        if (size, color) in self.stock:
            return self.stock[(size, color)]
        return self.stock.get((size, ""), 0)


class Catalog(Protocol):
    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        ...  # pragma: no cover


class InMemoryCatalog:

    def __init__(self, products: Iterable[CatalogProduct] = ()):
        self._lock = threading.Lock()
        self._products: Dict[str, CatalogProduct] = {p.product_id: p for p in products}

    def upsert(self, product: CatalogProduct) -> None:
        with self._lock:
            self._products[product.product_id] = product

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        with self._lock:
            return self._products.get(product_id)


def check_line_item(item: CartLineItem, product: Optional[CatalogProduct]) -> Optional[RejectionReason]:
    """Product exists, is in stock, and the submitted price is current."""
    if product is None or not product.active:
        return RejectionReason(
            code=ReasonCode.PRODUCT_NOT_FOUND,
            message=f"Product {item.product_id} is no longer available.",
            policy_name="check_line_item",
        )
    if product.stock_for(item.size, item.color) < item.quantity:
        return RejectionReason(
            code=ReasonCode.OUT_OF_STOCK,
            message=f"{product.name} ({item.size}, {item.color}) is out of stock.",
            policy_name="check_line_item",
        )
    if product.price != item.unit_price:
        return RejectionReason(
            code=ReasonCode.PRICE_CHANGED,
            message=f"The price of {product.name} has changed to ₹{product.price}.",
            policy_name="check_line_item",
        )
    return None
