"""
Evolv Pricing Engine — Cart
===========================
The cart is an explicit value owned by the customer session and
passed into pricing. Nothing reads it from ambient state.

Unit prices are tax-inclusive, exactly as displayed to the customer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional, Tuple

from core.primitives.money import ZERO, to_decimal


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    size: str
    color: str
    unit_price: Decimal
    quantity: int
    name: str = ""

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id must be non-empty.")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool) or self.quantity < 1:
            raise ValueError("quantity must be an integer >= 1.")
        price = to_decimal(self.unit_price)
        if price < ZERO:
            raise ValueError("unit_price cannot be negative.")
        object.__setattr__(self, "unit_price", price)
        object.__setattr__(self, "size", (self.size or "").strip())
        object.__setattr__(self, "color", (self.color or "").strip())

    @property
    def line_key(self) -> Tuple[str, str, str]:
        return (self.product_id, self.size, self.color)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "unit_price": format(self.unit_price, "f"),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLineItem":
        return cls(
            product_id=str(data["product_id"]),
            size=str(data.get("size", "")),
            color=str(data.get("color", "")),
            unit_price=to_decimal(str(data["unit_price"])),
            quantity=int(data.get("quantity", 1)),
            name=str(data.get("name", "")),
        )


@dataclass(frozen=True)
class Cart:
    """Immutable cart snapshot. Mutators return a new Cart."""

    customer_id: str
    items: Tuple[CartLineItem, ...] = field(default_factory=tuple)

    def add(self, item: CartLineItem) -> "Cart":
        merged = []
        found = False
        for existing in self.items:
            if existing.line_key == item.line_key:
                merged.append(replace(existing, quantity=existing.quantity + item.quantity))
                found = True
            else:
                merged.append(existing)
        if not found:
            merged.append(item)
        return replace(self, items=tuple(merged))

    def update_quantity(self, product_id: str, size: str, color: str, quantity: int) -> "Cart":
        key = (product_id, size.strip(), color.strip())
        if quantity <= 0:
            return self.remove(product_id, size, color)
        return replace(self, items=tuple(
            replace(i, quantity=quantity) if i.line_key == key else i
            for i in self.items
        ))

    def remove(self, product_id: str, size: str, color: str) -> "Cart":
        key = (product_id, size.strip(), color.strip())
        return replace(self, items=tuple(i for i in self.items if i.line_key != key))

    def clear(self) -> "Cart":
        return replace(self, items=())

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> Decimal:
        """Tax-inclusive subtotal, unrounded."""
        return sum((i.line_total for i in self.items), ZERO)

    def find(self, product_id: str, size: str, color: str) -> Optional[CartLineItem]:
        key = (product_id, size.strip(), color.strip())
        for item in self.items:
            if item.line_key == key:
                return item
        return None
