"""Cart models"""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional


ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Coerce a price from the wire (int, float, str) into a Decimal"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class CartSource(str, Enum):
    """Where a checkout's line items came from"""
    REMOTE = "remote"
    BUY_NOW = "buy_now"


@dataclass(frozen=True)
class VariantRef:
    """Selected product variant"""
    sku: str
    unit_price: Decimal
    color_key: Optional[str] = None
    size_key: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))


@dataclass(frozen=True)
class CartLine:
    """Line item in a cart"""
    product_id: str
    quantity: int
    unit_price: Decimal
    variant: Optional[VariantRef] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity}")
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return (self.product_id, self.variant.sku if self.variant else None)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Cart:
    """
    Canonical line-item set for one checkout.

    The total is always derived from the lines. Mutations return a new
    Cart so a resolved cart can be handed to the orchestrator without
    anyone changing it underneath.
    """
    lines: tuple[CartLine, ...] = ()
    source: CartSource = CartSource.REMOTE

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines))

    @classmethod
    def empty(cls, source: CartSource = CartSource.REMOTE) -> "Cart":
        return cls(lines=(), source=source)

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def is_buy_now(self) -> bool:
        return self.source == CartSource.BUY_NOW

    def add_line(self, line: CartLine) -> "Cart":
        """Add a line, merging quantity with an existing line for the same product/variant"""
        existing = next((item for item in self.lines if item.key == line.key), None)
        if existing is None:
            return replace(self, lines=self.lines + (line,))

        merged = replace(existing, quantity=existing.quantity + line.quantity)
        return replace(
            self,
            lines=tuple(merged if item is existing else item for item in self.lines),
        )

    def update_quantity(
        self,
        product_id: str,
        quantity: int,
        sku: Optional[str] = None,
    ) -> "Cart":
        """Set a line's quantity; zero or less removes the line"""
        if quantity <= 0:
            return self.remove_line(product_id, sku)

        key = (product_id, sku)
        return replace(
            self,
            lines=tuple(
                replace(item, quantity=quantity) if item.key == key else item
                for item in self.lines
            ),
        )

    def remove_line(self, product_id: str, sku: Optional[str] = None) -> "Cart":
        """Remove a line"""
        key = (product_id, sku)
        return replace(self, lines=tuple(item for item in self.lines if item.key != key))

    def clear(self) -> "Cart":
        """Remove all lines"""
        return replace(self, lines=())


@dataclass(frozen=True)
class BuyNowOverride:
    """
    Single-item "buy now" request.

    Replaces the persisted cart for one checkout attempt and is never
    written back to it.
    """
    product_id: str
    unit_price: Decimal
    quantity: int = 1
    name: Optional[str] = None
    variant: Optional[VariantRef] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))

    def to_cart(self) -> Cart:
        unit_price = self.variant.unit_price if self.variant else self.unit_price
        line = CartLine(
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=unit_price,
            variant=self.variant,
            name=self.name,
        )
        return Cart(lines=(line,), source=CartSource.BUY_NOW)
