"""Checkout and payment models"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from .cart import Cart, CartLine, CartSource, ZERO


class PaymentMethod(str, Enum):
    COD = "cod"
    ONLINE = "online"


# fieldName -> is the current value acceptable
ValidityMap = dict[str, bool]


@dataclass(frozen=True)
class Address:
    """Shipping address as entered by the shopper"""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def with_changes(self, **changes: str) -> "Address":
        """Return a copy with some fields replaced"""
        unknown = set(changes) - set(self.field_names())
        if unknown:
            raise ValueError(f"Unknown address fields: {sorted(unknown)}")
        return replace(self, **changes)

    def to_payload(self) -> dict[str, str]:
        return {
            "street": self.street.strip(),
            "city": self.city.strip(),
            "state": self.state.strip(),
            "zipCode": self.zip_code.strip(),
            "country": self.country.strip(),
        }


@dataclass(frozen=True)
class BuyerContext:
    """Who is checking out, passed in explicitly rather than read from storage"""
    buyer_id: str
    email: str = ""
    phone: str = ""
    display_name: str = ""
    access_token: Optional[str] = None


@dataclass(frozen=True)
class PendingOrderRequest:
    """
    Order details captured when the payment method is chosen.

    Held unchanged until the checkout attempt resolves, so the order
    created after payment matches what was priced.
    """
    buyer: BuyerContext
    lines: tuple[CartLine, ...]
    address: Address
    payment_method: PaymentMethod
    total: Decimal
    source: CartSource = CartSource.REMOTE

    @property
    def clears_cart(self) -> bool:
        """Only orders placed from the persisted cart empty it afterwards"""
        return self.source == CartSource.REMOTE

    @classmethod
    def capture(
        cls,
        buyer: BuyerContext,
        cart: Cart,
        address: Address,
        payment_method: PaymentMethod,
    ) -> "PendingOrderRequest":
        return cls(
            buyer=buyer,
            lines=cart.lines,
            address=address,
            payment_method=payment_method,
            total=cart.total,
            source=cart.source,
        )


@dataclass(frozen=True)
class PricingSnapshot:
    """Locked totals sent with the payment session request"""
    subtotal: Decimal
    total: Decimal
    currency: str
    discount_total: Decimal = ZERO
    taxes: Decimal = ZERO
    shipping: Decimal = ZERO
    applied_discounts: tuple = ()

    @classmethod
    def from_request(cls, request: PendingOrderRequest, currency: str) -> "PricingSnapshot":
        return cls(subtotal=request.total, total=request.total, currency=currency)

    def to_payload(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount_total": self.discount_total,
            "taxes": self.taxes,
            "shipping": self.shipping,
            "total": self.total,
            "currency": self.currency,
            "applied_discounts": list(self.applied_discounts),
        }


@dataclass(frozen=True)
class PaymentSession:
    """Backend-created payment session handed to the gateway"""
    session_id: str
    gateway_order_ref: str
    amount: Decimal
    currency: str
    gateway_public_key: Optional[str] = None
    status: str = "created"


@dataclass(frozen=True)
class Order:
    """Order confirmed by the backend"""
    order_id: str
    status: str = "created"
    payment_ref: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationMarker:
    """A verified payment that has no order yet"""
    payment_session_id: str
    gateway_payment_id: str
    attempted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    buyer_id: Optional[str] = None
    reason: Optional[str] = None
