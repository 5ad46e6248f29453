# Checkout Models

from .cart import BuyNowOverride, Cart, CartLine, CartSource, VariantRef
from .checkout import (
    Address,
    BuyerContext,
    Order,
    PaymentMethod,
    PaymentSession,
    PendingOrderRequest,
    PricingSnapshot,
    ReconciliationMarker,
    ValidityMap,
)

__all__ = [
    "BuyNowOverride",
    "Cart",
    "CartLine",
    "CartSource",
    "VariantRef",
    "Address",
    "BuyerContext",
    "Order",
    "PaymentMethod",
    "PaymentSession",
    "PendingOrderRequest",
    "PricingSnapshot",
    "ReconciliationMarker",
    "ValidityMap",
]
