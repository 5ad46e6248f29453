"""
Cart Synchronization

Resolves the line items for a checkout: either the buyer's persisted cart
with fresh prices, or a one-off buy-now item.
"""

import logging
from typing import Optional

from ..models.cart import BuyNowOverride, Cart, CartLine, VariantRef, to_decimal

logger = logging.getLogger(__name__)


def _variant_from_line(raw: dict) -> Optional[VariantRef]:
    variant = raw.get("variant")
    if not variant:
        return None
    return VariantRef(
        sku=variant.get("sku") or "",
        unit_price=variant.get("price"),
        color_key=variant.get("color"),
        size_key=variant.get("size"),
    )


def _match_variant(product: dict, selected: VariantRef) -> Optional[dict]:
    """Find the product's current variant for a cart selection"""
    variants = product.get("variants") or []
    if selected.sku:
        match = next((v for v in variants if v.get("sku") == selected.sku), None)
        if match:
            return match
    return next(
        (
            v for v in variants
            if v.get("color") == selected.color_key and v.get("size") == selected.size_key
        ),
        None,
    )


def _resolve_line(raw: dict, product: dict) -> CartLine:
    """Price a persisted line from current product data"""
    variant = _variant_from_line(raw)
    unit_price = product.get("price")

    if variant is not None:
        current = _match_variant(product, variant)
        if current is not None and current.get("price") is not None:
            unit_price = current["price"]
            variant = VariantRef(
                sku=current.get("sku") or variant.sku,
                unit_price=unit_price,
                color_key=current.get("color", variant.color_key),
                size_key=current.get("size", variant.size_key),
            )

    return CartLine(
        product_id=str(raw["product_id"]),
        quantity=int(raw["quantity"]),
        unit_price=to_decimal(unit_price),
        variant=variant,
        name=product.get("name"),
    )


def _unpriced_line(raw: dict) -> CartLine:
    return CartLine(
        product_id=str(raw["product_id"]),
        quantity=int(raw["quantity"]),
        unit_price=0,
        variant=_variant_from_line(raw),
    )


class CartSynchronizer:
    """
    Produces the canonical cart for a checkout.

    Keeps a local mirror of the last remote cart it resolved. The buy-now
    path neither reads nor writes the remote cart or the mirror.
    """

    def __init__(self, backend):
        """
        Args:
            backend: object with async get_cart(buyer_id) and get_product(product_id)
        """
        self.backend = backend
        self.mirror: Cart = Cart.empty()

    async def resolve(
        self,
        buyer_id: str,
        buy_now: Optional[BuyNowOverride] = None,
    ) -> Cart:
        """Resolve the cart for one checkout attempt"""
        if buy_now is not None:
            cart = buy_now.to_cart()
            logger.info(f"Buy-now checkout for product {buy_now.product_id}: total {cart.total}")
            return cart

        try:
            raw_lines = await self.backend.get_cart(buyer_id)
            loaded = [await self._load_line(raw) for raw in raw_lines]
        except Exception as e:
            # Never show lines that could not be priced from the backend
            logger.error(f"Failed to load cart for buyer {buyer_id}: {e}")
            self.mirror = Cart.empty()
            return self.mirror

        lines = [line for line in loaded if line is not None]
        self.mirror = Cart(lines=tuple(lines))
        logger.info(f"Cart loaded for buyer {buyer_id}: {len(lines)} lines, total {self.mirror.total}")
        return self.mirror

    def reset_mirror(self) -> None:
        """Forget the mirrored cart after it has been cleared remotely"""
        self.mirror = Cart.empty()

    async def _load_line(self, raw: dict) -> Optional[CartLine]:
        product_id = str(raw["product_id"])
        quantity = int(raw.get("quantity") or 0)
        if quantity <= 0:
            logger.warning(f"Skipping cart line for product {product_id} with quantity {quantity}")
            return None

        try:
            product = await self.backend.get_product(product_id)
        except Exception as e:
            # Line stays in the cart at zero price
            logger.error(f"Failed to fetch product {product_id}: {e}")
            return _unpriced_line(raw)
        return _resolve_line(raw, product or {})
