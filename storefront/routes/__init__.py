# Checkout Service Routes

from .checkout import router as checkout_router
from .gateway import router as gateway_router

__all__ = ["checkout_router", "gateway_router"]
