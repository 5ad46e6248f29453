# Core modules

from .config import settings
from .session import CheckoutSession, CheckoutSessionManager

__all__ = ["settings", "CheckoutSession", "CheckoutSessionManager"]
