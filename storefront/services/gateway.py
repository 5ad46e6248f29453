"""Payment gateway collaborator.

The gateway widget itself runs outside this service. The orchestrator only
hands it a session reference and three callbacks, and learns the outcome
when one of them is invoked.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayHandoff:
    """Everything the gateway widget needs to collect one payment"""
    session_ref: str
    amount: Decimal
    currency: str
    public_key: Optional[str]
    on_complete: Callable[[str, str], Awaitable[object]]
    on_dismiss: Callable[[], Awaitable[object]]
    on_error: Callable[[str], Awaitable[object]]


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def open(self, handoff: GatewayHandoff) -> None:
        """
        Present the gateway for a payment session.

        Raises if the gateway cannot be loaded. Afterwards exactly one of
        the handoff callbacks is expected to fire.
        """
        ...

    def discard(self, session_ref: str) -> None:
        """Forget a payment that will never be reported back"""


class HostedCheckoutGateway(PaymentGateway):
    """
    Gateway whose widget runs in the shopper's browser.

    open() parks the handoff until the browser reports back through the
    gateway callback routes, which take() it and fire the matching callback.
    """

    def __init__(self):
        self._handoffs: dict[str, GatewayHandoff] = {}

    async def open(self, handoff: GatewayHandoff) -> None:
        self._handoffs[handoff.session_ref] = handoff
        logger.info(f"Gateway handoff ready for {handoff.session_ref}: {handoff.amount} {handoff.currency}")

    def take(self, session_ref: str) -> Optional[GatewayHandoff]:
        """Remove and return a parked handoff. Each handoff fires at most once."""
        return self._handoffs.pop(session_ref, None)

    def discard(self, session_ref: str) -> None:
        self._handoffs.pop(session_ref, None)
