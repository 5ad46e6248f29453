"""Session management for checkout attempts"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..models.cart import Cart
from ..models.checkout import Address, BuyerContext
from ..services.address_validator import DebouncedAddressValidator
from ..services.cart_sync import CartSynchronizer
from ..services.payment_orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckoutSession:
    """One checkout attempt: its cart, the address being typed, and the state machine"""
    session_id: str
    created_at: datetime
    updated_at: datetime
    buyer: BuyerContext
    cart: Cart
    orchestrator: PaymentOrchestrator
    validator: DebouncedAddressValidator
    synchronizer: Optional[CartSynchronizer] = None
    backend: Any = None
    address: Address = field(default_factory=Address)

    def touch(self) -> None:
        self.updated_at = _now()

    def update_address(self, **changes: str) -> Address:
        """Apply field edits and re-validate once typing settles"""
        self.address = self.address.with_changes(**changes)
        self.validator.schedule(self.address)
        self.touch()
        return self.address

    async def close(self) -> None:
        """Tear down: stop pending validation, drop a parked gateway handoff, let cart cleanup finish, release the client"""
        self.validator.cancel()
        self.orchestrator.release_gateway()
        await self.orchestrator.cleanup.drain()
        if self.backend is not None and hasattr(self.backend, "close"):
            await self.backend.close()


class CheckoutSessionManager:
    """Manages checkout sessions"""

    def __init__(self):
        self.sessions: dict[str, CheckoutSession] = {}

    def create_session(
        self,
        buyer: BuyerContext,
        cart: Cart,
        orchestrator: PaymentOrchestrator,
        synchronizer: Optional[CartSynchronizer] = None,
        backend: Any = None,
        debounce_seconds: float = 0.3,
    ) -> CheckoutSession:
        """Create a new session"""
        now = _now()
        session = CheckoutSession(
            session_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            buyer=buyer,
            cart=cart,
            orchestrator=orchestrator,
            validator=DebouncedAddressValidator(delay=debounce_seconds),
            synchronizer=synchronizer,
            backend=backend,
        )
        self.sessions[session.session_id] = session
        logger.info(f"Checkout session {session.session_id} started for buyer {buyer.buyer_id}")
        return session

    def get_session(self, session_id: str) -> Optional[CheckoutSession]:
        """Get session by ID"""
        return self.sessions.get(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session"""
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def cleanup_old_sessions(self, max_age_hours: int = 24) -> int:
        """Remove sessions older than max_age_hours"""
        now = _now()
        old_sessions = [
            sid for sid, session in self.sessions.items()
            if (now - session.updated_at).total_seconds() > max_age_hours * 3600
        ]
        for sid in old_sessions:
            await self.delete_session(sid)
        return len(old_sessions)

    async def run_expiry(self, interval_seconds: float, max_age_hours: int = 24) -> None:
        """Periodically remove idle sessions until cancelled"""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = await self.cleanup_old_sessions(max_age_hours)
            except Exception as e:
                logger.error(f"Session expiry failed: {e}")
                continue
            if removed:
                logger.info(f"Expired {removed} idle checkout sessions")

    async def close_all(self) -> None:
        for sid in list(self.sessions):
            await self.delete_session(sid)


# Singleton instance
session_manager = CheckoutSessionManager()
