"""
Cart Cleanup

Clears the buyer's persisted cart after a confirmed order without holding
up the confirmation itself.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..core.errors import CleanupError

logger = logging.getLogger(__name__)


class CartCleanupService:
    """Best-effort remote cart clearing"""

    def __init__(self, backend, synchronizer=None):
        """
        Args:
            backend: object with async clear_cart(buyer_id)
            synchronizer: CartSynchronizer whose mirror is reset after clearing
        """
        self.backend = backend
        self.synchronizer = synchronizer
        self._tasks: set[asyncio.Task] = set()

    async def clear(self, buyer_id: str) -> None:
        """Clear the cart now. Raises CleanupError on failure."""
        try:
            await self.backend.clear_cart(buyer_id)
        except Exception as e:
            raise CleanupError() from e

        if self.synchronizer is not None:
            self.synchronizer.reset_mirror()
        logger.info(f"Cart cleared for buyer {buyer_id}")

    def schedule(
        self,
        buyer_id: str,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> asyncio.Task:
        """Start clearing in the background and return immediately"""
        task = asyncio.get_running_loop().create_task(self._clear_quietly(buyer_id, on_warning))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for background cleanups still in flight"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _clear_quietly(
        self,
        buyer_id: str,
        on_warning: Optional[Callable[[str], None]],
    ) -> None:
        try:
            await self.clear(buyer_id)
        except CleanupError as e:
            # Order state is untouched; the shopper only gets a warning
            logger.warning(f"Failed to clear cart for buyer {buyer_id}: {e.__cause__}")
            if on_warning:
                on_warning(e.message)
