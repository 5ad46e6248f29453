"""
Address Validation

Pure field rules for the shipping address, plus a debounced runner that
re-validates while the shopper is typing.
"""

import asyncio
import logging
import re
from typing import Callable, Optional

from ..models.checkout import Address, ValidityMap

logger = logging.getLogger(__name__)

ZIP_CODE_PATTERN = re.compile(r"^\d{5,6}$")

MIN_LENGTHS = {
    "street": 5,
    "city": 2,
    "state": 2,
    "country": 2,
}


def validate(address: Address) -> ValidityMap:
    """Check every address field against its rule"""
    validity = {
        name: len(getattr(address, name).strip()) >= minimum
        for name, minimum in MIN_LENGTHS.items()
    }
    validity["zip_code"] = bool(ZIP_CODE_PATTERN.match(address.zip_code.strip()))
    return validity


def is_complete(address: Address) -> bool:
    """True when every field is valid"""
    return all(validate(address).values())


def invalid_fields(address: Address) -> list[str]:
    return [name for name, ok in validate(address).items() if not ok]


class DebouncedAddressValidator:
    """
    Runs validation after the shopper stops typing.

    Each schedule() replaces the pending run, so only the trailing edit is
    validated. At most one task is ever pending.

    Usage:
        validator = DebouncedAddressValidator(on_result=render, delay=0.3)
        validator.schedule(address)   # on every keystroke
        validator.cancel()            # on teardown
    """

    def __init__(
        self,
        on_result: Optional[Callable[[ValidityMap], None]] = None,
        delay: float = 0.3,
    ):
        self.delay = delay
        self._on_result = on_result
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[Address] = None
        self.latest: Optional[ValidityMap] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, address: Address) -> None:
        """Validate address once the quiet period passes without another call"""
        self._cancel_task()
        self._pending = address
        self._task = asyncio.get_running_loop().create_task(self._run_after_delay(address))

    def cancel(self) -> None:
        """Drop any pending validation"""
        self._cancel_task()
        self._pending = None

    def flush(self) -> Optional[ValidityMap]:
        """Run the pending validation immediately"""
        address = self._pending
        self.cancel()
        if address is None:
            return None
        return self._publish(address)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run_after_delay(self, address: Address) -> None:
        await asyncio.sleep(self.delay)
        self._pending = None
        self._task = None
        self._publish(address)

    def _publish(self, address: Address) -> ValidityMap:
        self.latest = validate(address)
        logger.debug(f"Address validated: {self.latest}")
        if self._on_result:
            self._on_result(self.latest)
        return self.latest
