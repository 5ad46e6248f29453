import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from storefront.core.errors import BackendError
from storefront.models.cart import Cart, CartLine
from storefront.models.checkout import Address, BuyerContext, Order, PaymentSession
from storefront.services.cart_cleanup import CartCleanupService
from storefront.services.cart_sync import CartSynchronizer
from storefront.services.gateway import GatewayHandoff, PaymentGateway
from storefront.services.payment_orchestrator import PaymentOrchestrator
from storefront.services.reconciliation import ReconciliationLedger


class FakeBackend:
    """In-memory stand-in for the storefront backend that records every call."""

    def __init__(self) -> None:
        self.cart_lines: list[dict] = []
        self.products: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.failing: dict[str, Exception] = {}
        self.verified = True
        self.order_gate: Optional[asyncio.Event] = None
        self.closed = False
        self._orders = 0

    def fail(self, method: str, error: Optional[Exception] = None) -> None:
        self.failing[method] = error or BackendError("Service unavailable", status_code=503)

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if method in self.failing:
            raise self.failing[method]

    async def get_cart(self, buyer_id: str) -> list[dict]:
        self._record("get_cart", buyer_id=buyer_id)
        return list(self.cart_lines)

    async def get_product(self, product_id: str) -> dict:
        self._record("get_product", product_id=product_id)
        if product_id not in self.products:
            raise BackendError("Product not found", status_code=404, server_message="Product not found")
        return self.products[product_id]

    async def clear_cart(self, buyer_id: str) -> None:
        self._record("clear_cart", buyer_id=buyer_id)
        self.cart_lines = []

    async def create_order(self, order, payment_ref=None) -> Order:
        self._record("create_order", order=order, payment_ref=payment_ref)
        if self.order_gate is not None:
            await self.order_gate.wait()
        self._orders += 1
        return Order(order_id=f"ord-{self._orders}", payment_ref=payment_ref)

    async def create_payment_session(self, buyer, amount, currency, pricing, payment_method="upi") -> PaymentSession:
        self._record("create_payment_session", amount=amount, currency=currency, pricing=pricing)
        return PaymentSession(
            session_id="pay-1",
            gateway_order_ref="gw_order_1",
            amount=amount * 100,
            currency=currency,
            gateway_public_key="rzp_test_key",
        )

    async def verify_payment(self, session_id: str, gateway_payment_id: str, gateway_signature: str) -> bool:
        self._record(
            "verify_payment",
            session_id=session_id,
            gateway_payment_id=gateway_payment_id,
            gateway_signature=gateway_signature,
        )
        return self.verified

    async def attach_order(self, session_id: str, order_id: str) -> None:
        self._record("attach_order", session_id=session_id, order_id=order_id)

    async def close(self) -> None:
        self.closed = True


class FakeGateway(PaymentGateway):
    """Gateway that keeps handoffs so tests can play the shopper."""

    def __init__(self) -> None:
        self.handoffs: list[GatewayHandoff] = []
        self.load_error: Optional[Exception] = None

    async def open(self, handoff: GatewayHandoff) -> None:
        self.handoffs.append(handoff)
        if self.load_error is not None:
            raise self.load_error

    @property
    def last(self) -> GatewayHandoff:
        return self.handoffs[-1]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def ledger() -> ReconciliationLedger:
    return ReconciliationLedger()


@pytest.fixture
def buyer() -> BuyerContext:
    return BuyerContext(
        buyer_id="u-42",
        email="asha@example.com",
        phone="9800000000",
        display_name="Asha Rao",
        access_token="token-abc",
    )


@pytest.fixture
def address() -> Address:
    return Address(street="12 Oak Rd", city="Pune", state="MH", zip_code="41100", country="IN")


@pytest.fixture
def cart() -> Cart:
    return Cart(lines=(CartLine(product_id="p1", quantity=2, unit_price=Decimal("500.00")),))


@pytest.fixture
def synchronizer(backend) -> CartSynchronizer:
    return CartSynchronizer(backend)


@pytest.fixture
def cleanup(backend, synchronizer) -> CartCleanupService:
    return CartCleanupService(backend, synchronizer)


@pytest.fixture
def orchestrator(buyer, backend, gateway, cleanup, ledger) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        buyer=buyer,
        backend=backend,
        gateway=gateway,
        cleanup=cleanup,
        ledger=ledger,
        currency="INR",
    )
