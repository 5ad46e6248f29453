import asyncio
from datetime import timedelta

import pytest

from storefront.core.session import CheckoutSessionManager
from storefront.models.checkout import PaymentMethod, ReconciliationMarker
from storefront.services.gateway import GatewayHandoff, HostedCheckoutGateway
from storefront.services.payment_orchestrator import GatewayAwaiting, PaymentOrchestrator


@pytest.fixture
def manager():
    return CheckoutSessionManager()


@pytest.mark.asyncio
async def test_session_lifecycle(manager, buyer, cart, orchestrator):
    session = manager.create_session(buyer=buyer, cart=cart, orchestrator=orchestrator, debounce_seconds=10)
    assert manager.get_session(session.session_id) is session

    session.update_address(street="12 Oak Rd", city="Pune")
    assert session.address.city == "Pune"
    assert session.validator.pending

    assert await manager.delete_session(session.session_id) is True
    assert manager.get_session(session.session_id) is None
    assert not session.validator.pending
    assert await manager.delete_session(session.session_id) is False


@pytest.mark.asyncio
async def test_closing_session_waits_for_cart_cleanup(manager, backend, buyer, cart, orchestrator):
    session = manager.create_session(buyer=buyer, cart=cart, orchestrator=orchestrator)
    orchestrator.cleanup.schedule(buyer.buyer_id)

    await manager.close_all()

    assert manager.sessions == {}
    assert len(backend.calls_to("clear_cart")) == 1


@pytest.mark.asyncio
async def test_cleanup_old_sessions(manager, buyer, cart, orchestrator):
    stale = manager.create_session(buyer=buyer, cart=cart, orchestrator=orchestrator)
    fresh = manager.create_session(buyer=buyer, cart=cart, orchestrator=orchestrator)
    stale.updated_at -= timedelta(hours=25)

    removed = await manager.cleanup_old_sessions(max_age_hours=24)

    assert removed == 1
    assert list(manager.sessions) == [fresh.session_id]


def test_ledger_tracks_markers_until_resolved(ledger):
    first = ReconciliationMarker(payment_session_id="pay-1", gateway_payment_id="pay_a")
    second = ReconciliationMarker(
        payment_session_id="pay-2",
        gateway_payment_id="pay_b",
        attempted_at=first.attempted_at + timedelta(seconds=5),
    )
    ledger.record(second)
    ledger.record(first)

    assert ledger.pending() == [first, second]
    assert ledger.resolve("pay-1") is True
    assert ledger.resolve("pay-1") is False
    assert ledger.pending() == [second]


@pytest.mark.asyncio
async def test_hosted_gateway_hands_out_each_handoff_once():
    async def noop(*args):
        return None

    gateway = HostedCheckoutGateway()
    handoff = GatewayHandoff(
        session_ref="gw_order_1",
        amount=100000,
        currency="INR",
        public_key="rzp_test_key",
        on_complete=noop,
        on_dismiss=noop,
        on_error=noop,
    )

    await gateway.open(handoff)

    assert gateway.take("gw_order_1") is handoff
    assert gateway.take("gw_order_1") is None


@pytest.fixture
def hosted_gateway():
    return HostedCheckoutGateway()


@pytest.fixture
def hosted_orchestrator(buyer, backend, hosted_gateway, cleanup, ledger):
    return PaymentOrchestrator(
        buyer=buyer,
        backend=backend,
        gateway=hosted_gateway,
        cleanup=cleanup,
        ledger=ledger,
    )


@pytest.mark.asyncio
async def test_expired_session_releases_parked_handoff_and_client(
    manager, backend, buyer, cart, address, hosted_gateway, hosted_orchestrator
):
    session = manager.create_session(
        buyer=buyer, cart=cart, orchestrator=hosted_orchestrator, backend=backend
    )
    state = await hosted_orchestrator.submit(cart, address, PaymentMethod.ONLINE)
    assert isinstance(state, GatewayAwaiting)
    session.updated_at -= timedelta(hours=25)

    removed = await manager.cleanup_old_sessions(max_age_hours=24)

    assert removed == 1
    assert hosted_gateway.take("gw_order_1") is None
    assert backend.closed


@pytest.mark.asyncio
async def test_closing_session_outside_payment_keeps_other_handoffs(
    manager, buyer, cart, hosted_gateway, hosted_orchestrator
):
    async def noop(*args):
        return None

    other = GatewayHandoff(
        session_ref="gw_order_other",
        amount=500,
        currency="INR",
        public_key=None,
        on_complete=noop,
        on_dismiss=noop,
        on_error=noop,
    )
    await hosted_gateway.open(other)
    session = manager.create_session(buyer=buyer, cart=cart, orchestrator=hosted_orchestrator)

    await manager.delete_session(session.session_id)

    assert hosted_gateway.take("gw_order_other") is other


@pytest.mark.asyncio
async def test_expiry_loop_removes_idle_sessions_until_cancelled(
    manager, backend, buyer, cart, address, hosted_gateway, hosted_orchestrator
):
    session = manager.create_session(
        buyer=buyer, cart=cart, orchestrator=hosted_orchestrator, backend=backend
    )
    await hosted_orchestrator.submit(cart, address, PaymentMethod.ONLINE)
    session.updated_at -= timedelta(hours=25)

    expiry = asyncio.create_task(manager.run_expiry(0.01, max_age_hours=24))
    await asyncio.sleep(0.05)
    expiry.cancel()
    with pytest.raises(asyncio.CancelledError):
        await expiry

    assert manager.sessions == {}
    assert hosted_gateway.take("gw_order_1") is None
    assert backend.closed
