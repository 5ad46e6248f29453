"""Gateway callback routes

The gateway widget reports its outcome to the browser, which relays it
here. Each parked handoff fires at most once.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.session import CheckoutSession
from ..services.gateway import GatewayHandoff, HostedCheckoutGateway
from ..services.payment_orchestrator import GatewayAwaiting
from .checkout import get_checkout_session, get_gateway, session_view

router = APIRouter(prefix="/api/checkout/sessions/{session_id}/gateway", tags=["Gateway"])


class GatewayCompletion(BaseModel):
    """Signed completion returned by the gateway widget"""
    payment_id: str
    signature: str


class GatewayFailure(BaseModel):
    reason: Optional[str] = None


def _take_handoff(session: CheckoutSession, gateway: HostedCheckoutGateway) -> GatewayHandoff:
    state = session.orchestrator.state
    handoff = None
    if isinstance(state, GatewayAwaiting):
        handoff = gateway.take(state.session.gateway_order_ref)
    if handoff is None:
        raise HTTPException(status_code=409, detail="No payment is awaiting the gateway")
    return handoff


@router.post("/complete")
async def gateway_complete(
    completion: GatewayCompletion,
    session: CheckoutSession = Depends(get_checkout_session),
    gateway: HostedCheckoutGateway = Depends(get_gateway),
):
    """Payment captured by the gateway; verify it and create the order"""
    handoff = _take_handoff(session, gateway)
    await handoff.on_complete(completion.payment_id, completion.signature)
    session.touch()
    return session_view(session)


@router.post("/dismiss")
async def gateway_dismiss(
    session: CheckoutSession = Depends(get_checkout_session),
    gateway: HostedCheckoutGateway = Depends(get_gateway),
):
    """Shopper closed the gateway without paying"""
    handoff = _take_handoff(session, gateway)
    await handoff.on_dismiss()
    session.touch()
    return session_view(session)


@router.post("/error")
async def gateway_error(
    failure: GatewayFailure,
    session: CheckoutSession = Depends(get_checkout_session),
    gateway: HostedCheckoutGateway = Depends(get_gateway),
):
    """Gateway failed to load or errored before charging"""
    handoff = _take_handoff(session, gateway)
    await handoff.on_error(failure.reason)
    session.touch()
    return session_view(session)
