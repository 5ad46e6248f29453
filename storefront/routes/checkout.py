"""Checkout API routes"""

from decimal import Decimal
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.session import CheckoutSession, CheckoutSessionManager, session_manager
from ..models.cart import BuyNowOverride, VariantRef
from ..models.checkout import BuyerContext, PaymentMethod
from ..services.backend_client import StoreBackendClient
from ..services.cart_cleanup import CartCleanupService
from ..services.cart_sync import CartSynchronizer
from ..services.gateway import HostedCheckoutGateway
from ..services.payment_orchestrator import (
    CodDone,
    Done,
    Failed,
    Cancelled,
    GatewayAwaiting,
    PaymentOrchestrator,
    ReconciledPendingOrder,
)
from ..services.reconciliation import ReconciliationLedger, reconciliation_ledger

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])

# Gateway widgets run in the browser; handoffs wait here for their callback
hosted_gateway = HostedCheckoutGateway()


def get_sessions() -> CheckoutSessionManager:
    return session_manager


def get_gateway() -> HostedCheckoutGateway:
    return hosted_gateway


def get_ledger() -> ReconciliationLedger:
    return reconciliation_ledger


def get_backend_factory() -> Callable[[BuyerContext], StoreBackendClient]:
    """Build a backend client bound to one buyer's credentials"""
    def factory(buyer: BuyerContext) -> StoreBackendClient:
        return StoreBackendClient.for_buyer(
            buyer,
            backend_base_url=settings.backend_base_url,
            timeout=settings.backend_timeout_seconds,
        )
    return factory


def get_checkout_session(
    session_id: str,
    sessions: CheckoutSessionManager = Depends(get_sessions),
) -> CheckoutSession:
    session = sessions.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


class BuyerPayload(BaseModel):
    """Buyer identity as known to the storefront UI"""
    id: str
    email: str = ""
    phone: str = ""
    name: str = ""


class VariantPayload(BaseModel):
    sku: str
    price: Decimal = Field(gt=0)
    color: Optional[str] = None
    size: Optional[str] = None


class BuyNowPayload(BaseModel):
    """Single product bought directly from its page"""
    product_id: str
    price: Decimal = Field(gt=0)
    quantity: int = Field(default=1, gt=0)
    name: Optional[str] = None
    variant: Optional[VariantPayload] = None


class StartCheckoutRequest(BaseModel):
    """Request to start a checkout session"""
    buyer: BuyerPayload
    buy_now: Optional[BuyNowPayload] = None


class AddressPatch(BaseModel):
    """Address fields edited since the last update"""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class SubmitRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.COD


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _buy_now_override(payload: Optional[BuyNowPayload]) -> Optional[BuyNowOverride]:
    if payload is None:
        return None
    variant = None
    if payload.variant:
        variant = VariantRef(
            sku=payload.variant.sku,
            unit_price=payload.variant.price,
            color_key=payload.variant.color,
            size_key=payload.variant.size,
        )
    return BuyNowOverride(
        product_id=payload.product_id,
        unit_price=payload.price,
        quantity=payload.quantity,
        name=payload.name,
        variant=variant,
    )


def state_view(session: CheckoutSession) -> dict:
    """Describe the checkout state for the UI"""
    state = session.orchestrator.state
    view = {
        "status": state.status.value,
        "can_submit": session.orchestrator.can_submit,
        "succeeded": session.orchestrator.succeeded,
    }

    if isinstance(state, (CodDone, Done)):
        view["order_id"] = state.order_id
        view["redirect"] = f"/orders/{state.order_id}"
    if isinstance(state, Done):
        view["payment_id"] = state.payment_id
    if isinstance(state, ReconciledPendingOrder):
        # Paid, but no order id to show yet
        view["payment_id"] = state.payment_id
        view["redirect"] = "/orders"
    if isinstance(state, (Failed, Cancelled)):
        view["message"] = state.message
    if isinstance(state, GatewayAwaiting):
        view["gateway"] = {
            "key": state.session.gateway_public_key,
            "order_ref": state.session.gateway_order_ref,
            "amount": state.session.amount,
            "currency": state.session.currency,
            "name": settings.store_name,
            "prefill": {"email": session.buyer.email},
        }
    return view


def session_view(session: CheckoutSession) -> dict:
    cart = session.cart
    return {
        "session_id": session.session_id,
        "buyer_id": session.buyer.buyer_id,
        "buy_now": cart.is_buy_now,
        "cart": {
            "items": [
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "sku": line.variant.sku if line.variant else None,
                    "total_price": line.line_total,
                }
                for line in cart.lines
            ],
            "total": cart.total,
        },
        "address": {
            "street": session.address.street,
            "city": session.address.city,
            "state": session.address.state,
            "zip_code": session.address.zip_code,
            "country": session.address.country,
        },
        "validity": session.validator.latest,
        "validation_pending": session.validator.pending,
        "checkout": state_view(session),
        "warnings": list(session.orchestrator.warnings),
    }


@router.post("/sessions")
async def start_checkout(
    request: StartCheckoutRequest,
    authorization: Optional[str] = Header(None),
    sessions: CheckoutSessionManager = Depends(get_sessions),
    gateway: HostedCheckoutGateway = Depends(get_gateway),
    ledger: ReconciliationLedger = Depends(get_ledger),
    backend_factory: Callable = Depends(get_backend_factory),
):
    """
    Start a checkout session.

    Loads the buyer's cart with current prices, or uses the buy-now item
    alone when one is given.
    """
    buyer = BuyerContext(
        buyer_id=request.buyer.id,
        email=request.buyer.email,
        phone=request.buyer.phone,
        display_name=request.buyer.name,
        access_token=_bearer_token(authorization),
    )
    backend = backend_factory(buyer)
    synchronizer = CartSynchronizer(backend)
    cart = await synchronizer.resolve(buyer.buyer_id, buy_now=_buy_now_override(request.buy_now))

    orchestrator = PaymentOrchestrator(
        buyer=buyer,
        backend=backend,
        gateway=gateway,
        cleanup=CartCleanupService(backend, synchronizer),
        ledger=ledger,
        currency=settings.currency,
        order_failure_message=settings.generic_order_failure_message,
    )
    session = sessions.create_session(
        buyer=buyer,
        cart=cart,
        orchestrator=orchestrator,
        synchronizer=synchronizer,
        backend=backend,
        debounce_seconds=settings.address_debounce_seconds,
    )
    return session_view(session)


@router.get("/sessions/{session_id}")
async def get_checkout(session: CheckoutSession = Depends(get_checkout_session)):
    """Get session details"""
    return session_view(session)


@router.patch("/sessions/{session_id}/address")
async def update_address(
    patch: AddressPatch,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """Apply address edits; validation runs once the edits stop"""
    changes = {name: value for name, value in patch.model_dump().items() if value is not None}
    session.update_address(**changes)
    return session_view(session)


@router.post("/sessions/{session_id}/submit")
async def submit_checkout(
    request: SubmitRequest,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Place the order (pay on delivery) or open the payment gateway (pay now).

    Repeated submits while an attempt is running return the current state.
    """
    try:
        await session.orchestrator.submit(session.cart, session.address, request.payment_method)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
    session.touch()
    return session_view(session)


@router.delete("/sessions/{session_id}")
async def delete_checkout(
    session_id: str,
    sessions: CheckoutSessionManager = Depends(get_sessions),
):
    """Abandon a checkout session"""
    if not await sessions.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"message": "Session deleted"}


@router.get("/reconciliation")
async def list_reconciliation(ledger: ReconciliationLedger = Depends(get_ledger)):
    """Verified payments still waiting to be matched to an order"""
    return {
        "markers": [
            {
                "payment_session_id": marker.payment_session_id,
                "gateway_payment_id": marker.gateway_payment_id,
                "buyer_id": marker.buyer_id,
                "attempted_at": marker.attempted_at.isoformat(),
                "reason": marker.reason,
            }
            for marker in ledger.pending()
        ]
    }
