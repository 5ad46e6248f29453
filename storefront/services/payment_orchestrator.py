"""
Payment Orchestrator

Turns a resolved cart and a confirmed address into an order:
1. Pay on delivery: create the order straight away
2. Pay now: create a payment session, hand off to the gateway, verify the
   signed completion, then create the order
3. Clear the persisted cart in the background once an order (or a
   reconciliation marker) exists

The current state is always exactly one of the state classes below. Each
carries only the data that state needs, so combinations such as "payment
verified but no order and no reconciliation marker" cannot be represented.

A dismissed gateway ends in Cancelled, which keeps the confirmed address and
cart and accepts a new submit the same way AddressConfirmed does. Clients
should key off can_submit rather than the status name.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Union

from ..core.errors import (
    BackendError,
    CheckoutError,
    GatewayCancellation,
    GatewayChargeError,
    GatewaySessionError,
    OrderCreationAfterPaymentError,
    OrderPlacementError,
    ValidationError,
    VerificationError,
)
from ..models.cart import Cart
from ..models.checkout import (
    Address,
    BuyerContext,
    PaymentMethod,
    PaymentSession,
    PendingOrderRequest,
    PricingSnapshot,
    ReconciliationMarker,
)
from .address_validator import invalid_fields
from .cart_cleanup import CartCleanupService
from .gateway import GatewayHandoff, PaymentGateway
from .reconciliation import ReconciliationLedger, reconciliation_ledger

logger = logging.getLogger(__name__)


class CheckoutStatus(str, Enum):
    """Name of the current checkout state"""
    IDLE = "idle"
    ADDRESS_CONFIRMED = "address_confirmed"
    COD_CONFIRMING = "cod_confirming"
    COD_DONE = "cod_done"
    SESSION_CREATING = "session_creating"
    GATEWAY_AWAITING = "gateway_awaiting"
    VERIFYING = "verifying"
    ORDER_CREATING = "order_creating"
    DONE = "done"
    RECONCILED_PENDING_ORDER = "reconciled_pending_order"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Idle:
    status: ClassVar[CheckoutStatus] = CheckoutStatus.IDLE


@dataclass(frozen=True)
class AddressConfirmed:
    cart: Cart
    address: Address
    status: ClassVar[CheckoutStatus] = CheckoutStatus.ADDRESS_CONFIRMED


@dataclass(frozen=True)
class CodConfirming:
    request: PendingOrderRequest
    confirmed: AddressConfirmed
    status: ClassVar[CheckoutStatus] = CheckoutStatus.COD_CONFIRMING


@dataclass(frozen=True)
class CodDone:
    order_id: str
    status: ClassVar[CheckoutStatus] = CheckoutStatus.COD_DONE

    def __post_init__(self):
        if not self.order_id:
            raise ValueError("CodDone requires an order id")


@dataclass(frozen=True)
class SessionCreating:
    request: PendingOrderRequest
    confirmed: AddressConfirmed
    status: ClassVar[CheckoutStatus] = CheckoutStatus.SESSION_CREATING


@dataclass(frozen=True)
class GatewayAwaiting:
    request: PendingOrderRequest
    session: PaymentSession
    confirmed: AddressConfirmed
    status: ClassVar[CheckoutStatus] = CheckoutStatus.GATEWAY_AWAITING


@dataclass(frozen=True)
class Verifying:
    request: PendingOrderRequest
    session: PaymentSession
    payment_id: str
    confirmed: AddressConfirmed
    status: ClassVar[CheckoutStatus] = CheckoutStatus.VERIFYING


@dataclass(frozen=True)
class OrderCreating:
    request: PendingOrderRequest
    session: PaymentSession
    payment_id: str
    status: ClassVar[CheckoutStatus] = CheckoutStatus.ORDER_CREATING


@dataclass(frozen=True)
class Done:
    order_id: str
    payment_id: str
    status: ClassVar[CheckoutStatus] = CheckoutStatus.DONE

    def __post_init__(self):
        if not self.order_id or not self.payment_id:
            raise ValueError("Done requires an order id and a verified payment id")


@dataclass(frozen=True)
class ReconciledPendingOrder:
    """Paid and verified, order still to be matched by the backend"""
    payment_id: str
    marker: ReconciliationMarker
    status: ClassVar[CheckoutStatus] = CheckoutStatus.RECONCILED_PENDING_ORDER


@dataclass(frozen=True)
class Failed:
    error: CheckoutError
    confirmed: AddressConfirmed
    status: ClassVar[CheckoutStatus] = CheckoutStatus.FAILED

    @property
    def message(self) -> str:
        return self.error.message


@dataclass(frozen=True)
class Cancelled:
    confirmed: AddressConfirmed
    reason: GatewayCancellation = field(default_factory=GatewayCancellation)
    status: ClassVar[CheckoutStatus] = CheckoutStatus.CANCELLED

    @property
    def message(self) -> str:
        return self.reason.message


CheckoutState = Union[
    Idle,
    AddressConfirmed,
    CodConfirming,
    CodDone,
    SessionCreating,
    GatewayAwaiting,
    Verifying,
    OrderCreating,
    Done,
    ReconciledPendingOrder,
    Failed,
    Cancelled,
]

# States a new attempt may start from
SUBMITTABLE = (Idle, AddressConfirmed, Failed, Cancelled)

SUCCEEDED = (CodDone, Done, ReconciledPendingOrder)


class PaymentOrchestrator:
    """
    Checkout state machine for one buyer and one checkout attempt.

    Usage:
        orchestrator = PaymentOrchestrator(buyer, backend, gateway, cleanup)
        state = await orchestrator.submit(cart, address, PaymentMethod.ONLINE)
        # gateway later calls handoff.on_complete / on_dismiss / on_error
    """

    def __init__(
        self,
        buyer: BuyerContext,
        backend,
        gateway: PaymentGateway,
        cleanup: CartCleanupService,
        ledger: Optional[ReconciliationLedger] = None,
        currency: str = "INR",
        order_failure_message: str = OrderPlacementError.default_message,
    ):
        self.buyer = buyer
        self.backend = backend
        self.gateway = gateway
        self.cleanup = cleanup
        self.ledger = ledger if ledger is not None else reconciliation_ledger
        self.currency = currency
        self.order_failure_message = order_failure_message

        self.state: CheckoutState = Idle()
        self.history: list[CheckoutStatus] = [self.state.status]
        self.warnings: list[str] = []

    @property
    def can_submit(self) -> bool:
        return isinstance(self.state, SUBMITTABLE)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.state, SUCCEEDED)

    def _transition(self, new_state: CheckoutState) -> CheckoutState:
        logger.info(
            f"Checkout for buyer {self.buyer.buyer_id}: "
            f"{self.state.status.value} -> {new_state.status.value}"
        )
        self.state = new_state
        self.history.append(new_state.status)
        return new_state

    def _fail(self, confirmed: AddressConfirmed, error: CheckoutError) -> CheckoutState:
        logger.warning(f"Checkout failed for buyer {self.buyer.buyer_id}: {error.message}")
        return self._transition(Failed(error=error, confirmed=confirmed))

    # ==================== Submission ====================

    def confirm_address(self, cart: Cart, address: Address) -> AddressConfirmed:
        """
        Check the current address and cart, not any cached validation result.

        Raises ValidationError and leaves the state unchanged when either is
        not ready.
        """
        if not self.can_submit:
            raise ValidationError("Checkout is already in progress")

        missing = invalid_fields(address)
        if missing:
            raise ValidationError(f"Please fill in correctly: {', '.join(missing)}")
        if cart.is_empty:
            raise ValidationError("No items in cart")
        if cart.total <= 0:
            raise ValidationError("Invalid cart total")

        return self._transition(AddressConfirmed(cart=cart, address=address))

    async def submit(
        self,
        cart: Cart,
        address: Address,
        payment_method: PaymentMethod,
    ) -> CheckoutState:
        """
        Start a checkout attempt.

        A no-op while an attempt is in flight or after one has succeeded,
        so a double click cannot create a second payment session or order.
        """
        if not self.can_submit:
            logger.info(f"Ignoring submit for buyer {self.buyer.buyer_id} in state {self.state.status.value}")
            return self.state

        confirmed = self.confirm_address(cart, address)
        request = PendingOrderRequest.capture(self.buyer, cart, address, payment_method)

        if payment_method == PaymentMethod.COD:
            return await self._place_cod_order(confirmed, request)
        return await self._start_payment(confirmed, request)

    async def _place_cod_order(
        self,
        confirmed: AddressConfirmed,
        request: PendingOrderRequest,
    ) -> CheckoutState:
        self._transition(CodConfirming(request=request, confirmed=confirmed))

        try:
            order = await self.backend.create_order(request)
        except Exception as e:
            logger.error(f"Order creation error: {e}")
            message = self.order_failure_message
            if isinstance(e, BackendError) and e.server_message:
                message = e.server_message
            return self._fail(confirmed, OrderPlacementError(message))

        self._transition(CodDone(order_id=order.order_id))
        self._schedule_cleanup(request)
        return self.state

    async def _start_payment(
        self,
        confirmed: AddressConfirmed,
        request: PendingOrderRequest,
    ) -> CheckoutState:
        self._transition(SessionCreating(request=request, confirmed=confirmed))

        pricing = PricingSnapshot.from_request(request, self.currency)
        try:
            session = await self.backend.create_payment_session(
                buyer=self.buyer,
                amount=request.total,
                currency=self.currency,
                pricing=pricing,
            )
        except Exception as e:
            logger.error(f"Payment session creation failed: {e}")
            return self._fail(confirmed, GatewaySessionError())

        awaiting = self._transition(
            GatewayAwaiting(request=request, session=session, confirmed=confirmed)
        )
        handoff = GatewayHandoff(
            session_ref=session.gateway_order_ref,
            amount=session.amount,
            currency=session.currency,
            public_key=session.gateway_public_key,
            on_complete=self.complete_payment,
            on_dismiss=self.dismiss_payment,
            on_error=self.fail_payment,
        )

        try:
            await self.gateway.open(handoff)
        except Exception as e:
            logger.error(f"Gateway failed to open: {e}")
            # The gateway may already have reported an outcome before failing
            if self.state is awaiting:
                return self._fail(confirmed, GatewayChargeError())

        return self.state

    # ==================== Gateway outcomes ====================

    async def complete_payment(self, payment_id: str, signature: str) -> CheckoutState:
        """Gateway reports a completed charge with its signature"""
        awaiting = self.state
        if not isinstance(awaiting, GatewayAwaiting):
            logger.warning(f"Ignoring gateway completion in state {awaiting.status.value}")
            return awaiting

        session = awaiting.session
        self._transition(
            Verifying(
                request=awaiting.request,
                session=session,
                payment_id=payment_id,
                confirmed=awaiting.confirmed,
            )
        )

        try:
            verified = await self.backend.verify_payment(session.session_id, payment_id, signature)
        except Exception as e:
            logger.error(f"Payment verification request failed: {e}")
            verified = False

        if not verified:
            return self._fail(awaiting.confirmed, VerificationError())

        return await self._create_paid_order(awaiting.request, session, payment_id)

    async def dismiss_payment(self) -> CheckoutState:
        """The shopper closed the gateway without paying"""
        awaiting = self.state
        if not isinstance(awaiting, GatewayAwaiting):
            logger.warning(f"Ignoring gateway dismissal in state {awaiting.status.value}")
            return awaiting
        return self._transition(Cancelled(confirmed=awaiting.confirmed))

    async def fail_payment(self, reason: Optional[str] = None) -> CheckoutState:
        """The gateway errored before any charge"""
        awaiting = self.state
        if not isinstance(awaiting, GatewayAwaiting):
            logger.warning(f"Ignoring gateway error in state {awaiting.status.value}")
            return awaiting
        error = GatewayChargeError(f"Payment failed: {reason}" if reason else None)
        return self._fail(awaiting.confirmed, error)

    async def _create_paid_order(
        self,
        request: PendingOrderRequest,
        session: PaymentSession,
        payment_id: str,
    ) -> CheckoutState:
        self._transition(OrderCreating(request=request, session=session, payment_id=payment_id))

        try:
            order = await self.backend.create_order(request, payment_ref=payment_id)
        except Exception as e:
            # The charge is captured; record it for the backend to match later
            error = OrderCreationAfterPaymentError(str(e) or None)
            marker = ReconciliationMarker(
                payment_session_id=session.session_id,
                gateway_payment_id=payment_id,
                buyer_id=self.buyer.buyer_id,
                reason=error.message,
            )
            self.ledger.record(marker)
            self._transition(ReconciledPendingOrder(payment_id=payment_id, marker=marker))
            self._schedule_cleanup(request)
            return self.state

        self._transition(Done(order_id=order.order_id, payment_id=payment_id))

        try:
            await self.backend.attach_order(session.session_id, order.order_id)
        except Exception as e:
            logger.warning(
                f"Failed to attach order {order.order_id} to payment {session.session_id} "
                f"(will rely on backend reconciliation): {e}"
            )

        self._schedule_cleanup(request)
        return self.state

    def release_gateway(self) -> None:
        """Drop a parked gateway handoff when the checkout is abandoned mid-payment"""
        state = self.state
        if isinstance(state, GatewayAwaiting):
            self.gateway.discard(state.session.gateway_order_ref)
            logger.info(f"Released gateway handoff {state.session.gateway_order_ref} for buyer {self.buyer.buyer_id}")

    def _schedule_cleanup(self, request: PendingOrderRequest) -> None:
        if not request.clears_cart:
            return
        self.cleanup.schedule(request.buyer.buyer_id, on_warning=self.warnings.append)
