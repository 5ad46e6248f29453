"""Checkout error taxonomy"""

from typing import Optional


class CheckoutError(Exception):
    """Base exception for checkout errors"""

    user_visible = False
    default_message = "Checkout failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(CheckoutError):
    """Address or cart not ready for submission. Nothing was sent anywhere."""

    user_visible = True
    default_message = "Please fill in all address fields correctly"


class OrderPlacementError(CheckoutError):
    """Pay-on-delivery order was rejected or could not be sent"""

    user_visible = True
    default_message = "Failed to place order"


class GatewaySessionError(CheckoutError):
    """Payment session could not be created. No charge exists, safe to retry."""

    user_visible = True
    default_message = "Failed to create payment order"


class GatewayCancellation(CheckoutError):
    """The shopper closed the gateway. Not a failure."""

    default_message = "Payment was cancelled"


class GatewayChargeError(CheckoutError):
    """Gateway failed to load or errored before charging."""

    user_visible = True
    default_message = "Payment failed"


class VerificationError(CheckoutError):
    """
    The backend could not verify the gateway's signed completion.

    The charge state is unknown, so order creation must not be attempted
    for this payment session.
    """

    user_visible = True
    default_message = "Payment verification failed"


class OrderCreationAfterPaymentError(CheckoutError):
    """Order creation failed after a verified payment"""

    default_message = "Order creation after payment failed"


class CleanupError(CheckoutError):
    """Cart could not be cleared after a confirmed order"""

    default_message = "Cart may not have been cleared automatically"


class BackendError(Exception):
    """Raised for failed calls to the storefront backend"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        # Message text supplied by the backend itself, if any
        self.server_message = server_message
