"""
Storefront Backend Client

HTTP client for the storefront's cart, catalog, order and payment services.
Authenticates with the buyer's bearer token when one is provided.
"""

import json
import logging
from decimal import Decimal
from typing import Optional, Any

import httpx

from ..core.errors import BackendError
from ..models.cart import to_decimal
from ..models.checkout import (
    BuyerContext,
    Order,
    PaymentMethod,
    PaymentSession,
    PendingOrderRequest,
    PricingSnapshot,
)

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    """Encode Decimal amounts as JSON numbers"""
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _error_message(response: httpx.Response) -> Optional[str]:
    """Pull the backend's own message out of an error body, if it sent one"""
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("detail")
    return None


class StoreBackendClient:
    """
    Client for the storefront backend APIs.

    One instance serves one buyer; the access token travels with it
    instead of being looked up per request.
    """

    def __init__(
        self,
        backend_base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize backend client.

        Args:
            backend_base_url: Base URL of the storefront backend
            access_token: Buyer's bearer token
            timeout: Request timeout in seconds
            http_client: Preconfigured client (shared pool or test transport)
        """
        self.base_url = backend_base_url.rstrip("/")
        self._access_token = access_token
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

        if not access_token:
            logger.warning("No access token provided - requests will be anonymous")

    @classmethod
    def for_buyer(
        cls,
        buyer: BuyerContext,
        backend_base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "StoreBackendClient":
        """Create a client bound to a buyer's credentials"""
        return cls(
            backend_base_url=backend_base_url,
            access_token=buyer.access_token,
            timeout=timeout,
            http_client=http_client,
        )

    async def close(self) -> None:
        """Close HTTP client"""
        if self._owns_client:
            await self._http_client.aclose()

    def _generate_headers(self) -> dict[str, str]:
        """Generate headers including bearer token if available"""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
    ) -> Any:
        """Make an HTTP request against the backend"""
        url = f"{self.base_url}{path}"
        body_str = None

        if body is not None:
            body_str = json.dumps(body, default=_json_default)

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._generate_headers(),
                content=body_str,
            )
        except httpx.HTTPError as e:
            logger.error(f"Request failed: {method} {url} - {e}")
            raise BackendError("Network error - please check your connection") from e

        if response.status_code >= 400:
            logger.error(f"Request failed: {response.status_code} - {response.text}")
            server_message = _error_message(response)
            raise BackendError(
                server_message or f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                server_message=server_message,
            )

        if not response.content:
            return None
        return response.json()

    # ==================== Catalog APIs ====================

    async def get_product(self, product_id: str) -> dict:
        """Get product details"""
        return await self._request("GET", f"/api/products/{product_id}")

    # ==================== Cart APIs ====================

    async def get_cart(self, buyer_id: str) -> list[dict]:
        """Get the buyer's persisted cart lines"""
        result = await self._request("GET", f"/api/cart/{buyer_id}")
        if isinstance(result, dict):
            result = result.get("items", [])
        return result or []

    async def clear_cart(self, buyer_id: str) -> None:
        """Clear the buyer's persisted cart"""
        await self._request("DELETE", f"/api/cart/clear/{buyer_id}")

    # ==================== Order APIs ====================

    async def create_order(
        self,
        order: PendingOrderRequest,
        payment_ref: Optional[str] = None,
    ) -> Order:
        """
        Create an order.

        Pay-on-delivery orders carry the full cart total with no discount.
        Pay-now orders carry the verified gateway payment id instead.
        """
        buyer = order.buyer
        body = {
            "userId": buyer.buyer_id,
            "email": buyer.email,
            "phone": buyer.phone,
            "username": buyer.display_name,
            "items": [
                {
                    "productId": line.product_id,
                    "quantity": line.quantity,
                    "price": line.unit_price,
                }
                for line in order.lines
            ],
            "address": order.address.to_payload(),
            "paymentMethod": order.payment_method.value,
        }

        if order.payment_method == PaymentMethod.COD:
            body["totalAmount"] = order.total
            body["originalAmount"] = order.total
            body["discountAmount"] = 0

        if payment_ref:
            body["paymentId"] = payment_ref

        result = await self._request("POST", "/api/orders", body=body)
        return Order(
            order_id=str(result["id"]),
            status=result.get("status", "created"),
            payment_ref=payment_ref,
        )

    # ==================== Payment APIs ====================

    async def create_payment_session(
        self,
        buyer: BuyerContext,
        amount: Decimal,
        currency: str,
        pricing: PricingSnapshot,
        payment_method: str = "upi",
    ) -> PaymentSession:
        """Create a gateway payment session with locked pricing"""
        result = await self._request(
            "POST",
            "/api/payments/create",
            body={
                "order_id": "temp",
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
                "email": buyer.email,
                "phone": buyer.phone,
                "username": buyer.display_name,
                "pricing": pricing.to_payload(),
            },
        )

        if not result or not result.get("success"):
            raise BackendError("Failed to create payment order")

        data = result["data"]
        gateway_order = data["razorpay_order"]
        return PaymentSession(
            session_id=str(data["id"]),
            gateway_order_ref=gateway_order["id"],
            amount=to_decimal(gateway_order["amount"]),
            currency=gateway_order.get("currency", currency),
            gateway_public_key=data.get("razorpay_key_id"),
            status=data.get("status", "created"),
        )

    async def verify_payment(
        self,
        session_id: str,
        gateway_payment_id: str,
        gateway_signature: str,
    ) -> bool:
        """Ask the backend to check the gateway's payment signature"""
        result = await self._request(
            "POST",
            "/api/payments/verify",
            body={
                "payment_id": session_id,
                "razorpay_payment_id": gateway_payment_id,
                "razorpay_signature": gateway_signature,
            },
        )
        return bool(result and result.get("success"))

    async def attach_order(self, session_id: str, order_id: str) -> None:
        """Link a created order to its payment for reconciliation"""
        await self._request(
            "POST",
            f"/api/payments/{session_id}/attach-order",
            body={"order_id": order_id},
        )
