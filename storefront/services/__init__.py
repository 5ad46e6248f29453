# Checkout services

from .address_validator import DebouncedAddressValidator, is_complete, validate
from .backend_client import StoreBackendClient
from .cart_cleanup import CartCleanupService
from .cart_sync import CartSynchronizer
from .gateway import GatewayHandoff, HostedCheckoutGateway, PaymentGateway
from .payment_orchestrator import CheckoutStatus, PaymentOrchestrator
from .reconciliation import ReconciliationLedger, reconciliation_ledger

__all__ = [
    "DebouncedAddressValidator",
    "is_complete",
    "validate",
    "StoreBackendClient",
    "CartCleanupService",
    "CartSynchronizer",
    "GatewayHandoff",
    "HostedCheckoutGateway",
    "PaymentGateway",
    "CheckoutStatus",
    "PaymentOrchestrator",
    "ReconciliationLedger",
    "reconciliation_ledger",
]
