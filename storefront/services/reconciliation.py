"""Reconciliation markers for payments that have no order yet"""

import logging
from typing import Optional

from ..models.checkout import ReconciliationMarker

logger = logging.getLogger(__name__)


class ReconciliationLedger:
    """In-memory record of verified payments awaiting an order"""

    def __init__(self):
        self.markers: dict[str, ReconciliationMarker] = {}

    def record(self, marker: ReconciliationMarker) -> None:
        """Record a marker; a second marker for the same session replaces the first"""
        self.markers[marker.payment_session_id] = marker
        logger.warning(
            f"Payment {marker.gateway_payment_id} (session {marker.payment_session_id}) "
            f"verified without an order: {marker.reason}"
        )

    def get(self, payment_session_id: str) -> Optional[ReconciliationMarker]:
        return self.markers.get(payment_session_id)

    def resolve(self, payment_session_id: str) -> bool:
        """Drop a marker once the backend has matched the payment to an order"""
        if payment_session_id in self.markers:
            del self.markers[payment_session_id]
            return True
        return False

    def pending(self) -> list[ReconciliationMarker]:
        markers = list(self.markers.values())
        markers.sort(key=lambda m: m.attempted_at)
        return markers


# Singleton instance
reconciliation_ledger = ReconciliationLedger()
