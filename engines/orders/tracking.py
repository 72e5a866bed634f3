"""
Evolv Orders Engine — Shipment Tracking
=======================================
Carrier push (webhook) and pull (reconciliation poll) both end in
OrderLifecycleService.apply_carrier_scan, so a scan has the same effect
whichever way it arrives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.commands.rejection import ReasonCode
from core.errors import ConflictError, EngineError, NotFoundError, ValidationError
from core.time import Clock, SystemClock, has_elapsed
from engines.orders.model import CARRIER_SYNC_STALE_AFTER, Order
from engines.orders.repository import OrderRepository
from engines.orders.services import OrderLifecycleService
from integration.adapters import compute_payload_hash

logger = logging.getLogger("evolv.orders")


@dataclass(frozen=True)
class ScanOutcome:
    order_number: str
    awb: str
    raw_status: str
    outcome: str
    status: str

    def to_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "awb": self.awb,
            "carrier_status": self.raw_status,
            "outcome": self.outcome,
            "status": self.status,
        }


class ShipmentTrackingService:

    def __init__(
        self,
        repository: OrderRepository,
        lifecycle: OrderLifecycleService,
        carrier,
        *,
        clock: Clock | None = None,
    ):
        self._orders = repository
        self._lifecycle = lifecycle
        self._carrier = carrier
        self._clock = clock or SystemClock()

    def _apply(self, awb: str, raw_status: str, payload_hash: Optional[str] = None) -> ScanOutcome:
        order = self._orders.by_awb(awb)
        if order is None:
            logger.warning("Carrier scan for unknown AWB %s", awb)
            raise NotFoundError.build(
                ReasonCode.ORDER_NOT_FOUND, f"No order for AWB {awb}.", "ShipmentTrackingService",
            )
        mapped = self._carrier.map_status(raw_status)
        updated, outcome = self._lifecycle.apply_carrier_scan(
            order.order_number,
            raw_status=raw_status,
            mapped_status=mapped.status,
            anomaly=mapped.anomaly,
            payload_hash=payload_hash,
        )
        return ScanOutcome(
            order_number=updated.order_number,
            awb=awb,
            raw_status=raw_status,
            outcome=outcome,
            status=updated.status,
        )

    def handle_webhook(self, payload: Dict[str, Any], presented_secret: Optional[str]) -> ScanOutcome:
        if not self._carrier.verify_webhook_secret(presented_secret):
            logger.warning("Carrier webhook rejected: bad secret")
            raise ValidationError.build(
                ReasonCode.WEBHOOK_UNAUTHORIZED, "Unauthorized webhook.", "handle_webhook",
            )
        update = self._carrier.parse_webhook(payload)
        return self._apply(update.awb, update.raw_status, compute_payload_hash(payload))

    def needs_sync(self, order: Order, now: datetime) -> bool:
        if not order.fulfillment.awb or order.is_terminal:
            return False
        last = order.fulfillment.last_synced_at
        return last is None or has_elapsed(last, CARRIER_SYNC_STALE_AFTER, now)

    def reconcile(self) -> List[ScanOutcome]:
        """Poll the carrier for every in-flight order not heard from recently."""
        now = self._clock.now_utc()
        outcomes = []
        for order in self._orders.all():
            if not self.needs_sync(order, now):
                continue
            awb = order.fulfillment.awb
            try:
                update = self._carrier.track(awb)
                outcomes.append(self._apply(awb, update.raw_status))
            except ConflictError as exc:
                logger.warning("Reconciliation flagged order %s for manual handling: %s", order.order_number, exc)
            except EngineError as exc:
                logger.error("Reconciliation failed for order %s: %s", order.order_number, exc)
        logger.info("Carrier reconciliation checked %d order(s)", len(outcomes))
        return outcomes
