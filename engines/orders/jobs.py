"""
Evolv Orders Engine — Scheduled Jobs
====================================
Entry points for the periodic sweeps. Management commands and any
external scheduler call these; each is safe to run while customer,
gateway and carrier traffic is live because every transition it makes
goes through the per-order lock.
"""

from __future__ import annotations

import logging
from typing import List

from core.errors import EngineError

logger = logging.getLogger("evolv.orders")


def expire_pending_orders(lifecycle) -> List[str]:
    """Cancel unpaid orders older than the payment window. Returns order numbers."""
    expired = []
    for order in lifecycle.unpaid_orders():
        try:
            if lifecycle.expire_if_unpaid(order.order_number) is not None:
                expired.append(order.order_number)
        except EngineError as exc:
            logger.error("Could not expire order %s: %s", order.order_number, exc)
    if expired:
        logger.info("Expired %d unpaid order(s): %s", len(expired), ", ".join(expired))
    return expired


def reconcile_shipments(tracking) -> List[str]:
    """Poll the carrier for stale in-flight shipments. Returns order numbers polled."""
    return [outcome.order_number for outcome in tracking.reconcile()]


def retry_pending_shipments(fulfillment) -> List[str]:
    """Retry shipments left in retry_pending. Returns order numbers now booked."""
    booked = fulfillment.retry_pending_shipments()
    if booked:
        logger.info("Booked %d delayed shipment(s)", len(booked))
    return booked
