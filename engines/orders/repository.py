"""
Evolv Orders Engine — Repository
================================
Versioned in-memory order store with the secondary lookups the
lifecycle needs: by gateway order id (payment callbacks) and by AWB
(carrier webhooks). Order numbers are NSD + yymmdd + a 6-digit
per-day sequence.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional

from core.concurrency import VersionedStore
from engines.orders.model import ORDER_NUMBER_PREFIX, Order


class OrderRepository:

    def __init__(self):
        self._store: VersionedStore[Order] = VersionedStore(
            key_of=lambda o: o.order_number, label="Order",
        )
        self._sequence_lock = threading.Lock()
        self._daily_sequence: Dict[str, int] = {}

    def next_order_number(self, now: datetime) -> str:
        day = now.strftime("%y%m%d")
        with self._sequence_lock:
            seq = self._daily_sequence.get(day, 0) + 1
            self._daily_sequence[day] = seq
        return f"{ORDER_NUMBER_PREFIX}{day}{seq:06d}"

    def get(self, order_number: str) -> Optional[Order]:
        return self._store.get(order_number)

    def add(self, order: Order) -> Order:
        return self._store.add(order)

    def save(self, order: Order, expected_version: int) -> Order:
        return self._store.save(order, expected_version)

    def all(self) -> List[Order]:
        return self._store.all()

    def by_status(self, *statuses: str) -> List[Order]:
        wanted = set(statuses)
        return [o for o in self._store.all() if o.status in wanted]

    def by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        for order in self._store.all():
            if order.payment.gateway_order_id == gateway_order_id:
                return order
        return None

    def by_awb(self, awb: str) -> Optional[Order]:
        for order in self._store.all():
            if order.fulfillment.awb == awb:
                return order
        return None

    def for_customer(self, customer_id: str) -> List[Order]:
        orders = [o for o in self._store.all() if o.customer_id == customer_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._store)
