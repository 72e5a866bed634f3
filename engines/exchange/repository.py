"""
Evolv Exchange Engine — Repository
==================================
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from core.concurrency import VersionedStore
from engines.exchange.model import ExchangeRequest


class ExchangeRepository:

    def __init__(self):
        self._store: VersionedStore[ExchangeRequest] = VersionedStore(
            key_of=lambda e: e.exchange_id, label="Exchange",
        )

    @staticmethod
    def next_id() -> str:
        return f"EXC{uuid.uuid4().hex[:12].upper()}"

    def get(self, exchange_id: str) -> Optional[ExchangeRequest]:
        return self._store.get(exchange_id)

    def add(self, exchange: ExchangeRequest) -> ExchangeRequest:
        return self._store.add(exchange)

    def save(self, exchange: ExchangeRequest, expected_version: int) -> ExchangeRequest:
        return self._store.save(exchange, expected_version)

    def for_order(self, order_number: str) -> List[ExchangeRequest]:
        found = [e for e in self._store.all() if e.order_number == order_number]
        return sorted(found, key=lambda e: e.requested_at)

    def open_for_order(self, order_number: str) -> Optional[ExchangeRequest]:
        for exchange in self.for_order(order_number):
            if exchange.is_open:
                return exchange
        return None

    def for_customer(self, customer_id: str) -> List[ExchangeRequest]:
        found = [e for e in self._store.all() if e.customer_id == customer_id]
        return sorted(found, key=lambda e: e.requested_at, reverse=True)

    def all(self) -> List[ExchangeRequest]:
        return self._store.all()

    def __len__(self) -> int:
        return len(self._store)
