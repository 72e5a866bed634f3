"""
Evolv Integration — Payment Gateway Client
==========================================
Razorpay over httpx (sync client, basic auth with key id + secret).

Contract consumed by the order engine:
    create_order(amount, currency, receipt)       → GatewayOrder
    verify_payment_signature(order, payment, sig) → bool
    fetch_payment(payment_id)                     → GatewayPayment
    create_refund(payment_id, amount, notes)      → GatewayRefund
    fetch_refund(payment_id, refund_id)           → GatewayRefund

Amounts cross the wire in paise. The callback signature is
HMAC-SHA256 of "<gateway_order_id>|<payment_id>" keyed by the secret.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from core.config import StorefrontConfig
from core.primitives.money import from_minor_units, to_minor_units
from integration.adapters import (
    PermanentError,
    send,
    verify_hmac_signature,
)

logger = logging.getLogger("evolv.integration")

SYSTEM_ID = "razorpay"

GATEWAY_PAYMENT_CAPTURED = "captured"
GATEWAY_PAYMENT_AUTHORIZED = "authorized"
GATEWAY_REFUND_PROCESSED = "processed"
GATEWAY_REFUND_FAILED = "failed"


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    key_id: str
    amount_minor: int
    currency: str

    def to_dict(self) -> dict:
        return {
            "gateway_order_id": self.gateway_order_id,
            "key_id": self.key_id,
            "amount": self.amount_minor,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class GatewayPayment:
    payment_id: str
    gateway_order_id: str
    amount_minor: int
    status: str
    method: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor)

    @property
    def is_successful(self) -> bool:
        return self.status in (GATEWAY_PAYMENT_CAPTURED, GATEWAY_PAYMENT_AUTHORIZED)


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    payment_id: str
    amount_minor: int
    status: str

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor)

    @property
    def is_processed(self) -> bool:
        return self.status == GATEWAY_REFUND_PROCESSED


class RazorpayGateway:
    """
    Sync httpx client for the payment gateway.

    Pass `transport` to route requests through httpx.MockTransport in tests.
    """

    def __init__(
        self,
        config: StorefrontConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._key_id = config.gateway_key_id
        self._key_secret = config.gateway_key_secret
        self._webhook_secret = config.gateway_webhook_secret
        if not self._key_id or not self._key_secret:
            logger.error("Payment gateway credentials not configured")
        self._client = httpx.Client(
            base_url=config.gateway_base_url,
            auth=(self._key_id, self._key_secret),
            headers={"Content-Type": "application/json"},
            timeout=config.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = send(self._client, SYSTEM_ID, method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise PermanentError(f"{SYSTEM_ID} returned a non-JSON body.", SYSTEM_ID) from exc

    # ── Orders & payments ─────────────────────────────────────

    def create_order(self, amount: Decimal, currency: str, receipt: str) -> GatewayOrder:
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise PermanentError("Payment amount must be greater than zero.", SYSTEM_ID)
        logger.info("Creating gateway order: receipt=%s amount=%s", receipt, amount_minor)
        data = self._json("POST", "/orders", json={
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
        })
        if not data.get("id"):
            raise PermanentError("Invalid response from payment gateway.", SYSTEM_ID)
        return GatewayOrder(
            gateway_order_id=data["id"],
            key_id=self._key_id,
            amount_minor=int(data.get("amount", amount_minor)),
            currency=data.get("currency", currency),
        )

    def verify_payment_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        body = f"{gateway_order_id}|{payment_id}".encode("utf-8")
        return verify_hmac_signature(body, signature, self._key_secret)

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        return verify_hmac_signature(raw_body, signature, self._webhook_secret)

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = self._json("GET", f"/payments/{payment_id}")
        return GatewayPayment(
            payment_id=data.get("id", payment_id),
            gateway_order_id=data.get("order_id", ""),
            amount_minor=int(data.get("amount", 0)),
            status=data.get("status", ""),
            method=data.get("method"),
        )

    # ── Refunds ───────────────────────────────────────────────

    def create_refund(self, payment_id: str, amount: Decimal, notes: Optional[dict] = None) -> GatewayRefund:
        amount_minor = to_minor_units(amount)
        logger.info("Requesting refund of %s paise on payment %s", amount_minor, payment_id)
        data = self._json("POST", f"/payments/{payment_id}/refund", json={
            "amount": amount_minor,
            "notes": notes or {},
        })
        return self._refund(data, payment_id)

    def fetch_refund(self, payment_id: str, refund_id: str) -> GatewayRefund:
        data = self._json("GET", f"/payments/{payment_id}/refunds/{refund_id}")
        return self._refund(data, payment_id)

    @staticmethod
    def _refund(data: Dict[str, Any], payment_id: str) -> GatewayRefund:
        if not data.get("id"):
            raise PermanentError("Refund response carried no refund id.", SYSTEM_ID)
        return GatewayRefund(
            refund_id=data["id"],
            payment_id=data.get("payment_id", payment_id),
            amount_minor=int(data.get("amount", 0)),
            status=data.get("status", ""),
        )
