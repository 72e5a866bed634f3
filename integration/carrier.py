"""
Evolv Integration — Shipment Carrier Client
===========================================
Delhivery over httpx (token auth).

Contract consumed by the engines:
    create_shipment(request)        → ShipmentResult
    create_reverse_pickup(request)  → ShipmentResult
    track(awb)                      → CarrierUpdate
    parse_webhook(payload)          → CarrierUpdate
    verify_webhook_secret(header)   → bool

Carrier status text is mapped onto the forward order lifecycle by
map_carrier_status(). Cancellation and return-to-origin scans do not
move an order; they are surfaced as anomalies for an operator.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from core.commands.rejection import ReasonCode
from core.config import StorefrontConfig
from core.errors import ValidationError
from core.primitives.money import money_str
from integration.adapters import PermanentError, send, verify_shared_secret

logger = logging.getLogger("evolv.integration")

SYSTEM_ID = "delhivery"

TRACKING_URL_TEMPLATE = "https://www.delhivery.com/track/package/{awb}"

CREATE_PATH = "/api/cmu/create.json"
TRACK_PATH = "/api/v1/packages/json/"


# ══════════════════════════════════════════════════════════════
# VALUE TYPES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ShipmentRequest:
    """
    One package. For a reverse pickup the address is where the parcel
    is collected from; otherwise it is the delivery address.
    """

    reference: str
    name: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    declared_value: Decimal
    products_desc: str
    invoice_number: str
    invoice_date: str
    is_reverse: bool = False


@dataclass(frozen=True)
class ShipmentResult:
    shipment_id: str
    awb: str
    tracking_url: str

    def to_dict(self) -> dict:
        return {"shipment_id": self.shipment_id, "awb": self.awb, "tracking_url": self.tracking_url}


@dataclass(frozen=True)
class CarrierUpdate:
    awb: str
    raw_status: str
    location: str = ""


@dataclass(frozen=True)
class MappedStatus:
    """status is None when the scan does not move the order."""

    status: Optional[str]
    anomaly: bool = False


# ══════════════════════════════════════════════════════════════
# STATUS MAPPING
# ══════════════════════════════════════════════════════════════

_ANOMALY_MARKERS = ("cancel", "return", "rejected", "undeliver", "not delivered", "lost")
_ANOMALY_CODES = re.compile(r"\b(rto|rts)\b")
_DELIVERED = re.compile(r"\bdelivered\b")
_OUT_FOR_DELIVERY_MARKERS = ("out for delivery", "out_for_delivery", "for delivery", "ofd")
_SHIPPED_MARKERS = ("picked", "transit", "dispatched", "handed")
_PROCESSING_MARKERS = ("manifest", "packed", "bagged")


def map_carrier_status(raw_status: Optional[str]) -> MappedStatus:
    text = " ".join(str(raw_status or "").lower().split())
    if not text:
        return MappedStatus(status=None)
    if any(marker in text for marker in _ANOMALY_MARKERS) or _ANOMALY_CODES.search(text):
        return MappedStatus(status=None, anomaly=True)
    if any(marker in text for marker in _OUT_FOR_DELIVERY_MARKERS):
        return MappedStatus(status="out_for_delivery")
    if _DELIVERED.search(text):
        return MappedStatus(status="delivered")
    if any(marker in text for marker in _SHIPPED_MARKERS):
        return MappedStatus(status="shipped")
    if any(marker in text for marker in _PROCESSING_MARKERS):
        return MappedStatus(status="processing")
    return MappedStatus(status=None)


# ══════════════════════════════════════════════════════════════
# PAYLOAD EXTRACTION
# ══════════════════════════════════════════════════════════════

def _first_package(payload: Dict[str, Any]) -> Dict[str, Any]:
    packages = payload.get("packages")
    if isinstance(packages, list) and packages and isinstance(packages[0], dict):
        return packages[0]
    return {}


def extract_awb(payload: Dict[str, Any]) -> Optional[str]:
    shipment = payload.get("Shipment") or {}
    candidates = (
        payload.get("awb"),
        (payload.get("data") or {}).get("awb"),
        (payload.get("package") or {}).get("awb"),
        _first_package(payload).get("awb"),
        shipment.get("AWB"),
    )
    for value in candidates:
        if value:
            return str(value)
    return None


def extract_status(payload: Dict[str, Any]) -> str:
    shipment_status = (payload.get("Shipment") or {}).get("Status") or {}
    candidates = (
        payload.get("status"),
        payload.get("current_status"),
        (payload.get("data") or {}).get("current_status"),
        _first_package(payload).get("current_status"),
        shipment_status.get("Status") if isinstance(shipment_status, dict) else None,
    )
    for value in candidates:
        if value and isinstance(value, str):
            return value
    return ""


def sanitize_phone(raw: str) -> str:
    """Reduce to a 10-digit Indian mobile number where possible."""
    digits = re.sub(r"\D+", "", str(raw or ""))
    if len(digits) >= 10:
        return digits[-10:]
    return digits


# ══════════════════════════════════════════════════════════════
# CLIENT
# ══════════════════════════════════════════════════════════════

class DelhiveryCarrier:

    def __init__(
        self,
        config: StorefrontConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._pickup_location = config.carrier_pickup_location
        self._webhook_secret = config.carrier_webhook_secret
        if not config.carrier_api_token:
            logger.error("Carrier API token not configured")
        self._client = httpx.Client(
            base_url=config.carrier_base_url,
            headers={"Authorization": f"Token {config.carrier_api_token}"},
            timeout=config.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ── Shipments ─────────────────────────────────────────────

    def _shipment_body(self, request: ShipmentRequest) -> dict:
        return {
            "client_order_id": request.reference,
            "name": request.name,
            "add": request.street,
            "city": request.city,
            "state": request.state,
            "pin": request.pincode,
            "country": "India",
            "phone": sanitize_phone(request.phone),
            "payment_mode": "Pickup" if request.is_reverse else "Prepaid",
            "total_amount": money_str(request.declared_value),
            "cod_amount": "0",
            "seller_inv": request.invoice_number,
            "seller_inv_date": request.invoice_date,
            "products_desc": request.products_desc,
        }

    def _create(self, request: ShipmentRequest) -> ShipmentResult:
        if len(sanitize_phone(request.phone)) < 10:
            raise PermanentError(
                f"Missing or invalid phone for shipment {request.reference}.", SYSTEM_ID,
            )
        data_field = json.dumps({
            "pickup_location": {"name": self._pickup_location},
            "shipments": [self._shipment_body(request)],
        })
        response = send(
            self._client, SYSTEM_ID, "POST", CREATE_PATH,
            params={"format": "json"},
            data={"format": "json", "data": data_field},
        )
        body = response.json()
        packages = body.get("packages") or []
        package = packages[0] if packages else {}
        waybill = package.get("waybill") or package.get("awb") or ""
        if body.get("success") is not True or str(package.get("status", "")).lower() != "success" or not waybill:
            remarks = package.get("remarks") or body.get("rmk") or "package not accepted"
            logger.error("Carrier rejected shipment %s: %s", request.reference, remarks)
            raise PermanentError(f"Carrier rejected shipment {request.reference}: {remarks}", SYSTEM_ID)
        logger.info("Carrier accepted shipment %s with AWB %s", request.reference, waybill)
        return ShipmentResult(
            shipment_id=str(package.get("refnum") or request.reference),
            awb=str(waybill),
            tracking_url=TRACKING_URL_TEMPLATE.format(awb=waybill),
        )

    def create_shipment(self, request: ShipmentRequest) -> ShipmentResult:
        return self._create(request)

    def create_reverse_pickup(self, request: ShipmentRequest) -> ShipmentResult:
        if not request.is_reverse:
            raise ValueError("Reverse pickup requests must set is_reverse=True.")
        return self._create(request)

    # ── Tracking ──────────────────────────────────────────────

    def track(self, awb: str) -> CarrierUpdate:
        body = send(self._client, SYSTEM_ID, "GET", TRACK_PATH, params={"waybill": awb}).json()
        shipments = body.get("ShipmentData") or []
        payload = shipments[0] if shipments else body
        return CarrierUpdate(awb=awb, raw_status=extract_status(payload))

    def parse_webhook(self, payload: Dict[str, Any]) -> CarrierUpdate:
        awb = extract_awb(payload)
        if not awb:
            logger.warning("Carrier webhook received without AWB")
            raise ValidationError.build(
                ReasonCode.INVALID_REQUEST, "Missing AWB.", "DelhiveryCarrier.parse_webhook",
            )
        return CarrierUpdate(awb=awb, raw_status=extract_status(payload))

    def verify_webhook_secret(self, presented: Optional[str]) -> bool:
        return verify_shared_secret(presented or "", self._webhook_secret)

    map_status = staticmethod(map_carrier_status)
