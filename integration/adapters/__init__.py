"""
Evolv Integration — Adapter Utilities
=====================================
Shared infrastructure for the payment gateway and carrier clients.

Doctrine: adapters are stateless translators. The gateway and the
carrier never write order state directly; they return values or
deliver callbacks that the engines turn into verified transitions.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any, Dict

import httpx

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import ExternalServiceError

logger = logging.getLogger("evolv.integration")


# ══════════════════════════════════════════════════════════════
# ERROR HIERARCHY
# ══════════════════════════════════════════════════════════════

def _reason(message: str, system_id: str, code: str = ReasonCode.EXTERNAL_SERVICE_FAILED) -> RejectionReason:
    return RejectionReason(code=code, message=message, policy_name=system_id or "integration")


class TransientError(ExternalServiceError):
    """Temporary failure: retryable with backoff."""

    def __init__(self, message: str, system_id: str = ""):
        super().__init__(_reason(message, system_id), system_id=system_id, retryable=True)


class PermanentError(ExternalServiceError):
    """The collaborator refused the request. Retrying will not help."""

    def __init__(self, message: str, system_id: str = ""):
        super().__init__(_reason(message, system_id), system_id=system_id, retryable=False)


class AuthenticationError(ExternalServiceError):
    """Credentials or signature rejected."""

    def __init__(self, message: str, system_id: str = ""):
        super().__init__(_reason(message, system_id), system_id=system_id, retryable=False)


# ══════════════════════════════════════════════════════════════
# HTTP RESPONSE CLASSIFICATION
# ══════════════════════════════════════════════════════════════

def raise_for_response(response: httpx.Response, system_id: str) -> None:
    """
    Map an HTTP error status onto the error hierarchy.

    401/403 → AuthenticationError, 408/429/5xx → TransientError,
    other 4xx → PermanentError.
    """
    status = response.status_code
    if status < 400:
        return
    detail = response.text[:300]
    if status in (401, 403):
        raise AuthenticationError(f"{system_id} rejected credentials ({status}).", system_id)
    if status in (408, 429) or status >= 500:
        raise TransientError(f"{system_id} returned {status}: {detail}", system_id)
    raise PermanentError(f"{system_id} returned {status}: {detail}", system_id)


def send(client: httpx.Client, system_id: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Issue a request, translating transport failures into TransientError."""
    try:
        response = client.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.error("%s timeout on %s %s: %s", system_id, method, url, exc)
        raise TransientError(f"{system_id} request timed out.", system_id) from exc
    except httpx.TransportError as exc:
        logger.error("%s connection error on %s %s: %s", system_id, method, url, exc)
        raise TransientError(f"Could not connect to {system_id}.", system_id) from exc
    raise_for_response(response, system_id)
    return response


# ══════════════════════════════════════════════════════════════
# PAYLOAD HASH (idempotency)
# ══════════════════════════════════════════════════════════════

def compute_payload_hash(payload: Dict[str, Any]) -> str:
    """Deterministic hash of a webhook payload for duplicate detection."""
    normalized = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


# ══════════════════════════════════════════════════════════════
# SIGNATURE VERIFICATION
# ══════════════════════════════════════════════════════════════

def verify_hmac_signature(
    payload_bytes: bytes,
    signature: str,
    secret: str,
    algorithm: str = "sha256",
) -> bool:
    """
    Verify an HMAC hex digest over `payload_bytes`.

    Returns True if the signature matches, False otherwise.
    """
    if not secret or not signature:
        return False
    if algorithm == "sha256":
        digest = hashlib.sha256
    elif algorithm == "sha1":
        digest = hashlib.sha1
    else:
        return False
    expected = hmac.new(secret.encode("utf-8"), payload_bytes, digest).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_shared_secret(presented: str, secret: str) -> bool:
    """Constant-time comparison of a shared-secret header."""
    if not secret:
        return False
    return hmac.compare_digest(str(presented or ""), secret)
