"""
Evolv Integration Layer — Public API
====================================
Clients for the external systems an order touches.

Doctrine: external systems NEVER write order state directly. The
gateway and the carrier return values or deliver callbacks, and the
engines turn those into verified transitions.

    payment_gateway   Razorpay order / payment / refund client
    carrier           Delhivery shipment / tracking / webhook client
    notifications     customer e-mail dispatch off the event bus
"""

from integration.adapters import (
    AuthenticationError,
    PermanentError,
    TransientError,
    compute_payload_hash,
    verify_hmac_signature,
    verify_shared_secret,
)

__all__ = [
    "AuthenticationError",
    "PermanentError",
    "TransientError",
    "compute_payload_hash",
    "verify_hmac_signature",
    "verify_shared_secret",
]
