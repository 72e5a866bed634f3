"""
Tests for core.http_api.auth and core.http_api.errors — API-key
principals and the transport error mapping.
"""

import pytest

from core.commands.rejection import ReasonCode, RejectionReason
from core.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from core.http_api import engine_error_response
from core.http_api.auth import (
    AuthPrincipal,
    InMemoryAuthProvider,
    resolve_admin_principal,
    resolve_auth_principal,
)
from integration.adapters import TransientError

PROVIDER = InMemoryAuthProvider.from_mapping({
    "admin-key": {"actor_id": "admin-1", "actor_type": "admin"},
    "cust-key": {"actor_id": "cust-1", "actor_type": "CUSTOMER"},
})


# ── Principals ───────────────────────────────────────────────

class TestPrincipalResolution:
    def test_header_name_is_case_insensitive(self):
        principal = resolve_auth_principal({"X-API-Key": " cust-key "}, PROVIDER)
        assert principal == AuthPrincipal(actor_id="cust-1", actor_type="CUSTOMER")
        assert not principal.is_admin

    def test_actor_type_normalized(self):
        assert resolve_auth_principal({"x-api-key": "admin-key"}, PROVIDER).is_admin

    def test_missing_key(self):
        reason = resolve_auth_principal({}, PROVIDER)
        assert isinstance(reason, RejectionReason)
        assert reason.code == ReasonCode.AUTH_REQUIRED

    def test_unknown_key(self):
        assert resolve_auth_principal({"x-api-key": "nope"}, PROVIDER).code == ReasonCode.AUTH_INVALID

    def test_customer_is_not_admin(self):
        assert resolve_admin_principal({"x-api-key": "cust-key"}, PROVIDER).code == ReasonCode.FORBIDDEN

    def test_unknown_actor_type_rejected(self):
        with pytest.raises(ValueError):
            AuthPrincipal(actor_id="x", actor_type="CARRIER")

    def test_blank_api_key_rejected(self):
        with pytest.raises(ValueError):
            InMemoryAuthProvider({" ": AuthPrincipal("cust-1", "CUSTOMER")})


# ── Error Mapping ────────────────────────────────────────────

def reason(code):
    return RejectionReason(code=code, message="nope", policy_name="test_policy")


class TestEngineErrorResponse:
    @pytest.mark.parametrize("error,status", [
        (ValidationError(reason(ReasonCode.PRICE_MISMATCH)), 400),
        (ValidationError(reason(ReasonCode.WEBHOOK_UNAUTHORIZED)), 401),
        (NotFoundError(reason(ReasonCode.ORDER_NOT_FOUND)), 404),
        (ConflictError(reason(ReasonCode.OUT_OF_ORDER_EVENT)), 409),
        (ExpiredError(reason(ReasonCode.PAYMENT_WINDOW_EXPIRED)), 410),
        (TransientError("timeout", "carrier"), 502),
    ])
    def test_status_codes(self, error, status):
        assert engine_error_response(error)[0] == status

    def test_conflict_carries_current_state(self):
        error = ConflictError(reason(ReasonCode.ORDER_CANCELLED), current_state={"status": "cancelled"})
        status, body = engine_error_response(error)
        assert status == 409
        assert body["ok"] is False
        assert body["error"]["code"] == ReasonCode.ORDER_CANCELLED
        assert body["error"]["details"]["current_state"] == {"status": "cancelled"}
        assert body["error"]["details"]["policy_name"] == "test_policy"

    def test_external_error_details(self):
        _, body = engine_error_response(TransientError("timeout", "razorpay"))
        assert body["error"]["details"]["system_id"] == "razorpay"
        assert body["error"]["details"]["retryable"] is True
