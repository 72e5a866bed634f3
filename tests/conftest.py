"""Shared stub collaborators and a fully wired storefront for engine tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockRegistry
from core.errors import ValidationError
from core.events import EventBus
from core.http_api import StorefrontDependencies
from core.http_api.auth import InMemoryAuthProvider
from core.primitives.money import to_minor_units
from core.resilience import RetryPolicy
from core.time import FixedClock
from engines.discount import DiscountResolver, PromoCode, PromoCodeStore
from engines.exchange import ExchangeRepository, ExchangeService
from engines.loyalty import LoyaltyService
from engines.orders import (
    Address,
    CatalogProduct,
    ConfirmPaymentRequest,
    FulfillmentService,
    InMemoryCatalog,
    OrderLifecycleService,
    OrderRepository,
    PlaceOrderRequest,
    RefundService,
    ShipmentTrackingService,
)
from engines.pricing import CartLineItem
from integration.adapters import PermanentError, TransientError
from integration.carrier import (
    CarrierUpdate,
    ShipmentResult,
    extract_awb,
    extract_status,
    map_carrier_status,
)
from integration.payment_gateway import GatewayOrder, GatewayPayment, GatewayRefund

NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "hook-secret"


# ── Stub gateway ──────────────────────────────────────────────

class StubGateway:
    """In-memory payment gateway. Signatures are 'sig:<order>:<payment>'."""

    def __init__(self):
        self.orders = {}
        self.payments = {}
        self.refunds = {}
        self.create_errors = []
        self.refund_errors = []
        self.refund_status = "processed"
        self.refund_calls = []

    @staticmethod
    def sign(gateway_order_id, payment_id):
        return f"sig:{gateway_order_id}:{payment_id}"

    def capture(self, gateway_order_id, payment_id, amount_minor=None, status="captured"):
        if amount_minor is None:
            amount_minor = self.orders[gateway_order_id]
        self.payments[payment_id] = GatewayPayment(
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            amount_minor=amount_minor,
            status=status,
            method="upi",
        )

    def create_order(self, amount, currency, receipt):
        if self.create_errors:
            raise self.create_errors.pop(0)
        gateway_order_id = f"order_{receipt}"
        self.orders[gateway_order_id] = to_minor_units(amount)
        return GatewayOrder(
            gateway_order_id=gateway_order_id,
            key_id="rzp_test_key",
            amount_minor=to_minor_units(amount),
            currency=currency,
        )

    def verify_payment_signature(self, gateway_order_id, payment_id, signature):
        return signature == self.sign(gateway_order_id, payment_id)

    def fetch_payment(self, payment_id):
        return self.payments[payment_id]

    def create_refund(self, payment_id, amount, notes=None):
        self.refund_calls.append((payment_id, amount, notes))
        if self.refund_errors:
            raise self.refund_errors.pop(0)
        refund = GatewayRefund(
            refund_id=f"rfnd_{len(self.refund_calls)}",
            payment_id=payment_id,
            amount_minor=to_minor_units(amount),
            status=self.refund_status,
        )
        self.refunds[refund.refund_id] = refund
        return refund

    def fetch_refund(self, payment_id, refund_id):
        refund = self.refunds[refund_id]
        return GatewayRefund(
            refund_id=refund.refund_id,
            payment_id=payment_id,
            amount_minor=refund.amount_minor,
            status=self.refund_status,
        )


# ── Stub carrier ──────────────────────────────────────────────

class StubCarrier:
    """Books shipments with sequential AWBs; queued errors are raised first."""

    def __init__(self):
        self.shipments = []
        self.reverse_pickups = []
        self.errors = []
        self.tracking = {}

    def _book(self, request, bucket):
        if self.errors:
            raise self.errors.pop(0)
        bucket.append(request)
        awb = f"AWB{len(self.shipments) + len(self.reverse_pickups):04d}"
        return ShipmentResult(
            shipment_id=f"SHP-{request.reference}",
            awb=awb,
            tracking_url=f"https://track.example/{awb}",
        )

    def create_shipment(self, request):
        return self._book(request, self.shipments)

    def create_reverse_pickup(self, request):
        assert request.is_reverse
        return self._book(request, self.reverse_pickups)

    def track(self, awb):
        return CarrierUpdate(awb=awb, raw_status=self.tracking.get(awb, ""))

    def parse_webhook(self, payload):
        awb = extract_awb(payload)
        if not awb:
            raise ValidationError.build(ReasonCode.INVALID_REQUEST, "Missing AWB.", "StubCarrier")
        return CarrierUpdate(awb=awb, raw_status=extract_status(payload))

    def verify_webhook_secret(self, presented):
        return presented == WEBHOOK_SECRET

    map_status = staticmethod(map_carrier_status)


# ── Wired storefront ──────────────────────────────────────────

PRODUCTS = (
    CatalogProduct("TEE-1", "Linen Tee", Decimal("999.00"), {("M", "White"): 10, ("L", ""): 2}),
    CatalogProduct("DRESS-1", "Silk Dress", Decimal("2999.99"), {("S", "Red"): 5}),
    CatalogProduct("JKT-1", "Denim Jacket", Decimal("3000.00"), {("M", "Black"): 3}),
    CatalogProduct("OLD-1", "Retired Scarf", Decimal("499.00"), {("", ""): 4}, active=False),
)

PROMOS = (
    PromoCode("SAVE10", "percentage", Decimal("10"), description="10% off"),
    PromoCode("FLAT200", "fixed", Decimal("200"), min_order_value=Decimal("1500")),
    PromoCode("ONCE", "fixed", Decimal("50"), usage_limit=1),
    PromoCode("GONE", "percentage", Decimal("20"), valid_until=datetime(2026, 1, 1, tzinfo=timezone.utc)),
)


def address(state="Gujarat", **overrides):
    values = dict(
        first_name="Asha",
        last_name="Patel",
        email="asha@example.com",
        phone="+91 98765 43210",
        street="12 Ring Road",
        city="Surat",
        state=state,
        zip_code="395007",
    )
    values.update(overrides)
    return Address(**values)


class Storefront:
    """Every service over one clock, bus and lock registry."""

    def __init__(self, clock, gateway, carrier):
        self.clock = clock
        self.gateway = gateway
        self.carrier = carrier
        self.bus = EventBus()
        self.locks = KeyedLockRegistry()
        self.orders = OrderRepository()
        self.promos = PromoCodeStore(PROMOS)
        self.catalog = InMemoryCatalog(PRODUCTS)
        self.resolver = DiscountResolver(self.promos, clock=clock)
        self.loyalty = LoyaltyService(event_bus=self.bus, clock=clock)

        shared = dict(
            event_bus=self.bus,
            clock=clock,
            locks=self.locks,
            retry_policy=RetryPolicy(max_retries=2, backoff_base_seconds=0.0),
            sleep=lambda seconds: None,
        )
        self.fulfillment = FulfillmentService(self.orders, carrier, **shared)
        self.lifecycle = OrderLifecycleService(
            self.orders,
            catalog=self.catalog,
            discount_resolver=self.resolver,
            promo_store=self.promos,
            loyalty=self.loyalty,
            gateway=gateway,
            fulfillment=self.fulfillment,
            **shared,
        )
        self.refunds = RefundService(self.orders, gateway, **shared)
        self.exchange_repo = ExchangeRepository()
        self.exchanges = ExchangeService(self.exchange_repo, self.orders, carrier, self.refunds, **shared)
        self.tracking = ShipmentTrackingService(self.orders, self.lifecycle, carrier, clock=clock)

    # ── helpers ──

    def line(self, product_id="TEE-1", size="M", color="White", quantity=1):
        product = self.catalog.get_product(product_id)
        return CartLineItem(product_id, size, color, product.price, quantity, name=product.name)

    def place(self, customer_id="cust-1", items=None, state="Gujarat", promo_code=None, points=0,
              client_total=None):
        return self.lifecycle.place_order(PlaceOrderRequest(
            customer_id=customer_id,
            items=items or (self.line(),),
            shipping_address=address(state),
            issued_at=self.clock.now_utc(),
            promo_code=promo_code,
            points_to_redeem=points,
            client_total=client_total,
        ))

    def pay(self, order_number, payment_id=None, amount_minor=None):
        order = self.orders.get(order_number)
        gateway_order_id = order.payment.gateway_order_id
        payment_id = payment_id or f"pay_{order_number}"
        self.gateway.capture(gateway_order_id, payment_id, amount_minor)
        return self.lifecycle.confirm_payment(ConfirmPaymentRequest(
            order_number=order_number,
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
            signature=self.gateway.sign(gateway_order_id, payment_id),
            issued_at=self.clock.now_utc(),
        ))

    def scan(self, order_number, raw_status):
        awb = self.orders.get(order_number).fulfillment.awb
        return self.tracking.handle_webhook({"awb": awb, "status": raw_status}, WEBHOOK_SECRET)

    def paid_order(self, customer_id="cust-1", **kwargs):
        placed = self.place(customer_id, **kwargs)
        return self.pay(placed.order.order_number)

    def delivered_order(self, customer_id="cust-1", **kwargs):
        order = self.paid_order(customer_id, **kwargs)
        for raw in ("Manifested", "In Transit", "Delivered"):
            self.scan(order.order_number, raw)
        return self.orders.get(order.order_number)

    def seed_points(self, customer_id="cust-1", total=Decimal("10000")):
        """Bronze credit of floor(total × 0.02) points."""
        return self.loyalty.credit_order_points(customer_id, f"SEED-{customer_id}", total, "bronze")

    def events(self, event_type):
        return [e for e in self.bus.published if e.event_type == event_type]


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def carrier():
    return StubCarrier()


@pytest.fixture
def store(clock, gateway, carrier):
    return Storefront(clock, gateway, carrier)


@pytest.fixture
def transient():
    return lambda message="carrier timeout": TransientError(message, "stub")


@pytest.fixture
def permanent():
    return lambda message="rejected": PermanentError(message, "stub")


@pytest.fixture
def shipping_address():
    return address


API_KEYS = {
    "admin-key": {"actor_id": "admin-1", "actor_type": "ADMIN"},
    "cust-key": {"actor_id": "cust-1", "actor_type": "CUSTOMER"},
    "other-key": {"actor_id": "cust-2", "actor_type": "CUSTOMER"},
}


@pytest.fixture
def dependencies(store):
    """HTTP-facing dependencies over the wired storefront. Keys: admin-key, cust-key, other-key."""
    return StorefrontDependencies(
        lifecycle=store.lifecycle,
        fulfillment=store.fulfillment,
        tracking=store.tracking,
        refunds=store.refunds,
        exchanges=store.exchanges,
        discount_resolver=store.resolver,
        loyalty=store.loyalty,
        auth_provider=InMemoryAuthProvider.from_mapping(API_KEYS),
        clock=store.clock,
    )
