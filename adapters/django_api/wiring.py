"""
Evolv Django Adapter Wiring
===========================
Constructs StorefrontDependencies for local/staging live runs.

This module is adapter-only glue:
- one shared lock registry and event bus for every engine
- gateway and carrier clients built from settings.STOREFRONT
- in-memory repositories, catalog and promo codes seeded from
  settings.STOREFRONT_CATALOG / settings.STOREFRONT_PROMO_CODES
"""

from __future__ import annotations

import threading
from typing import Any, Iterable

from django.conf import settings

from core.commands.base import ACTOR_ADMIN, ACTOR_CUSTOMER
from core.concurrency import KeyedLockRegistry
from core.config import StorefrontConfig
from core.events import EventBus
from core.http_api.auth import AuthPrincipal, InMemoryAuthProvider
from core.http_api.dependencies import StorefrontDependencies
from core.time import SystemClock
from engines.discount import DiscountResolver, PromoCode, PromoCodeStore
from engines.exchange import ExchangeRepository, ExchangeService
from engines.loyalty import LoyaltyService
from engines.orders import (
    CatalogProduct,
    FulfillmentService,
    InMemoryCatalog,
    OrderLifecycleService,
    OrderRepository,
    RefundService,
    ShipmentTrackingService,
)
from integration.carrier import DelhiveryCarrier
from integration.notifications import DjangoMailNotifier, register_notifications
from integration.payment_gateway import RazorpayGateway


DEV_ADMIN_API_KEY = "dev-admin-key"
DEV_CUSTOMER_API_KEY = "dev-customer-key"

_DEV_ADMIN_ACTOR_ID = "live-admin-user"
_DEV_CUSTOMER_ACTOR_ID = "live-customer-user"

_DEPENDENCIES_LOCK = threading.Lock()
_DEPENDENCIES: StorefrontDependencies | None = None


def _build_auth_provider() -> InMemoryAuthProvider:
    configured = getattr(settings, "STOREFRONT_API_KEYS", None)
    if configured:
        return InMemoryAuthProvider.from_mapping(configured)
    return InMemoryAuthProvider(
        {
            DEV_ADMIN_API_KEY: AuthPrincipal(
                actor_id=_DEV_ADMIN_ACTOR_ID, actor_type=ACTOR_ADMIN,
            ),
            DEV_CUSTOMER_API_KEY: AuthPrincipal(
                actor_id=_DEV_CUSTOMER_ACTOR_ID, actor_type=ACTOR_CUSTOMER,
            ),
        }
    )


def _catalog_product(raw: dict[str, Any]) -> CatalogProduct:
    stock = {
        (str(entry.get("size", "")), str(entry.get("color", ""))): int(entry["quantity"])
        for entry in raw.get("stock", ())
    }
    return CatalogProduct(
        product_id=str(raw["product_id"]),
        name=str(raw.get("name", "")),
        price=str(raw["price"]),
        stock=stock,
        active=bool(raw.get("active", True)),
    )


def _promo_code(raw: dict[str, Any]) -> PromoCode:
    return PromoCode(
        code=raw["code"],
        discount_type=raw["discount_type"],
        discount_value=str(raw["discount_value"]),
        description=raw.get("description", ""),
        min_order_value=str(raw.get("min_order_value", "0")),
        max_discount=None if raw.get("max_discount") is None else str(raw["max_discount"]),
        usage_limit=raw.get("usage_limit"),
        active=bool(raw.get("active", True)),
    )


def _seed(entries: Iterable[dict[str, Any]], factory) -> list:
    return [factory(entry) for entry in entries or ()]


def _create_dependencies() -> StorefrontDependencies:
    config = StorefrontConfig.from_django_settings()
    clock = SystemClock()
    locks = KeyedLockRegistry()
    bus = EventBus()
    retry_policy = config.retry_policy

    register_notifications(bus, DjangoMailNotifier(config.notification_sender))

    gateway = RazorpayGateway(config)
    carrier = DelhiveryCarrier(config)
    orders = OrderRepository()
    promo_store = PromoCodeStore(
        _seed(getattr(settings, "STOREFRONT_PROMO_CODES", ()), _promo_code)
    )
    catalog = InMemoryCatalog(
        _seed(getattr(settings, "STOREFRONT_CATALOG", ()), _catalog_product)
    )
    resolver = DiscountResolver(promo_store, clock=clock)
    loyalty = LoyaltyService(event_bus=bus, clock=clock)

    shared = dict(event_bus=bus, clock=clock, locks=locks, retry_policy=retry_policy)
    fulfillment = FulfillmentService(orders, carrier, **shared)
    lifecycle = OrderLifecycleService(
        orders,
        catalog=catalog,
        discount_resolver=resolver,
        promo_store=promo_store,
        loyalty=loyalty,
        gateway=gateway,
        fulfillment=fulfillment,
        **shared,
    )
    refunds = RefundService(orders, gateway, **shared)
    exchanges = ExchangeService(ExchangeRepository(), orders, carrier, refunds, **shared)
    tracking = ShipmentTrackingService(orders, lifecycle, carrier, clock=clock)

    return StorefrontDependencies(
        lifecycle=lifecycle,
        fulfillment=fulfillment,
        tracking=tracking,
        refunds=refunds,
        exchanges=exchanges,
        discount_resolver=resolver,
        loyalty=loyalty,
        auth_provider=_build_auth_provider(),
        clock=clock,
    )


def build_dependencies() -> StorefrontDependencies:
    """
    Lazy singleton wiring for adapter runtime.
    """
    global _DEPENDENCIES
    with _DEPENDENCIES_LOCK:
        if _DEPENDENCIES is None:
            _DEPENDENCIES = _create_dependencies()
        return _DEPENDENCIES


def reset_dependencies() -> None:
    """Drop the cached wiring so the next request rebuilds it from settings."""
    global _DEPENDENCIES
    with _DEPENDENCIES_LOCK:
        _DEPENDENCIES = None
