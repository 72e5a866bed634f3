"""
Evolv Django Adapter — App Configuration
========================================
Registers the adapter so Django discovers its management commands:

    expire_pending_orders     cancel orders unpaid past the payment window
    reconcile_shipments       poll the carrier for stale in-flight shipments
    retry_pending_shipments   retry shipments left in retry_pending
"""

from django.apps import AppConfig


class StorefrontApiConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "adapters.django_api"
    label = "storefront_api"
    verbose_name = "Evolv Storefront API"
