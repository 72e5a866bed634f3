"""
Evolv Django adapter URL routing.
"""

from django.urls import path

from adapters.django_api import views


urlpatterns = [
    path("pricing/preview", views.pricing_preview_view),
    path("discounts/promo", views.apply_promo_view),
    path("discounts/points", views.apply_points_view),
    path("orders", views.orders_create_view),
    path("orders/<str:order_number>", views.order_detail_view),
    path("orders/<str:order_number>/cancel", views.order_cancel_view),
    path(
        "orders/<str:order_number>/confirm-delivery",
        views.order_confirm_delivery_view,
    ),
    path("orders/<str:order_number>/status", views.order_status_view),
    path("orders/<str:order_number>/refund", views.order_refund_view),
    path(
        "orders/<str:order_number>/retry-shipment",
        views.order_retry_shipment_view,
    ),
    path("payments/verify", views.payment_verify_view),
    path("payments/failure", views.payment_failure_view),
    path("shipping/webhook", views.shipping_webhook_view),
    path("exchanges", views.exchanges_create_view),
    path(
        "exchanges/eligibility/<str:order_number>",
        views.exchange_eligibility_view,
    ),
    path("exchanges/<str:exchange_id>", views.exchange_detail_view),
    path("exchanges/<str:exchange_id>/approve", views.exchange_approve_view),
    path("exchanges/<str:exchange_id>/reject", views.exchange_reject_view),
    path(
        "exchanges/<str:exchange_id>/reverse-received",
        views.exchange_reverse_received_view,
    ),
]
