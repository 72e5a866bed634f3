"""
Evolv Core Config — Deployment Settings
========================================
Collaborator credentials and operational knobs, read from the
Django `STOREFRONT` settings dict (which itself reads the environment).

Business rules (GST rate, home state, shipping fee, windows, tiers)
are NOT configuration. They are named constants in their engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from core.resilience import RetryPolicy


@dataclass(frozen=True)
class StorefrontConfig:
    gateway_key_id: str = ""
    gateway_key_secret: str = ""
    gateway_webhook_secret: str = ""
    gateway_base_url: str = "https://api.razorpay.com/v1"
    carrier_api_token: str = ""
    carrier_base_url: str = "https://track.delhivery.com"
    carrier_pickup_location: str = ""
    carrier_webhook_secret: str = ""
    notification_sender: str = "orders@evolv.example"
    http_timeout_seconds: float = 15.0
    retry_max_retries: int = 3
    retry_backoff_seconds: float = 2.0

    def __post_init__(self):
        if self.http_timeout_seconds <= 0:
            raise ValueError("http_timeout_seconds must be positive.")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            backoff_base_seconds=self.retry_backoff_seconds,
        )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "StorefrontConfig":
        known = {name: values[name] for name in cls.__dataclass_fields__ if name in values}
        if "http_timeout_seconds" in known:
            known["http_timeout_seconds"] = float(known["http_timeout_seconds"])
        if "retry_max_retries" in known:
            known["retry_max_retries"] = int(known["retry_max_retries"])
        if "retry_backoff_seconds" in known:
            known["retry_backoff_seconds"] = float(known["retry_backoff_seconds"])
        return cls(**known)

    @classmethod
    def from_django_settings(cls) -> "StorefrontConfig":
        from django.conf import settings

        return cls.from_mapping(getattr(settings, "STOREFRONT", {}))
