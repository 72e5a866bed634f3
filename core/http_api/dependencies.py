"""
Evolv HTTP API - Dependencies
=============================
Services and providers injected into the framework-agnostic handlers.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.http_api.auth.provider import AuthProvider
from core.time import Clock


@dataclass(frozen=True)
class StorefrontDependencies:
    lifecycle: object
    fulfillment: object
    tracking: object
    refunds: object
    exchanges: object
    discount_resolver: object
    loyalty: object
    auth_provider: AuthProvider
    clock: Clock

    def now(self):
        return self.clock.now_utc()
