"""
Evolv Core Config — Public API
"""

from core.config.settings import StorefrontConfig

__all__ = [
    "StorefrontConfig",
]
