"""
Evolv HTTP API Auth - Public API
================================
"""

from core.http_api.auth.provider import (
    AuthPrincipal,
    AuthProvider,
    InMemoryAuthProvider,
)
from core.http_api.auth.resolver import (
    HEADER_API_KEY,
    normalize_headers,
    resolve_admin_principal,
    resolve_auth_principal,
)

__all__ = [
    "AuthPrincipal",
    "AuthProvider",
    "HEADER_API_KEY",
    "InMemoryAuthProvider",
    "normalize_headers",
    "resolve_admin_principal",
    "resolve_auth_principal",
]
