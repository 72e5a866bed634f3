"""
Evolv Concurrency — Public API
"""

from core.concurrency.locks import KeyedLockRegistry, VersionedStore

__all__ = [
    "KeyedLockRegistry",
    "VersionedStore",
]
