"""
Core utilities: exceptions, reconnect backoff, signature dedup, shared cache.
"""

from solwatch.core.backoff import Backoff
from solwatch.core.cache import NEVER_EXPIRE, AsyncCache, ExpiryPolicy
from solwatch.core.dedup import DedupCache

__all__ = ["AsyncCache", "Backoff", "DedupCache", "ExpiryPolicy", "NEVER_EXPIRE"]
