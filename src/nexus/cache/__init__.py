"""
Local cache of registry data.
"""

from nexus.cache.store import CacheStore

__all__ = ["CacheStore"]
