"""
Query cache abstractions refreshed by live updates.
"""

from .query_cache import CacheEntry, CacheFacade, QueryCache  # noqa: F401
