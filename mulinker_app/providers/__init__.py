"""
Catalog search clients.
"""

from .base import AdaptiveRateLimiter, BaseSearchClient, RateLimiterState
from .mangaupdates import MangaUpdatesClient

__all__ = ['AdaptiveRateLimiter', 'BaseSearchClient', 'RateLimiterState', 'MangaUpdatesClient']
