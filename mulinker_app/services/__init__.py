"""
mulinker Services Module

Provides the long-lived services behind the API:
- EnrichmentService: session registry, background enrichment and review
"""

from .enrichment_service import EnrichmentService, SUPPORTED_TARGETS

__all__ = ['EnrichmentService', 'SUPPORTED_TARGETS']
