"""AI search backends."""

from .client import PerplexitySearchClient, PlaceLoreError, SearchBackend, SearchConfig, TransportError

__all__ = ["PerplexitySearchClient", "PlaceLoreError", "SearchBackend", "SearchConfig", "TransportError"]
