"""Retrieval components."""

from .cache import QueryCache
from .search import HybridSearch, ResultType, SearchResult

__all__ = [
    "QueryCache",
    "HybridSearch",
    "ResultType",
    "SearchResult",
]
