"""Relational, vector and typeahead search over gallery images."""

from galleria.search.filters import SearchQuery
from galleria.search.query_builder import FilterQueryBuilder
from galleria.search.results import Pagination, ScoredImage, SearchResult, VectorSearchResult
from galleria.search.suggestions import SearchSuggestionEngine
from galleria.search.vector import VectorSearchEngine

__all__ = [
    "FilterQueryBuilder",
    "Pagination",
    "ScoredImage",
    "SearchQuery",
    "SearchResult",
    "SearchSuggestionEngine",
    "VectorSearchEngine",
    "VectorSearchResult",
]
