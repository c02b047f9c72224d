"""Data layer for caching computed recommendations."""

from stock_advisor.data.cache import RecommendationCache

__all__ = [
    "RecommendationCache",
]
