"""Validation utilities and parameter classes."""

import operator
from collections.abc import Callable
from dataclasses import dataclass

# Allowlists for cache key stability
VALID_INSIDER_RANGES = {1, 2, 3, 6, 12}
VALID_MODES = {"holdings", "research"}


@dataclass(frozen=True)
class RecommendationParams:
    """Immutable recommendation parameters. Used for cache key + mode selection."""

    ticker: str
    as_of: str
    insider_time_range: int = 3
    mode: str = "research"
    input_hash: str | None = None

    def __post_init__(self) -> None:
        # Normalize ticker: uppercase, strip whitespace
        ticker = self.ticker.upper().strip()
        if not ticker:
            raise ValueError("Ticker must not be empty")
        object.__setattr__(self, "ticker", ticker)

        mode = self.mode.lower().strip()
        if mode not in VALID_MODES:
            raise ValueError(f"Invalid mode '{self.mode}'. Must be one of: {VALID_MODES}")
        object.__setattr__(self, "mode", mode)

        if self.insider_time_range not in VALID_INSIDER_RANGES:
            raise ValueError(
                f"Invalid insider_time_range {self.insider_time_range}. "
                f"Must be one of: {sorted(VALID_INSIDER_RANGES)}"
            )

    def to_cache_key(self) -> str:
        """Canonical key for caching."""
        key = f"reco://{self.ticker}/{self.as_of}/{self.insider_time_range}m/{self.mode}"
        if self.input_hash:
            key = f"{key}/{self.input_hash}"
        return key


def check_rule_expr(
    value1: float | None,
    value2: float | None,
    comparator: Callable[[float, float], bool] = operator.gt,
) -> bool | None:
    """
    Check a rule comparing two values with nullable boolean semantics.

    If either value is None, returns None (not False).

    Args:
        value1: First value (may be None)
        value2: Second value (may be None)
        comparator: Comparison function (default: operator.gt)

    Returns:
        True/False if both values are not None, None otherwise
    """
    if value1 is None or value2 is None:
        return None
    return comparator(value1, value2)
