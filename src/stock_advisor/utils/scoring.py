"""Shared helpers for building score components."""

import math
from collections.abc import Iterable

from stock_advisor.models import ScoreComponent, Sentiment

SENTIMENT_BULLISH_MIN = 65
SENTIMENT_BEARISH_MAX = 35


def sentiment_from_percent(percent: float) -> Sentiment:
    """bullish at >=65%, bearish at <=35%, otherwise neutral."""
    if percent >= SENTIMENT_BULLISH_MIN:
        return "bullish"
    if percent <= SENTIMENT_BEARISH_MAX:
        return "bearish"
    return "neutral"


def build_component(
    category: str,
    raw_score: float,
    raw_max: float,
    details: Iterable[str] = (),
) -> ScoreComponent:
    """
    Clamp a raw score to [0, raw_max] and derive percent and sentiment.

    Args:
        category: Component name (e.g., "Fundamentals")
        raw_score: Summed raw points (may overshoot before clamping)
        raw_max: Declared maximum raw points
        details: Human-readable scoring notes

    Returns:
        ScoreComponent with percent == raw_score / raw_max * 100
    """
    raw = min(max(float(raw_score), 0.0), float(raw_max))
    percent = raw / raw_max * 100
    return ScoreComponent(
        category=category,
        raw_score=raw,
        raw_max=float(raw_max),
        percent=percent,
        sentiment=sentiment_from_percent(percent),
        details=tuple(details),
    )


def pct_change(value: float | None, base: float | None) -> float | None:
    """Percent difference of value over base, or None when undefined."""
    if value is None or base is None or base == 0:
        return None
    return (value - base) / base * 100


def round_half_up(x: float, ndigits: int = 0) -> float:
    """Round halves up (2.5 -> 3, -2.5 -> -2) rather than to the nearest even digit."""
    factor = 10**ndigits
    return math.floor(x * factor + 0.5) / factor
