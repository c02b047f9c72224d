"""Scoring, signal and recommendation tools."""

from stock_advisor.tools.analysts import resolve_target_price, score_analysts
from stock_advisor.tools.analyze import (
    generate_all_recommendations,
    generate_recommendation,
    generate_recommendation_cached,
)
from stock_advisor.tools.conviction import calculate_conviction
from stock_advisor.tools.dip import calculate_dip_score, check_dip_quality
from stock_advisor.tools.fundamentals import score_fundamentals
from stock_advisor.tools.news import (
    filter_insider_sentiment,
    score_insider,
    score_news,
    score_news_insider,
)
from stock_advisor.tools.position import score_position
from stock_advisor.tools.signals import (
    SIGNAL_CATEGORIES,
    SIGNAL_PRIORITIES,
    generate_signals,
    get_display_signals,
    has_actionable_signal,
)
from stock_advisor.tools.strategy import calculate_buy_strategy, calculate_exit_strategy
from stock_advisor.tools.technicals import build_technical_snapshot, score_technicals

__all__ = [
    "SIGNAL_CATEGORIES",
    "SIGNAL_PRIORITIES",
    "build_technical_snapshot",
    "calculate_buy_strategy",
    "calculate_conviction",
    "calculate_dip_score",
    "calculate_exit_strategy",
    "check_dip_quality",
    "filter_insider_sentiment",
    "generate_all_recommendations",
    "generate_recommendation",
    "generate_recommendation_cached",
    "generate_signals",
    "get_display_signals",
    "has_actionable_signal",
    "resolve_target_price",
    "score_analysts",
    "score_fundamentals",
    "score_insider",
    "score_news",
    "score_news_insider",
    "score_position",
    "score_technicals",
]
