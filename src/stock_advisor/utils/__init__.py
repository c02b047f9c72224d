"""Utility modules."""

from stock_advisor.utils.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_fibonacci_levels,
    calculate_macd,
    calculate_obv,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    detect_macd_divergence,
)
from stock_advisor.utils.normalize import (
    build_signal_log_entry,
    canonical_dumps,
    normalize_recommendation,
)
from stock_advisor.utils.ohlcv import standardize_ohlcv
from stock_advisor.utils.provenance import build_meta
from stock_advisor.utils.validators import RecommendationParams, check_rule_expr

__all__ = [
    "calculate_adx",
    "calculate_atr",
    "calculate_bollinger_bands",
    "calculate_ema",
    "calculate_fibonacci_levels",
    "calculate_macd",
    "calculate_obv",
    "calculate_rsi",
    "calculate_sma",
    "calculate_stochastic",
    "detect_macd_divergence",
    "build_signal_log_entry",
    "canonical_dumps",
    "normalize_recommendation",
    "standardize_ohlcv",
    "build_meta",
    "RecommendationParams",
    "check_rule_expr",
]
