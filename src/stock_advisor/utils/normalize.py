"""Normalization utilities for deterministic, diff-stable output.

Recommendations are pure functions of their inputs, so identical inputs must
serialize to identical bytes. This module owns that contract:
1. Key ordering: sorted at every level
2. Tuples become lists; numpy scalars become Python scalars
3. NaN/inf sanitization: replaced with null for JSON safety
4. -0.0 becomes 0.0 (mathematically equal but different JSON repr)
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import fields
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from stock_advisor.utils.ohlcv import standardize_ohlcv

if TYPE_CHECKING:
    from stock_advisor.models import Recommendation, RecommendationInput

# Signal log format version - bump when the projection changes
SIGNAL_LOG_VERSION = "1.0.0"


def canonical_dumps(obj: Any) -> str:
    """Produce canonical JSON string with sorted keys and minimal separators.

    Uses allow_nan=False to fail fast if NaN/inf values slip through
    sanitization. This ensures JSON validity across all parsers.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def short_hash(obj: Any) -> str:
    """SHA-256 (first 16 hex chars) of the canonical JSON of a sanitized object."""
    canonical_json = canonical_dumps(_sanitize_nan_inf(obj))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()[:16]


# ---------------- Normalization helpers ----------------

def _is_nan_or_inf(x: Any) -> bool:
    """Check if value is NaN or inf, handling numpy types safely."""
    if isinstance(x, bool):
        return False
    try:
        # Works for float, numpy.float64, etc.
        return math.isnan(x) or math.isinf(x)
    except (TypeError, ValueError):
        # Not a numeric type that supports isnan/isinf
        return False


def _is_negative_zero(x: Any) -> bool:
    """Check if value is -0.0 (which creates diff noise)."""
    if not isinstance(x, float):
        return False
    return x == 0.0 and math.copysign(1.0, x) < 0


def _sanitize_nan_inf(obj: Any) -> Any:
    """Recursively replace NaN, inf, -inf with None and -0.0 with 0.0.

    Also converts tuples to lists and numpy scalars to Python scalars so the
    result is directly JSON-serializable.
    """
    if isinstance(obj, dict):
        return {k: _sanitize_nan_inf(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_sanitize_nan_inf(item) for item in obj]
    elif isinstance(obj, np.generic):
        return _sanitize_nan_inf(obj.item())
    elif _is_nan_or_inf(obj):
        return None
    elif _is_negative_zero(obj):
        return 0.0
    return obj


def normalize_recommendation(rec: Recommendation) -> dict[str, Any]:
    """
    Canonical dict view of a Recommendation.

    Args:
        rec: Recommendation to serialize

    Returns:
        Sanitized dict suitable for canonical JSON serialization
    """
    return _sanitize_nan_inf(rec.to_dict())


def recommendation_hash(rec: Recommendation) -> str:
    """Stable content hash of a Recommendation."""
    return short_hash(normalize_recommendation(rec))


def input_fingerprint(inp: RecommendationInput) -> str:
    """
    Content hash of everything a Recommendation is derived from.

    Price frames are standardized first so equivalent DataFrame and PriceBar
    inputs hash identically.
    """
    payload: dict[str, Any] = {}
    for f in fields(inp):
        value = getattr(inp, f.name)
        if f.name == "prices":
            if value is None:
                payload["prices"] = None
            else:
                frame = value if isinstance(value, pd.DataFrame) else list(value)
                payload["prices"] = standardize_ohlcv(frame).to_dict("records")
        elif f.name == "technicals":
            payload["technicals"] = value.to_dict() if value is not None else None
        elif hasattr(value, "__dataclass_fields__"):
            payload[f.name] = {k.name: getattr(value, k.name) for k in fields(value)}
        elif isinstance(value, tuple):
            payload[f.name] = [
                {k.name: getattr(item, k.name) for k in fields(item)}
                if hasattr(item, "__dataclass_fields__") else item
                for item in value
            ]
        else:
            payload[f.name] = value
    # InsiderSentiment.monthly holds nested dataclasses
    insider = payload.get("insider")
    if isinstance(insider, dict):
        insider["monthly"] = [
            {k.name: getattr(m, k.name) for k in fields(m)} for m in insider.get("monthly", ())
        ]
    return short_hash(payload)


def build_signal_log_entry(rec: Recommendation) -> dict[str, Any]:
    """
    Build the compact record persisted for backtesting.

    The projection is structurally stable: its keys do not change when the
    Recommendation grows new fields. entry_hash covers every other key.

    Args:
        rec: Recommendation to project

    Returns:
        Dict with ticker, signal, prices, headline scores, metadata and hash
    """
    primary = rec.primary_signal
    entry = {
        "entry_version": SIGNAL_LOG_VERSION,
        "ticker": rec.ticker,
        "as_of": rec.as_of,
        "signal_type": primary.type,
        "signal_strength": primary.strength,
        "price_at_signal": rec.current_price,
        "composite_score": rec.composite_score,
        "dip_score": rec.dip_score,
        "conviction_score": rec.conviction_score,
        "metadata": {
            "rsi_value": rec.metadata.get("rsi_value"),
            "macd_signal": rec.metadata.get("macd_signal"),
            "bollinger_position": rec.metadata.get("bollinger_position"),
            "news_sentiment": rec.metadata.get("news_sentiment"),
            "insider_mspr": rec.metadata.get("insider_mspr"),
        },
    }
    entry = _sanitize_nan_inf(entry)
    return {
        **entry,
        "entry_hash": short_hash(entry),
    }
