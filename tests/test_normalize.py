"""Tests for canonical serialization, hashing and the signal log projection."""

import json
from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from stock_advisor.models import PriceBar, RecommendationInput
from stock_advisor.tools.analyze import generate_recommendation
from stock_advisor.utils.normalize import (
    SIGNAL_LOG_VERSION,
    _sanitize_nan_inf,
    build_signal_log_entry,
    canonical_dumps,
    input_fingerprint,
    normalize_recommendation,
    recommendation_hash,
    short_hash,
)


class TestCanonicalDumps:
    """Tests for canonical_dumps function."""

    def test_sorted_keys(self):
        """Keys are sorted at every level."""
        obj = {"z": 1, "a": {"y": 2, "b": 3}}
        assert canonical_dumps(obj) == '{"a":{"b":3,"y":2},"z":1}'

    def test_minimal_separators(self):
        """No whitespace between tokens."""
        result = canonical_dumps({"a": [1, 2]})
        assert " " not in result

    def test_unicode_preserved(self):
        result = canonical_dumps({"name": "Société Générale"})
        assert "Société Générale" in result

    def test_rejects_nan(self):
        """NaN must be sanitized before dumping."""
        with pytest.raises(ValueError):
            canonical_dumps({"x": float("nan")})

    def test_rejects_inf(self):
        with pytest.raises(ValueError):
            canonical_dumps({"x": float("inf")})


class TestSanitize:
    """Tests for NaN/inf/-0.0 sanitization."""

    def test_nan_replaced_with_null(self):
        assert _sanitize_nan_inf({"x": float("nan")}) == {"x": None}

    def test_inf_replaced_with_null(self):
        assert _sanitize_nan_inf([float("inf"), float("-inf")]) == [None, None]

    def test_nested_nan_sanitized(self):
        data = {"a": {"b": [1.0, float("nan"), {"c": float("nan")}]}}
        assert _sanitize_nan_inf(data) == {"a": {"b": [1.0, None, {"c": None}]}}

    def test_negative_zero_normalized(self):
        result = _sanitize_nan_inf({"x": -0.0})
        assert json.dumps(result) == '{"x": 0.0}'

    def test_tuples_become_lists(self):
        assert _sanitize_nan_inf({"t": (1, 2)}) == {"t": [1, 2]}

    def test_numpy_scalars_unwrapped(self):
        result = _sanitize_nan_inf({"f": np.float64(1.5), "i": np.int64(3), "n": np.float64("nan")})
        assert result == {"f": 1.5, "i": 3, "n": None}
        assert type(result["f"]) is float
        assert type(result["i"]) is int

    def test_booleans_untouched(self):
        assert _sanitize_nan_inf({"b": True}) == {"b": True}


class TestShortHash:
    def test_length_and_stability(self):
        h = short_hash({"a": 1})
        assert len(h) == 16
        assert h == short_hash({"a": 1})

    def test_key_order_insensitive(self):
        assert short_hash({"a": 1, "b": 2}) == short_hash({"b": 2, "a": 1})

    def test_different_content_differs(self):
        assert short_hash({"a": 1}) != short_hash({"a": 2})


class TestNormalizeRecommendation:
    """Determinism of the canonical Recommendation view."""

    def test_same_input_produces_identical_bytes(self, research_input: RecommendationInput):
        first = canonical_dumps(normalize_recommendation(generate_recommendation(research_input)))
        second = canonical_dumps(normalize_recommendation(generate_recommendation(research_input)))
        assert first == second

    def test_output_is_json_safe(self, research_input: RecommendationInput):
        normalized = normalize_recommendation(generate_recommendation(research_input))
        # allow_nan=False raises if anything slipped through
        parsed = json.loads(canonical_dumps(normalized))
        assert parsed["ticker"] == "ACME"
        assert isinstance(parsed["breakdown"], list)

    def test_recommendation_hash_stable(self, research_input: RecommendationInput):
        assert recommendation_hash(generate_recommendation(research_input)) == recommendation_hash(
            generate_recommendation(research_input)
        )

    def test_recommendation_hash_changes_with_input(self, research_input: RecommendationInput):
        other = replace(research_input, news=())
        assert recommendation_hash(generate_recommendation(research_input)) != recommendation_hash(
            generate_recommendation(other)
        )


class TestInputFingerprint:
    """Tests for input_fingerprint function."""

    def _bars(self) -> tuple[PriceBar, ...]:
        return (
            PriceBar("2024-01-02", 10.0, 11.0, 9.0, 10.5, 100.0),
            PriceBar("2024-01-03", 10.5, 11.5, 10.0, 11.0, 150.0),
        )

    def test_bars_and_frame_hash_identically(self):
        frame = pd.DataFrame(
            {
                "date": ["2024-01-02", "2024-01-03"],
                "open": [10.0, 10.5],
                "high": [11.0, 11.5],
                "low": [9.0, 10.0],
                "close": [10.5, 11.0],
                "volume": [100, 150],
            }
        )
        from_bars = RecommendationInput(ticker="ACME", prices=self._bars())
        from_frame = RecommendationInput(ticker="ACME", prices=frame)

        assert input_fingerprint(from_bars) == input_fingerprint(from_frame)

    def test_bar_order_does_not_matter(self):
        bars = self._bars()
        forward = RecommendationInput(ticker="ACME", prices=bars)
        backward = RecommendationInput(ticker="ACME", prices=bars[::-1])

        assert input_fingerprint(forward) == input_fingerprint(backward)

    def test_changed_fact_changes_fingerprint(self, research_input: RecommendationInput):
        changed = replace(research_input, insider_time_range=6)
        assert input_fingerprint(research_input) != input_fingerprint(changed)

    def test_nested_insider_monthly_included(self, research_input: RecommendationInput):
        insider = research_input.insider
        assert insider is not None
        changed_month = replace(insider.monthly[0], mspr=-60.0)
        changed = replace(
            research_input,
            insider=replace(insider, monthly=(changed_month, *insider.monthly[1:])),
        )
        assert input_fingerprint(research_input) != input_fingerprint(changed)


class TestBuildSignalLogEntry:
    """Tests for the backtesting projection."""

    EXPECTED_KEYS = {
        "entry_version",
        "ticker",
        "as_of",
        "signal_type",
        "signal_strength",
        "price_at_signal",
        "composite_score",
        "dip_score",
        "conviction_score",
        "metadata",
        "entry_hash",
    }

    def test_extracts_key_fields(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)
        entry = build_signal_log_entry(rec)

        assert set(entry) == self.EXPECTED_KEYS
        assert entry["entry_version"] == SIGNAL_LOG_VERSION
        assert entry["ticker"] == "ACME"
        assert entry["signal_type"] == rec.primary_signal.type
        assert entry["composite_score"] == rec.composite_score
        assert set(entry["metadata"]) == {
            "rsi_value",
            "macd_signal",
            "bollinger_position",
            "news_sentiment",
            "insider_mspr",
        }

    def test_entry_is_json_safe(self, research_input: RecommendationInput):
        entry = build_signal_log_entry(generate_recommendation(research_input))
        canonical_dumps(entry)

    def test_hash_excludes_itself(self, research_input: RecommendationInput):
        entry = build_signal_log_entry(generate_recommendation(research_input))
        body = {k: v for k, v in entry.items() if k != "entry_hash"}
        assert entry["entry_hash"] == short_hash(body)

    def test_same_input_produces_same_hash(self, research_input: RecommendationInput):
        a = build_signal_log_entry(generate_recommendation(research_input))
        b = build_signal_log_entry(generate_recommendation(research_input))
        assert a["entry_hash"] == b["entry_hash"]
