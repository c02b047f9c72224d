"""Tests for recommendation assembly, invariants and batch generation."""

import logging
from dataclasses import replace

import pandas as pd
import pytest

from stock_advisor.config import RESEARCH_WEIGHTS
from stock_advisor.models import PortfolioContext, Quote, RecommendationInput
from stock_advisor.tools.analyze import (
    _composite_score,
    _validate_recommendation_invariants,
    generate_all_recommendations,
    generate_recommendation,
)
from stock_advisor.tools.signals import (
    BUYABLE_SIGNALS,
    SELL_SIDE_SIGNALS,
    SIGNAL_PRIORITIES,
    get_display_signals,
    has_actionable_signal,
)
from stock_advisor.utils.normalize import canonical_dumps, normalize_recommendation
from stock_advisor.utils.scoring import build_component, round_half_up

EXPLANATION_KEYS = {
    "decision_path",
    "score_breakdown",
    "technical_indicators",
    "fundamental_data",
    "analyst_data",
    "dip",
    "conviction",
    "signal_evaluation",
    "thresholds",
}


class TestGenerateRecommendation:
    """Tests for generate_recommendation."""

    def test_research_mode(self, research_input: RecommendationInput, uptrend_df: pd.DataFrame):
        rec = generate_recommendation(research_input)

        assert rec.ticker == "ACME"
        assert rec.name == "Acme Corp"
        assert rec.mode == "research"
        assert rec.as_of == uptrend_df["date"].iloc[-1]
        assert rec.portfolio_score is None
        assert [c.category for c in rec.breakdown] == [
            "Fundamentals",
            "Technical",
            "Analyst",
            "News",
            "Insider",
        ]
        assert rec.weight == 0
        assert rec.avg_cost == 0
        assert rec.gain_pct == 0

    def test_holdings_mode(self, holdings_input: RecommendationInput):
        rec = generate_recommendation(holdings_input)

        assert rec.mode == "holdings"
        assert rec.portfolio_score is not None
        assert [c.category for c in rec.breakdown] == [
            "Fundamentals",
            "Technical",
            "Analyst",
            "News",
            "Insider",
            "Portfolio",
        ]
        assert rec.target is not None
        assert rec.target.source == "personal"
        assert rec.target.value == 250.0
        assert rec.weight == 5.0
        assert rec.avg_cost == 120.0
        assert rec.distance_from_avg == pytest.approx((rec.current_price - 120.0) / 120.0 * 100)

    def test_composite_is_weighted_percent(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)
        by_category = {c.category: c.percent for c in rec.breakdown}

        expected = round_half_up(
            by_category["Fundamentals"] * RESEARCH_WEIGHTS.fundamental
            + by_category["Technical"] * RESEARCH_WEIGHTS.technical
            + by_category["Analyst"] * RESEARCH_WEIGHTS.analyst
            + rec.news_insider_score * RESEARCH_WEIGHTS.news_insider
        )

        assert isinstance(rec.composite_score, int)
        assert rec.composite_score == expected
        assert 0 <= rec.composite_score <= 100

    def test_component_percents_consistent(self, holdings_input: RecommendationInput):
        rec = generate_recommendation(holdings_input)

        for c in rec.breakdown:
            assert 0 <= c.raw_score <= c.raw_max
            assert c.percent == pytest.approx(c.raw_score / c.raw_max * 100)

    def test_headline_scores_match_breakdown(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)
        by_category = {c.category: c.percent for c in rec.breakdown}

        assert rec.fundamental_score == by_category["Fundamentals"]
        assert rec.technical_score == by_category["Technical"]
        assert rec.analyst_score == by_category["Analyst"]
        assert rec.news_score == by_category["News"]
        assert rec.insider_score == by_category["Insider"]
        assert rec.news_insider_score == rec.explanation["score_breakdown"]["News+Insider"]["percent"]

    def test_deterministic(self, holdings_input: RecommendationInput):
        first = canonical_dumps(normalize_recommendation(generate_recommendation(holdings_input)))
        second = canonical_dumps(normalize_recommendation(generate_recommendation(holdings_input)))

        assert first == second

    def test_signals(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)

        assert rec.quality_signal is not None
        assert rec.quality_signal.category == "quality"
        assert 1 <= len(rec.signals) <= 2
        assert rec.signals[0] == rec.primary_signal
        if rec.action_signal is not None:
            assert rec.action_signal.category == "action"
            # No position, so no profit-taking
            assert rec.action_signal.type != "TAKE_PROFIT"

    def test_bounded_lists(self, holdings_input: RecommendationInput):
        rec = generate_recommendation(holdings_input)

        assert len(rec.strengths) <= 4
        assert len(rec.concerns) <= 4
        assert len(rec.action_items) <= 3

    def test_explanation(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)

        assert set(rec.explanation) == EXPLANATION_KEYS
        assert len(rec.explanation["signal_evaluation"]) == len(SIGNAL_PRIORITIES)
        breakdown = rec.explanation["score_breakdown"]
        assert breakdown["composite"] == rec.composite_score
        assert breakdown["Fundamentals"]["max_points"] == 140
        assert breakdown["News+Insider"]["max_points"] == 60
        assert breakdown["News"]["max_points"] == 100
        assert rec.explanation["decision_path"]["quality_signal"]["type"] == rec.quality_signal.type

    def test_metadata(self, research_input: RecommendationInput):
        rec = generate_recommendation(research_input)

        assert set(rec.metadata) == {
            "rsi_value",
            "macd_signal",
            "bollinger_position",
            "news_sentiment",
            "insider_mspr",
        }
        # Three months back from late February 2024 covers all three records
        assert rec.metadata["insider_mspr"] == 40.0
        assert rec.metadata["news_sentiment"] == pytest.approx(0.5)

    def test_quote_overrides_series(self, research_input: RecommendationInput):
        quote = Quote(current_price=90.0, fifty_two_week_high=300.0, fifty_two_week_low=60.0)

        rec = generate_recommendation(replace(research_input, quote=quote))

        assert rec.current_price == 90.0
        assert rec.fifty_two_week_high == 300.0
        assert rec.fifty_two_week_low == 60.0
        assert rec.distance_from_52w_high == pytest.approx(70.0)

    def test_explicit_as_of(self, research_input: RecommendationInput):
        rec = generate_recommendation(replace(research_input, as_of="2024-03-01"))

        assert rec.as_of == "2024-03-01"

    def test_no_prices_degrades_to_neutral(self, research_input: RecommendationInput):
        inp = replace(research_input, prices=None, as_of="2024-02-23")

        rec = generate_recommendation(inp)

        assert rec.technical_score == 50
        assert rec.current_price is None
        assert rec.dip_score == 0
        assert rec.explanation["technical_indicators"] is None

    def test_insider_window(self, research_input: RecommendationInput):
        one_month = generate_recommendation(replace(research_input, insider_time_range=1))

        assert one_month.metadata["insider_mspr"] == 60.0
        assert one_month.insider_score == 80

    def test_invalid_insider_range_raises(self, research_input: RecommendationInput):
        with pytest.raises(ValueError, match="insider_time_range"):
            generate_recommendation(replace(research_input, insider_time_range=5))

    def test_empty_ticker_raises(self, research_input: RecommendationInput):
        with pytest.raises(ValueError, match="Ticker"):
            generate_recommendation(replace(research_input, ticker=" "))

    def test_dip_in_holdings(self, downtrend_df: pd.DataFrame, holdings_input: RecommendationInput):
        rec = generate_recommendation(replace(holdings_input, prices=downtrend_df))

        assert rec.dip_score > 0
        assert rec.distance_from_avg < 0
        assert rec.buy_strategy.support_price is not None

    def test_no_invariant_warnings(
        self, holdings_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        with caplog.at_level(logging.WARNING):
            generate_recommendation(holdings_input)

        assert not any("invariant violation" in r.message for r in caplog.records)

    def test_display_helpers_accept_recommendation(self, holdings_input: RecommendationInput):
        rec = generate_recommendation(holdings_input)

        assert get_display_signals(rec) == rec.signals
        assert has_actionable_signal(rec) is (
            rec.action_signal is not None
            and rec.action_signal.type in BUYABLE_SIGNALS | SELL_SIDE_SIGNALS
        )

    def test_composite_rounds_half_up(self):
        components = {
            "fundamental": build_component("Fundamentals", 0, 140),
            "technical": build_component("Technical", 0, 120),
            "analyst": build_component("Analyst", 10, 80),
            "news_insider": build_component("News+Insider", 0, 60),
        }

        # 12.5% analyst * 0.20 weight = 2.5
        assert _composite_score(components, RESEARCH_WEIGHTS) == 3


class TestCapitulationDip:
    """A crash after a base with lower lows maxes out every dip tier."""

    def test_dip_score_capped_at_100(
        self, research_input: RecommendationInput, capitulation_df: pd.DataFrame
    ):
        rec = generate_recommendation(replace(research_input, prices=capitulation_df))
        dip = rec.explanation["dip"]

        assert rec.dip_score == 100
        assert rec.current_price == 45.0
        assert "Bullish MACD divergence" in dip["details"]
        assert "Price far below lower Bollinger band" in dip["details"]
        assert "Extreme volume - possible capitulation" in dip["details"]
        assert any(d.endswith("extremely oversold") for d in dip["details"])
        assert dip["quality_passes"] is True
        assert rec.action_signal.type == "DIP_OPPORTUNITY"
        assert rec.action_signal.strength == 100.0

    def test_quality_gate_blocks_capped_dip(
        self, research_input: RecommendationInput, capitulation_df: pd.DataFrame
    ):
        inp = replace(research_input, prices=capitulation_df, fundamentals=None)

        rec = generate_recommendation(inp)

        assert rec.dip_score == 100
        assert rec.explanation["dip"]["quality_passes"] is False
        assert "Weak fundamentals" in rec.explanation["dip"]["quality_reasons"]
        assert rec.action_signal is None or rec.action_signal.type != "DIP_OPPORTUNITY"


class TestRecommendationInvariants:
    """Invariant checks log warnings rather than raising."""

    def test_composite_out_of_range(
        self, research_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        rec = replace(generate_recommendation(research_input), composite_score=150)

        with caplog.at_level(logging.WARNING):
            _validate_recommendation_invariants(rec)

        assert "composite_score=150 outside [0, 100]" in caplog.text

    def test_holdings_without_portfolio(
        self, research_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        rec = replace(generate_recommendation(research_input), mode="holdings")

        with caplog.at_level(logging.WARNING):
            _validate_recommendation_invariants(rec)

        assert "holdings mode without Portfolio component" in caplog.text

    def test_research_with_portfolio(
        self, holdings_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        rec = replace(generate_recommendation(holdings_input), mode="research")

        with caplog.at_level(logging.WARNING):
            _validate_recommendation_invariants(rec)

        assert "research mode with Portfolio component" in caplog.text

    def test_breakdown_length(
        self, holdings_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        rec = generate_recommendation(holdings_input)
        rec = replace(rec, breakdown=rec.breakdown[:3] + rec.breakdown[5:])

        with caplog.at_level(logging.WARNING):
            _validate_recommendation_invariants(rec)

        assert "breakdown has 4 components, expected 6" in caplog.text

    def test_percent_mismatch(
        self, research_input: RecommendationInput, caplog: pytest.LogCaptureFixture
    ):
        rec = generate_recommendation(research_input)
        broken = replace(rec.breakdown[0], percent=rec.breakdown[0].percent + 1)
        rec = replace(rec, breakdown=(broken, *rec.breakdown[1:]))

        with caplog.at_level(logging.WARNING):
            _validate_recommendation_invariants(rec)

        assert "Fundamentals.percent" in caplog.text
        assert "Recommendation invariant violation (ACME)" in caplog.text


class TestGenerateAllRecommendations:
    """Tests for batch generation."""

    @pytest.fixture
    def batch(
        self,
        research_input: RecommendationInput,
        holdings_input: RecommendationInput,
        downtrend_df: pd.DataFrame,
    ) -> list[RecommendationInput]:
        return [
            research_input,
            replace(holdings_input, ticker="XYZ", prices=downtrend_df),
            replace(research_input, ticker="LOW", fundamentals=None, analysts=None),
            replace(holdings_input, ticker="ZERO", portfolio=PortfolioContext(weight=0.0)),
            replace(research_input, ticker="BAD", insider_time_range=5),
        ]

    def test_results_errors_and_skips(self, batch: list[RecommendationInput]):
        result = generate_all_recommendations(batch, max_workers=2)

        tickers = {r.ticker for r in result["recommendations"]}
        assert tickers == {"ACME", "XYZ", "LOW"}
        assert set(result["errors"]) == {"BAD"}
        assert "insider_time_range" in result["errors"]["BAD"]
        assert result["meta"]["skipped"] == ["ZERO"]
        assert result["meta"]["count"] == 3
        assert result["meta"]["operation"] == "generate_all_recommendations"
        assert "duration_ms" in result["meta"]

    def test_sorted_by_priority_then_score(self, batch: list[RecommendationInput]):
        recs = generate_all_recommendations(batch, max_workers=2)["recommendations"]

        keys = [(r.primary_signal.priority, -r.composite_score, r.ticker) for r in recs]
        assert keys == sorted(keys)

    def test_matches_single_generation(self, research_input: RecommendationInput):
        result = generate_all_recommendations([research_input], max_workers=1)

        single = generate_recommendation(research_input)
        assert normalize_recommendation(result["recommendations"][0]) == normalize_recommendation(single)

    def test_insider_range_override(self, research_input: RecommendationInput):
        result = generate_all_recommendations([research_input], insider_time_range=1, max_workers=1)

        assert result["recommendations"][0].metadata["insider_mspr"] == 60.0

    def test_invalid_override_fails_every_ticker(self, research_input: RecommendationInput):
        result = generate_all_recommendations(
            [research_input, replace(research_input, ticker="XYZ")],
            insider_time_range=5,
            max_workers=2,
        )

        assert result["recommendations"] == []
        assert set(result["errors"]) == {"ACME", "XYZ"}

    def test_empty_batch(self):
        result = generate_all_recommendations([], max_workers=1)

        assert result["recommendations"] == []
        assert result["errors"] == {}
        assert result["meta"]["count"] == 0
