"""Tests for the recommendation disk cache."""

from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest

from stock_advisor.data.cache import RecommendationCache
from stock_advisor.models import RecommendationInput
from stock_advisor.tools import analyze
from stock_advisor.tools.analyze import generate_recommendation_cached, recommendation_params
from stock_advisor.utils.normalize import canonical_dumps
from stock_advisor.utils.validators import RecommendationParams


@pytest.fixture
def cache(tmp_path: Path) -> Iterator[RecommendationCache]:
    c = RecommendationCache(cache_dir=str(tmp_path / "cache"), default_ttl=3600)
    yield c
    c.close()


class TestRecommendationCache:
    """Tests for RecommendationCache."""

    def test_store_and_get(self, cache: RecommendationCache) -> None:
        params = RecommendationParams(ticker="ACME", as_of="2024-02-23")
        payload = {"ticker": "ACME", "composite_score": 71}

        key = cache.store(params, payload)

        assert key == "reco://ACME/2024-02-23/3m/research"
        assert cache.exists(key)
        assert cache.get(key) == payload

    def test_metadata(self, cache: RecommendationCache) -> None:
        params = RecommendationParams(ticker="ACME", as_of="2024-02-23")
        payload = {"ticker": "ACME"}

        key = cache.store(params, payload)
        meta = cache.get_metadata(key)

        assert meta is not None
        assert meta["size_bytes"] == len(canonical_dumps(payload).encode("utf-8"))
        assert len(meta["hash"]) == 16
        assert "stored_at" in meta

    def test_missing_key(self, cache: RecommendationCache) -> None:
        assert cache.get("reco://NOPE/2024-01-01/3m/research") is None
        assert cache.get_metadata("reco://NOPE/2024-01-01/3m/research") is None
        assert not cache.exists("reco://NOPE/2024-01-01/3m/research")

    def test_clear(self, cache: RecommendationCache) -> None:
        key = cache.store(RecommendationParams(ticker="ACME", as_of="2024-02-23"), {"a": 1})

        cache.clear()

        assert not cache.exists(key)


class TestGenerateRecommendationCached:
    """Memoization keyed by ticker, as_of, window, mode and input hash."""

    def test_miss_then_hit(
        self,
        cache: RecommendationCache,
        research_input: RecommendationInput,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        first = generate_recommendation_cached(research_input, cache)

        def fail(*args, **kwargs):
            raise AssertionError("recomputed on cache hit")

        monkeypatch.setattr(analyze, "generate_recommendation", fail)
        second = generate_recommendation_cached(research_input, cache)

        assert second == first
        assert first["ticker"] == "ACME"

    def test_key_includes_input_hash(self, research_input: RecommendationInput) -> None:
        params = recommendation_params(research_input)

        assert params.input_hash is not None
        assert params.to_cache_key().startswith("reco://ACME/")
        assert params.to_cache_key().endswith(f"/research/{params.input_hash}")

    def test_changed_inputs_miss(
        self,
        cache: RecommendationCache,
        research_input: RecommendationInput,
    ) -> None:
        changed = replace(research_input, news=())

        assert (
            recommendation_params(research_input).to_cache_key()
            != recommendation_params(changed).to_cache_key()
        )

        generate_recommendation_cached(research_input, cache)
        assert not cache.exists(recommendation_params(changed).to_cache_key())

    def test_thresholds_change_key(self, research_input: RecommendationInput) -> None:
        from stock_advisor.config import DEFAULT_THRESHOLDS

        strict = replace(DEFAULT_THRESHOLDS, dip_trigger=70)

        assert (
            recommendation_params(research_input).input_hash
            != recommendation_params(research_input, strict).input_hash
        )

    def test_holdings_mode_in_key(self, holdings_input: RecommendationInput) -> None:
        assert "/holdings/" in recommendation_params(holdings_input).to_cache_key()
