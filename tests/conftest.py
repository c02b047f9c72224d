"""Pytest configuration and fixtures."""

import math

import numpy as np
import pandas as pd
import pytest

from stock_advisor.models import (
    AnalystData,
    EarningsSurprise,
    FundamentalMetrics,
    InsiderMonthly,
    InsiderSentiment,
    NewsArticle,
    PortfolioContext,
    RecommendationInput,
)


def make_ohlcv(
    closes: list[float] | np.ndarray,
    volumes: list[float] | np.ndarray | None = None,
    spread: float = 0.01,
    start: str = "2023-01-02",
) -> pd.DataFrame:
    """Build a business-day OHLCV frame around a close path."""
    closes = np.asarray(closes, dtype=float)
    if volumes is None:
        volumes = np.full(len(closes), 1_000_000.0)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    return pd.DataFrame(
        {
            "date": pd.bdate_range(start, periods=len(closes)).strftime("%Y-%m-%d"),
            "open": opens,
            "high": np.maximum(opens, closes) * (1 + spread),
            "low": np.minimum(opens, closes) * (1 - spread),
            "close": closes,
            "volume": np.asarray(volumes, dtype=float),
        }
    )


@pytest.fixture
def sample_ohlcv_df() -> pd.DataFrame:
    """Provider-style OHLCV frame: capitalized columns, DatetimeIndex."""
    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")


@pytest.fixture
def sample_ohlcv_df_with_adj_close(sample_ohlcv_df: pd.DataFrame) -> pd.DataFrame:
    df = sample_ohlcv_df.copy()
    df["Adj Close"] = df["Close"] - 0.5
    return df


@pytest.fixture
def sample_price_series() -> pd.Series:
    """Sample price series for indicator testing."""
    return pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )


@pytest.fixture
def uptrend_df() -> pd.DataFrame:
    """300 bars of steady growth with a small oscillation."""
    closes = [100 * 1.002**i + math.sin(i / 3) for i in range(300)]
    return make_ohlcv(closes)


@pytest.fixture
def downtrend_df() -> pd.DataFrame:
    """300 bars of steady decline with a small oscillation."""
    closes = [200 * 0.997**i + math.sin(i / 3) for i in range(300)]
    return make_ohlcv(closes)


@pytest.fixture
def capitulation_df() -> pd.DataFrame:
    """Flat year, 40-bar slide, base with two shallow lower lows, then a high-volume crash."""
    closes = [150.0] * 200 + [148.0 - 2 * i for i in range(40)] + [70.0] * 60
    closes[284] = 67.0
    closes[291] = 66.7
    closes[299] = 45.0
    volumes = [1_000_000.0] * 299 + [10_000_000.0]
    return make_ohlcv(closes, volumes)


@pytest.fixture
def flat_df() -> pd.DataFrame:
    """Constant price, zero range."""
    return make_ohlcv([50.0] * 60, spread=0.0)


@pytest.fixture
def high_volatility_df() -> pd.DataFrame:
    rng = np.random.default_rng(7)
    closes = 100 + np.cumsum(rng.normal(0, 4, 120))
    return make_ohlcv(np.abs(closes) + 20, spread=0.05)


@pytest.fixture
def low_volatility_df() -> pd.DataFrame:
    rng = np.random.default_rng(7)
    closes = 100 + np.cumsum(rng.normal(0, 0.2, 120))
    return make_ohlcv(closes, spread=0.002)


@pytest.fixture
def strong_fundamentals() -> FundamentalMetrics:
    return FundamentalMetrics(
        pe=18.0,
        peg=1.0,
        roe=28.0,
        net_margin=26.0,
        revenue_growth=20.0,
        revenue_growth_5y=18.0,
        debt_to_equity=0.2,
        current_ratio=2.5,
    )


@pytest.fixture
def weak_fundamentals() -> FundamentalMetrics:
    return FundamentalMetrics(
        pe=-5.0,
        roe=-3.0,
        net_margin=-8.0,
        revenue_growth=-4.0,
        debt_to_equity=3.0,
        current_ratio=0.4,
    )


@pytest.fixture
def bullish_analysts() -> AnalystData:
    return AnalystData(
        consensus_score=1.6,
        strong_buy=15,
        buy=10,
        hold=3,
        sell=1,
        strong_sell=0,
        analyst_count=29,
        target_price=None,
    )


@pytest.fixture
def positive_news() -> tuple[NewsArticle, ...]:
    return (
        NewsArticle(tickers=("ACME",), sentiment=0.6, headline="Record quarter"),
        NewsArticle(tickers=("ACME", "XYZ"), sentiment=0.4, headline="New product"),
        NewsArticle(tickers=("XYZ",), sentiment=-0.9, headline="Unrelated"),
    )


@pytest.fixture
def insider_buying() -> InsiderSentiment:
    return InsiderSentiment(
        monthly=(
            InsiderMonthly(year=2024, month=2, mspr=60.0, change=12000),
            InsiderMonthly(year=2024, month=1, mspr=40.0, change=8000),
            InsiderMonthly(year=2023, month=12, mspr=20.0, change=1000),
        )
    )


@pytest.fixture
def earnings_beats() -> tuple[EarningsSurprise, ...]:
    return tuple(EarningsSurprise(period=f"2023Q{q}", surprise_percent=3.0) for q in (4, 3, 2, 1))


@pytest.fixture
def research_input(
    uptrend_df: pd.DataFrame,
    strong_fundamentals: FundamentalMetrics,
    bullish_analysts: AnalystData,
    positive_news: tuple[NewsArticle, ...],
    insider_buying: InsiderSentiment,
    earnings_beats: tuple[EarningsSurprise, ...],
) -> RecommendationInput:
    return RecommendationInput(
        ticker="acme",
        name="Acme Corp",
        prices=uptrend_df,
        fundamentals=strong_fundamentals,
        analysts=bullish_analysts,
        news=positive_news,
        insider=insider_buying,
        earnings=earnings_beats,
    )


@pytest.fixture
def holdings_input(research_input: RecommendationInput) -> RecommendationInput:
    from dataclasses import replace

    return replace(
        research_input,
        portfolio=PortfolioContext(weight=5.0, avg_cost=120.0, target_price=250.0),
    )
