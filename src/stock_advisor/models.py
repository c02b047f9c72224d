"""Input facts and output records for the recommendation engine.

Inputs are supplied by external collaborators (market data, fundamentals,
news sentiment, insider filings, portfolio bookkeeping). Every numeric field
is independently nullable: None means "unknown", never zero.

Outputs are frozen and expose to_dict() for canonical serialization.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import pandas as pd

Mode = Literal["holdings", "research"]
Sentiment = Literal["bullish", "bearish", "neutral"]
ConvictionLevel = Literal["HIGH", "MEDIUM", "LOW"]
TechnicalBias = Literal["BULLISH", "BEARISH", "NEUTRAL"]
TargetSource = Literal["personal", "analyst", "estimated"]
SignalCategory = Literal["action", "quality"]


# ---------------- Inputs ----------------


@dataclass(frozen=True)
class PriceBar:
    """Single daily bar. Immutable once recorded."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class FundamentalMetrics:
    """Valuation, profitability, growth and leverage ratios. Percent fields are in %."""

    pe: float | None = None
    forward_pe: float | None = None
    peg: float | None = None
    pb: float | None = None
    roe: float | None = None
    net_margin: float | None = None
    gross_margin: float | None = None
    operating_margin: float | None = None
    revenue_growth: float | None = None
    eps_growth: float | None = None
    revenue_growth_5y: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None


@dataclass(frozen=True)
class AnalystData:
    """Analyst consensus (roughly -2..+2), rating buckets, coverage, target."""

    consensus_score: float | None = None
    strong_buy: int = 0
    buy: int = 0
    hold: int = 0
    sell: int = 0
    strong_sell: int = 0
    analyst_count: int | None = None
    target_price: float | None = None

    @property
    def total_ratings(self) -> int:
        return self.strong_buy + self.buy + self.hold + self.sell + self.strong_sell


@dataclass(frozen=True)
class NewsArticle:
    """Article with precomputed sentiment in [-1, 1]. First ticker is the primary one."""

    tickers: tuple[str, ...]
    sentiment: float | None = None
    label: str | None = None
    headline: str | None = None


@dataclass(frozen=True)
class InsiderMonthly:
    year: int
    month: int
    mspr: float
    change: float = 0.0


@dataclass(frozen=True)
class InsiderSentiment:
    """Monthly breakdown (most recent first) plus an aggregate fallback."""

    monthly: tuple[InsiderMonthly, ...] = ()
    mspr: float | None = None
    change: float | None = None


@dataclass(frozen=True)
class EarningsSurprise:
    period: str
    surprise_percent: float | None = None


@dataclass(frozen=True)
class PortfolioContext:
    """Personal position context. Only present in holdings mode."""

    weight: float = 0.0
    avg_cost: float = 0.0
    current_value: float | None = None
    gain_pct: float | None = None
    target_price: float | None = None


@dataclass(frozen=True)
class Quote:
    """Provider quote overriding values derived from the price series."""

    current_price: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None


@dataclass(frozen=True)
class FibonacciLevels:
    high: float
    low: float
    levels: dict[str, float]
    trend: Literal["uptrend", "downtrend"]
    current_level: str | None = None


@dataclass(frozen=True)
class TechnicalSnapshot:
    """
    Latest value of every indicator plus bounded, date-tagged histories.

    Built fresh per request by tools.technicals.build_technical_snapshot().
    """

    as_of: str | None = None
    bars: int = 0
    current_price: float | None = None
    sma20: float | None = None
    sma50: float | None = None
    sma200: float | None = None
    sma200_rising: bool | None = None
    price_vs_sma50: float | None = None
    price_vs_sma200: float | None = None
    ema12: float | None = None
    ema26: float | None = None
    rsi14: float | None = None
    rsi_signal: str | None = None
    macd: float | None = None
    macd_signal: float | None = None
    macd_histogram: float | None = None
    macd_trend: str | None = None
    macd_divergence: str | None = None
    bollinger_upper: float | None = None
    bollinger_middle: float | None = None
    bollinger_lower: float | None = None
    bollinger_position: float | None = None
    bollinger_signal: str | None = None
    stochastic_k: float | None = None
    stochastic_d: float | None = None
    stochastic_signal: str | None = None
    current_volume: float | None = None
    avg_volume20: float | None = None
    volume_change: float | None = None
    volume_signal: str | None = None
    atr14: float | None = None
    atr_percent: float | None = None
    atr_signal: str | None = None
    obv: float | None = None
    obv_trend: str | None = None
    obv_divergence: str | None = None
    adx: float | None = None
    plus_di: float | None = None
    minus_di: float | None = None
    adx_signal: str | None = None
    adx_trend: str | None = None
    fibonacci: FibonacciLevels | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    history: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    def to_dict(self, include_history: bool = False) -> dict[str, Any]:
        data = asdict(self)
        if not include_history:
            data.pop("history", None)
        return data


@dataclass(frozen=True)
class RecommendationInput:
    """
    Everything the engine needs for one ticker.

    Provide either `prices` (bars or an OHLCV DataFrame) or a precomputed
    `technicals` snapshot. With neither, technicals degrade to neutral.
    """

    ticker: str
    name: str | None = None
    prices: tuple[PriceBar, ...] | pd.DataFrame | None = None
    technicals: TechnicalSnapshot | None = None
    fundamentals: FundamentalMetrics | None = None
    analysts: AnalystData | None = None
    news: tuple[NewsArticle, ...] = ()
    insider: InsiderSentiment | None = None
    earnings: tuple[EarningsSurprise, ...] = ()
    portfolio: PortfolioContext | None = None
    quote: Quote | None = None
    insider_time_range: int = 3
    as_of: str | None = None


# ---------------- Outputs ----------------


@dataclass(frozen=True)
class ScoreComponent:
    """One weighted score. percent == raw_score / raw_max * 100."""

    category: str
    raw_score: float
    raw_max: float
    percent: float
    sentiment: Sentiment
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["details"] = list(self.details)
        return data


@dataclass(frozen=True)
class StockSignal:
    type: str
    category: SignalCategory
    strength: float
    priority: int
    title: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TargetPrice:
    """Resolved target with provenance. value is None for consensus estimates."""

    value: float | None
    upside: float | None
    source: TargetSource


@dataclass(frozen=True)
class DipResult:
    score: float
    details: tuple[str, ...]
    quality_passes: bool
    quality_reasons: tuple[str, ...]


@dataclass(frozen=True)
class ConvictionResult:
    score: float
    level: ConvictionLevel
    details: tuple[str, ...]
    target: TargetPrice | None = None


@dataclass(frozen=True)
class BuyStrategy:
    buy_zone_low: float | None
    buy_zone_high: float | None
    in_buy_zone: bool
    dca_recommendation: Literal["AGGRESSIVE", "NORMAL", "CAUTIOUS", "NO_DCA"]
    dca_reason: str
    max_add_percent: float
    risk_reward_ratio: float | None
    support_price: float | None


@dataclass(frozen=True)
class ExitStrategy:
    take_profit_1: float | None
    take_profit_2: float | None
    take_profit_3: float | None
    stop_loss: float | None
    trailing_stop_percent: float | None
    holding_period: Literal["SWING", "MEDIUM", "LONG"]
    holding_reason: str
    resistance_level: float | None


@dataclass(frozen=True)
class Recommendation:
    """Aggregate, immutable result for one (ticker, inputs) pair."""

    ticker: str
    name: str | None
    mode: Mode
    as_of: str
    current_price: float | None
    weight: float
    avg_cost: float
    gain_pct: float
    distance_from_avg: float

    composite_score: int
    fundamental_score: float
    technical_score: float
    analyst_score: float
    news_insider_score: float
    news_score: float
    insider_score: float
    portfolio_score: float | None

    conviction_score: float
    conviction_level: ConvictionLevel
    dip_score: float
    is_dip: bool
    dip_quality_check: bool

    breakdown: tuple[ScoreComponent, ...]
    action_signal: StockSignal | None
    quality_signal: StockSignal

    strengths: tuple[str, ...]
    concerns: tuple[str, ...]
    action_items: tuple[str, ...]

    target: TargetPrice | None
    fifty_two_week_high: float | None
    fifty_two_week_low: float | None
    distance_from_52w_high: float | None
    technical_bias: TechnicalBias

    buy_strategy: BuyStrategy
    exit_strategy: ExitStrategy
    metadata: dict[str, Any]
    explanation: dict[str, Any]

    @property
    def primary_signal(self) -> StockSignal:
        return self.action_signal or self.quality_signal

    @property
    def signals(self) -> list[StockSignal]:
        """Emitted signals, action first. Never more than two."""
        return [s for s in (self.action_signal, self.quality_signal) if s is not None]

    @property
    def target_upside(self) -> float | None:
        return self.target.upside if self.target else None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["primary_signal"] = self.primary_signal.to_dict()
        for key in ("strengths", "concerns", "action_items"):
            data[key] = list(data[key])
        data["breakdown"] = [c.to_dict() for c in self.breakdown]
        return data
