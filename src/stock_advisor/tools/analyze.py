"""Recommendation assembly: scores, dip, conviction, strategies and signals."""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, replace
from datetime import date, datetime
from time import perf_counter
from typing import Any

import pytz

from stock_advisor.config import (
    DEFAULT_THRESHOLDS,
    HOLDINGS_WEIGHTS,
    RESEARCH_WEIGHTS,
    ScoreWeights,
    Settings,
    Thresholds,
)
from stock_advisor.data.cache import RecommendationCache
from stock_advisor.models import (
    AnalystData,
    Recommendation,
    RecommendationInput,
    ScoreComponent,
    StockSignal,
    TargetPrice,
    TechnicalBias,
    TechnicalSnapshot,
)
from stock_advisor.tools.analysts import resolve_target_price, score_analysts
from stock_advisor.tools.conviction import calculate_conviction
from stock_advisor.tools.dip import evaluate_dip
from stock_advisor.tools.fundamentals import score_fundamentals
from stock_advisor.tools.news import (
    filter_insider_sentiment,
    score_insider,
    score_news,
    score_news_insider,
)
from stock_advisor.tools.position import position_gain_pct, score_position
from stock_advisor.tools.signals import SignalContext, generate_signals, is_buyable
from stock_advisor.tools.strategy import calculate_buy_strategy, calculate_exit_strategy
from stock_advisor.tools.technicals import build_technical_snapshot, score_technicals
from stock_advisor.utils.normalize import input_fingerprint, normalize_recommendation, short_hash
from stock_advisor.utils.ohlcv import standardize_ohlcv
from stock_advisor.utils.provenance import build_meta
from stock_advisor.utils.scoring import pct_change, round_half_up
from stock_advisor.utils.validators import RecommendationParams

logger = logging.getLogger(__name__)

MARKET_TZ = pytz.timezone("America/New_York")

MAX_STRENGTHS = 4
MAX_CONCERNS = 4
MAX_ACTION_ITEMS = 3

# Latest indicator values surfaced in the explanation trace
EXPLAINED_INDICATORS = (
    "current_price",
    "sma50",
    "sma200",
    "price_vs_sma200",
    "rsi14",
    "macd",
    "macd_signal",
    "macd_histogram",
    "macd_divergence",
    "bollinger_upper",
    "bollinger_middle",
    "bollinger_lower",
    "stochastic_k",
    "stochastic_d",
    "adx",
    "plus_di",
    "minus_di",
    "adx_trend",
    "atr14",
    "atr_percent",
    "obv_trend",
    "obv_divergence",
    "volume_change",
)

ACTION_ITEMS: dict[str, tuple[str, ...]] = {
    "DIP_OPPORTUNITY": ("Consider adding to position",),
    "BREAKOUT": ("Confirm the breakout holds above the upper band",),
    "REVERSAL": ("Start small and add on trend confirmation",),
    "MOMENTUM": ("Trail the stop as the trend extends",),
    "TAKE_PROFIT": ("Consider taking partial profits", "Raise the trailing stop"),
    "TRIM": ("Consider trimming toward target weight",),
    "NEAR_TARGET": ("Prepare an exit plan near the target",),
    "ACCUMULATE": ("Continue gradual DCA",),
    "GOOD_ENTRY": ("Consider opening a position",),
    "WAIT_FOR_DIP": ("Set a buy alert near support",),
    "WATCH": ("Monitor upcoming earnings", "Set price alerts"),
    "HOLD": ("Hold and reassess quarterly",),
    "CONVICTION": ("Hold through short-term volatility",),
}


def _today_in_market() -> str:
    return datetime.now(MARKET_TZ).date().isoformat()


def _resolve_as_of(inp: RecommendationInput, tech: TechnicalSnapshot | None) -> str:
    """Explicit as_of, else the last bar date, else today in market time."""
    if inp.as_of:
        return inp.as_of
    if tech is not None and tech.as_of:
        return tech.as_of
    if inp.prices is not None:
        df = standardize_ohlcv(inp.prices)
        if len(df) > 0:
            return str(df["date"].iloc[-1])
    return _today_in_market()


def _composite_score(
    components: dict[str, ScoreComponent],
    weights: ScoreWeights,
) -> int:
    total = (
        components["fundamental"].percent * weights.fundamental
        + components["technical"].percent * weights.technical
        + components["analyst"].percent * weights.analyst
        + components["news_insider"].percent * weights.news_insider
    )
    if "portfolio" in components:
        total += components["portfolio"].percent * weights.portfolio
    return int(min(100, max(0, round_half_up(total))))


def _technical_bias(component: ScoreComponent) -> TechnicalBias:
    if component.sentiment == "bullish":
        return "BULLISH"
    if component.sentiment == "bearish":
        return "BEARISH"
    return "NEUTRAL"


def _build_strengths(
    fund_pct: float,
    tech_pct: float,
    analyst_pct: float,
    insider_pct: float,
    conviction_level: str,
    dip_opportunity: bool,
) -> list[str]:
    strengths = []
    if fund_pct >= 65:
        strengths.append("Strong fundamentals")
    if tech_pct >= 65:
        strengths.append("Bullish technicals")
    if analyst_pct >= 65:
        strengths.append("Positive analyst sentiment")
    if insider_pct >= 60:
        strengths.append("Insider buying")
    if conviction_level == "HIGH":
        strengths.append("High conviction quality")
    if dip_opportunity:
        strengths.append("Dip opportunity")
    return strengths[:MAX_STRENGTHS]


def _build_concerns(
    fund_pct: float,
    tech_pct: float,
    analyst_pct: float,
    insider_pct: float,
    news_pct: float,
    weight: float,
) -> list[str]:
    concerns = []
    if fund_pct < 35:
        concerns.append("Weak fundamentals")
    if tech_pct < 35:
        concerns.append("Bearish technicals")
    if analyst_pct < 35:
        concerns.append("Negative analyst sentiment")
    if insider_pct < 40:
        concerns.append("Insider selling")
    if news_pct < 35:
        concerns.append("Negative news sentiment")
    if weight > 12:
        concerns.append("Overweight position")
    return concerns[:MAX_CONCERNS]


def _build_action_items(primary: StockSignal, distance_from_avg: float) -> list[str]:
    items = list(ACTION_ITEMS.get(primary.type, ()))
    if primary.type == "DIP_OPPORTUNITY" and distance_from_avg < -10:
        items.append("Good DCA opportunity")
    return items[:MAX_ACTION_ITEMS]


def _build_metadata(
    tech: TechnicalSnapshot | None,
    current_price: float | None,
    news_pct: float,
    insider_mspr: float | None,
) -> dict[str, Any]:
    macd_signal = None
    bollinger_position = None
    if tech is not None:
        if tech.macd_histogram is not None:
            macd_signal = "bullish" if tech.macd_histogram > 0 else "bearish"
        if (
            tech.bollinger_lower is not None
            and tech.bollinger_upper is not None
            and current_price is not None
        ):
            if current_price < tech.bollinger_lower:
                bollinger_position = "below"
            elif current_price > tech.bollinger_upper:
                bollinger_position = "above"
            else:
                bollinger_position = "within"
    return {
        "rsi_value": tech.rsi14 if tech is not None else None,
        "macd_signal": macd_signal,
        "bollinger_position": bollinger_position,
        "news_sentiment": (news_pct - 50) / 50,
        "insider_mspr": insider_mspr,
    }


def _analyst_explanation(
    analysts: AnalystData | None,
    target: TargetPrice | None,
) -> dict[str, Any] | None:
    if analysts is None:
        return None
    return {
        "strong_buy": analysts.strong_buy,
        "buy": analysts.buy,
        "hold": analysts.hold,
        "sell": analysts.sell,
        "strong_sell": analysts.strong_sell,
        "total": analysts.total_ratings,
        "consensus_score": analysts.consensus_score,
        "target_price": analysts.target_price,
        "target_upside": target.upside if target and target.source == "analyst" else None,
    }


def generate_recommendation(
    inp: RecommendationInput,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Recommendation:
    """
    Build a complete, auditable recommendation for one ticker.

    Holdings mode applies when a portfolio position is supplied; otherwise the
    research view is used (no portfolio component).

    Args:
        inp: All facts about the ticker
        thresholds: Signal threshold set

    Returns:
        Immutable Recommendation

    Raises:
        ValueError: On an empty ticker, an unsupported insider time range,
            or a malformed price series
    """
    tech = inp.technicals
    if tech is None and inp.prices is not None:
        tech = build_technical_snapshot(inp.prices)

    mode = "holdings" if inp.portfolio is not None else "research"
    as_of = _resolve_as_of(inp, tech)
    params = RecommendationParams(
        ticker=inp.ticker,
        as_of=as_of,
        insider_time_range=inp.insider_time_range,
        mode=mode,
    )
    ticker = params.ticker
    months = params.insider_time_range
    as_of_date = date.fromisoformat(as_of[:10])

    quote = inp.quote
    current_price = quote.current_price if quote and quote.current_price is not None else None
    if current_price is None and tech is not None:
        current_price = tech.current_price
    high_52w = quote.fifty_two_week_high if quote and quote.fifty_two_week_high is not None else None
    if high_52w is None and tech is not None:
        high_52w = tech.fifty_two_week_high
    low_52w = quote.fifty_two_week_low if quote and quote.fifty_two_week_low is not None else None
    if low_52w is None and tech is not None:
        low_52w = tech.fifty_two_week_low

    # Score components
    components: dict[str, ScoreComponent] = {
        "fundamental": score_fundamentals(inp.fundamentals),
        "technical": score_technicals(tech),
        "analyst": score_analysts(inp.analysts, current_price),
        "news_insider": score_news_insider(ticker, inp.news, inp.insider, months, as_of_date),
    }
    portfolio = inp.portfolio
    if portfolio is not None:
        components["portfolio"] = score_position(portfolio, current_price)
    news = score_news(ticker, inp.news)
    insider = score_insider(inp.insider, months, as_of_date)

    weights = HOLDINGS_WEIGHTS if mode == "holdings" else RESEARCH_WEIGHTS
    composite = _composite_score(components, weights)

    fund_pct = components["fundamental"].percent
    tech_pct = components["technical"].percent
    analyst_pct = components["analyst"].percent

    dip = evaluate_dip(
        tech, current_price, high_52w, fund_pct, analyst_pct, news.percent, thresholds
    )
    is_dip = dip.score >= thresholds.dip_trigger
    conviction = calculate_conviction(
        inp.fundamentals,
        inp.analysts,
        tech,
        current_price,
        insider.percent,
        inp.earnings,
        portfolio,
        thresholds,
    )

    # Signals and strategies use a priced target only
    target = resolve_target_price(current_price, portfolio, inp.analysts, allow_estimate=False)
    target_value = target.value if target else None

    weight = portfolio.weight if portfolio else 0.0
    avg_cost = portfolio.avg_cost if portfolio else 0.0
    gain_pct = position_gain_pct(portfolio, current_price) if portfolio else 0.0
    distance_from_avg = 0.0
    if avg_cost > 0 and current_price is not None:
        distance_from_avg = pct_change(current_price, avg_cost) or 0.0

    bias = _technical_bias(components["technical"])
    snap = tech or TechnicalSnapshot()

    ctx = SignalContext(
        fundamental=fund_pct,
        technical=tech_pct,
        analyst=analyst_pct,
        news=news.percent,
        insider=insider.percent,
        dip_score=dip.score,
        dip_quality_passes=dip.quality_passes,
        conviction_score=conviction.score,
        conviction_level=conviction.level,
        target_upside=target.upside if target else None,
        weight=weight,
        gain_pct=gain_pct if portfolio else None,
        current_price=current_price,
        rsi=snap.rsi14,
        stochastic_k=snap.stochastic_k,
        bollinger_upper=snap.bollinger_upper,
        volume_change=snap.volume_change,
        macd_divergence=snap.macd_divergence,
        adx=snap.adx,
        adx_trend=snap.adx_trend,
    )
    signals = generate_signals(ctx, thresholds)
    primary = signals.action or signals.quality

    buy_strategy = calculate_buy_strategy(
        current_price,
        avg_cost,
        weight,
        target_value,
        tech,
        low_52w,
        is_dip,
        is_buyable(primary),
    )
    exit_strategy = calculate_exit_strategy(
        current_price,
        avg_cost,
        gain_pct,
        target_value,
        tech,
        high_52w,
        conviction.level,
        bias,
    )

    insider_mspr, _ = filter_insider_sentiment(inp.insider, months, as_of_date)
    # Combined News+Insider feeds the composite; the breakdown lists its standalone parts
    breakdown = (
        components["fundamental"],
        components["technical"],
        components["analyst"],
        news,
        insider,
    )
    if "portfolio" in components:
        breakdown += (components["portfolio"],)

    explanation = {
        "decision_path": {
            "action_signal": {
                "type": signals.action.type if signals.action else None,
                "reason": signals.action_reason,
            },
            "quality_signal": {
                "type": signals.quality.type,
                "reason": signals.quality_reason,
            },
        },
        "score_breakdown": {
            **{
                c.category: {
                    "points": c.raw_score,
                    "max_points": c.raw_max,
                    "percent": c.percent,
                }
                for c in (*breakdown, components["news_insider"])
            },
            "composite": composite,
            "weights": asdict(weights),
        },
        "technical_indicators": (
            {k: getattr(tech, k) for k in EXPLAINED_INDICATORS} if tech is not None else None
        ),
        "fundamental_data": asdict(inp.fundamentals) if inp.fundamentals else None,
        "analyst_data": _analyst_explanation(inp.analysts, target),
        "dip": {
            "score": dip.score,
            "details": list(dip.details),
            "quality_passes": dip.quality_passes,
            "quality_reasons": list(dip.quality_reasons),
        },
        "conviction": {
            "score": conviction.score,
            "level": conviction.level,
            "details": list(conviction.details),
            "target_source": conviction.target.source if conviction.target else None,
        },
        "signal_evaluation": list(signals.evaluations),
        "thresholds": thresholds.to_dict(),
    }

    rec = Recommendation(
        ticker=ticker,
        name=inp.name,
        mode=mode,
        as_of=as_of,
        current_price=current_price,
        weight=weight,
        avg_cost=avg_cost,
        gain_pct=gain_pct,
        distance_from_avg=distance_from_avg,
        composite_score=composite,
        fundamental_score=fund_pct,
        technical_score=tech_pct,
        analyst_score=analyst_pct,
        news_insider_score=components["news_insider"].percent,
        news_score=news.percent,
        insider_score=insider.percent,
        portfolio_score=components["portfolio"].percent if "portfolio" in components else None,
        conviction_score=conviction.score,
        conviction_level=conviction.level,
        dip_score=dip.score,
        is_dip=is_dip,
        dip_quality_check=dip.quality_passes,
        breakdown=breakdown,
        action_signal=signals.action,
        quality_signal=signals.quality,
        strengths=tuple(_build_strengths(
            fund_pct,
            tech_pct,
            analyst_pct,
            insider.percent,
            conviction.level,
            is_dip and dip.quality_passes,
        )),
        concerns=tuple(_build_concerns(
            fund_pct, tech_pct, analyst_pct, insider.percent, news.percent, weight
        )),
        action_items=tuple(_build_action_items(primary, distance_from_avg)),
        target=target,
        fifty_two_week_high=high_52w,
        fifty_two_week_low=low_52w,
        distance_from_52w_high=(
            (high_52w - current_price) / high_52w * 100
            if high_52w and current_price is not None
            else None
        ),
        technical_bias=bias,
        buy_strategy=buy_strategy,
        exit_strategy=exit_strategy,
        metadata=_build_metadata(tech, current_price, news.percent, insider_mspr),
        explanation=explanation,
    )

    _validate_recommendation_invariants(rec)
    logger.debug(
        f"{ticker}: composite={composite} primary={primary.type} "
        f"dip={dip.score:.0f} conviction={conviction.level}"
    )
    return rec


def _validate_recommendation_invariants(rec: Recommendation) -> None:
    """
    Check structural invariants of a finished recommendation.

    Invariants checked:
    1. Each component percent equals raw_score / raw_max * 100
    2. Each raw_score lies within [0, raw_max]
    3. Composite score lies within [0, 100]
    4. Holdings mode has a Portfolio component and score; research has neither
    5. Breakdown holds 6 components in holdings mode, 5 in research
    6. At most two signals are emitted

    Logs warnings for violations rather than raising.
    """
    violations: list[str] = []

    for c in rec.breakdown:
        if abs(c.percent - c.raw_score / c.raw_max * 100) > 1e-9:
            violations.append(f"{c.category}.percent={c.percent} != raw/max*100")
        if not 0 <= c.raw_score <= c.raw_max:
            violations.append(f"{c.category}.raw_score={c.raw_score} outside [0, {c.raw_max}]")

    if not 0 <= rec.composite_score <= 100:
        violations.append(f"composite_score={rec.composite_score} outside [0, 100]")

    has_portfolio = any(c.category == "Portfolio" for c in rec.breakdown)
    if rec.mode == "holdings" and (not has_portfolio or rec.portfolio_score is None):
        violations.append("holdings mode without Portfolio component")
    if rec.mode == "research" and (has_portfolio or rec.portfolio_score is not None):
        violations.append("research mode with Portfolio component")
    expected_len = 6 if rec.mode == "holdings" else 5
    if len(rec.breakdown) != expected_len:
        violations.append(f"breakdown has {len(rec.breakdown)} components, expected {expected_len}")

    if len(rec.signals) > 2:
        violations.append(f"{len(rec.signals)} signals emitted (max 2)")

    for v in violations:
        logger.warning(f"Recommendation invariant violation ({rec.ticker}): {v}")


def _sort_key(rec: Recommendation) -> tuple[int, int, str]:
    return (rec.primary_signal.priority, -rec.composite_score, rec.ticker)


def generate_all_recommendations(
    inputs: Sequence[RecommendationInput],
    insider_time_range: int | None = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
    max_workers: int | None = None,
) -> dict[str, Any]:
    """
    Generate recommendations for many tickers in parallel.

    Holdings with zero weight are skipped. A ticker whose inputs are invalid
    is reported under "errors" and does not affect the others.

    Args:
        inputs: One RecommendationInput per ticker
        insider_time_range: Override the insider window for every input
        thresholds: Signal threshold set
        max_workers: Thread pool size (default: MAX_WORKERS setting)

    Returns:
        Dict with "recommendations" sorted by (signal priority, composite
        score descending, ticker), "errors" keyed by ticker, and "meta"
    """
    start_time = perf_counter()

    pending: list[RecommendationInput] = []
    skipped: list[str] = []
    for inp in inputs:
        if inp.portfolio is not None and inp.portfolio.weight <= 0:
            skipped.append(inp.ticker)
            continue
        if insider_time_range is not None:
            inp = replace(inp, insider_time_range=insider_time_range)
        pending.append(inp)

    if skipped:
        logger.debug(f"Skipping zero-weight holdings: {skipped}")

    workers = max_workers or Settings.from_env().max_workers
    recommendations: list[Recommendation] = []
    errors: dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(generate_recommendation, inp, thresholds): inp.ticker for inp in pending
        }
        for future in as_completed(futures):
            ticker = futures[future]
            try:
                recommendations.append(future.result())
            except ValueError as e:
                logger.exception(f"Recommendation failed for {ticker}")
                errors[ticker] = str(e)

    recommendations.sort(key=_sort_key)
    duration = (perf_counter() - start_time) * 1000
    logger.info(
        f"Generated {len(recommendations)} recommendations "
        f"({len(errors)} errors, {len(skipped)} skipped) in {duration:.0f}ms"
    )

    return {
        "recommendations": recommendations,
        "errors": errors,
        "meta": build_meta(
            "generate_all_recommendations",
            duration,
            count=len(recommendations),
            skipped=sorted(skipped),
        ),
    }


def recommendation_params(
    inp: RecommendationInput,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> RecommendationParams:
    """Cache parameters for an input: ticker, as_of, window, mode and content hash."""
    tech = inp.technicals
    input_hash = short_hash({
        "input": input_fingerprint(inp),
        "thresholds": thresholds.to_dict(),
    })
    return RecommendationParams(
        ticker=inp.ticker,
        as_of=_resolve_as_of(inp, tech),
        insider_time_range=inp.insider_time_range,
        mode="holdings" if inp.portfolio is not None else "research",
        input_hash=input_hash,
    )


def generate_recommendation_cached(
    inp: RecommendationInput,
    cache: RecommendationCache,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
    ttl: int | None = None,
) -> dict[str, Any]:
    """
    Memoized generate_recommendation returning the canonical dict.

    Args:
        inp: All facts about the ticker
        cache: Recommendation cache
        thresholds: Signal threshold set (part of the key)
        ttl: Cache TTL in seconds (default: CACHE_TTL)

    Returns:
        Canonical Recommendation dict
    """
    params = recommendation_params(inp, thresholds)
    key = params.to_cache_key()

    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"Cache hit: {key}")
        return cached

    logger.debug(f"Cache miss: {key}")
    data = normalize_recommendation(generate_recommendation(inp, thresholds))
    cache.store(params, data, ttl)
    return data
