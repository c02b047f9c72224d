"""Long-term conviction score."""

from collections.abc import Sequence

from stock_advisor.config import DEFAULT_THRESHOLDS, Thresholds
from stock_advisor.models import (
    AnalystData,
    ConvictionLevel,
    ConvictionResult,
    EarningsSurprise,
    FundamentalMetrics,
    PortfolioContext,
    TechnicalSnapshot,
)
from stock_advisor.tools.analysts import resolve_target_price
from stock_advisor.utils.scoring import round_half_up

CONVICTION_MAX = 100


def count_earnings_beats(earnings: Sequence[EarningsSurprise]) -> int | None:
    """Beats among the last 4 quarters (most recent first); None with fewer than 4."""
    if len(earnings) < 4:
        return None
    return sum(
        1 for e in earnings[:4] if e.surprise_percent is not None and e.surprise_percent > 0
    )


def conviction_level(score: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> ConvictionLevel:
    if score >= thresholds.conviction_high:
        return "HIGH"
    if score >= thresholds.conviction_medium:
        return "MEDIUM"
    return "LOW"


def calculate_conviction(
    fundamentals: FundamentalMetrics | None,
    analysts: AnalystData | None,
    tech: TechnicalSnapshot | None,
    current_price: float | None,
    insider_pct: float,
    earnings: Sequence[EarningsSurprise] = (),
    portfolio: PortfolioContext | None = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> ConvictionResult:
    """
    Score long-term holding quality on 100 points.

    Fundamental stability (40): ROE, 5-year revenue growth, net margin, leverage.
    Market position (30): consensus, target upside, earnings-beat streak.
    Momentum and sentiment (30): insider score, 200-MA position, volume health.

    Args:
        fundamentals: Fundamental metrics
        analysts: Analyst data (consensus and target)
        tech: Technical snapshot
        current_price: Latest price
        insider_pct: Standalone insider score (0-100)
        earnings: Earnings surprises, most recent first
        portfolio: Position context carrying a personal target
        thresholds: Level cutoffs

    Returns:
        ConvictionResult with the target used for the upside tier
    """
    score = 0.0
    details: list[str] = []
    f = fundamentals or FundamentalMetrics()

    # Fundamental stability (40)
    if f.roe is not None:
        if f.roe > 20:
            score += 12
            details.append(f"Strong ROE: {f.roe:.1f}%")
        elif f.roe > 15:
            score += 9
        elif f.roe > 10:
            score += 5

    if f.revenue_growth_5y is not None:
        if f.revenue_growth_5y > 15:
            score += 10
            details.append(f"5Y revenue CAGR: {f.revenue_growth_5y:.1f}%")
        elif f.revenue_growth_5y > 10:
            score += 7
        elif f.revenue_growth_5y > 5:
            score += 4

    if f.net_margin is not None:
        if f.net_margin > 20:
            score += 10
            details.append(f"High margins: {f.net_margin:.1f}%")
        elif f.net_margin > 12:
            score += 7
        elif f.net_margin > 5:
            score += 3

    if f.debt_to_equity is not None:
        if f.debt_to_equity < 0.5:
            score += 8
            details.append("Low debt")
        elif f.debt_to_equity < 1:
            score += 5
        elif f.debt_to_equity < 2:
            score += 2

    # Market position (30)
    consensus = analysts.consensus_score if analysts else None
    if consensus is not None and consensus > 0.5:
        score += min(12, round_half_up(consensus * 6))
        details.append("Positive analyst consensus")

    target = resolve_target_price(current_price, portfolio, analysts, allow_estimate=True)
    upside = target.upside if target else None
    if upside is not None:
        if upside > 25:
            score += 10
            if target.source == "personal":
                details.append(f"{upside:.0f}% upside to target")
            elif target.source == "analyst":
                details.append(f"{upside:.0f}% upside to analyst target")
        elif upside > 15:
            score += 7
            if target.source == "analyst":
                details.append(f"{upside:.0f}% upside to analyst target")
        elif upside > 5:
            score += 3

    beats = count_earnings_beats(earnings)
    if beats is not None:
        if beats >= 4:
            score += 8
            details.append("Beat earnings 4/4 quarters")
        elif beats >= 3:
            score += 6
            details.append(f"Beat earnings {beats}/4 quarters")
        elif beats >= 2:
            score += 3

    # Momentum and sentiment (30)
    if insider_pct > 65:
        score += 12
        details.append("Strong insider buying")
    elif insider_pct > 55:
        score += 8
    elif insider_pct > 45:
        score += 4

    if tech is not None and tech.sma200 and current_price is not None:
        ratio = current_price / tech.sma200
        if ratio > 1.05:
            score += 10
            details.append("Price solidly above 200-MA (uptrend)")
        elif ratio > 1.0:
            score += 7
            details.append("Price above 200-MA support")
        elif ratio > 0.95:
            score += 3
            details.append("Price near 200-MA")

    if tech is not None and tech.volume_change is not None:
        if tech.volume_change > 20:
            score += 8
            details.append("Rising volume interest")
        elif tech.volume_change > 0:
            score += 5
            details.append("Stable volume")
        elif tech.volume_change > -30:
            score += 2

    score = min(CONVICTION_MAX, score)
    return ConvictionResult(
        score=score,
        level=conviction_level(score, thresholds),
        details=tuple(details),
        target=target,
    )
