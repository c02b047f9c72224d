"""Analyst score component and target price resolution."""

from stock_advisor.models import AnalystData, PortfolioContext, ScoreComponent, TargetPrice
from stock_advisor.utils.scoring import build_component, pct_change

ANALYST_MAX = 80


def score_analysts(analysts: AnalystData | None, current_price: float | None) -> ScoreComponent:
    """
    Score analyst opinion on 80 raw points.

    Consensus 0-50, coverage 0-15, analyst target upside 0-10, rating
    agreement 0-5.

    Args:
        analysts: Analyst consensus data (None when unavailable)
        current_price: Latest price, for target upside

    Returns:
        "Analyst" ScoreComponent
    """
    if analysts is None:
        return build_component("Analyst", 0, ANALYST_MAX, ["No analyst data available"])

    details: list[str] = []
    score = 0.0

    # Consensus (0-50), 7 tiers from Strong Sell to Strong Buy
    if analysts.consensus_score is not None:
        cs = analysts.consensus_score
        if cs > 1.5:
            points, label = 50, "Strong Buy"
        elif cs > 1.0:
            points, label = 40, "Buy"
        elif cs > 0.5:
            points, label = 32, "Moderate Buy"
        elif cs > 0.0:
            points, label = 25, "Weak Buy"
        elif cs > -0.5:
            points, label = 16, "Hold"
        elif cs > -1.0:
            points, label = 8, "Sell"
        else:
            points, label = 0, "Strong Sell"
        score += points
        details.append(f"Consensus {label} ({cs:+.2f})")

    # Coverage (0-15)
    count = analysts.analyst_count
    if count is None and analysts.total_ratings > 0:
        count = analysts.total_ratings
    if count is not None:
        if count >= 20:
            score += 15
        elif count >= 10:
            score += 12
        elif count >= 5:
            score += 8
        elif count >= 1:
            score += 4
        details.append(f"{count} analysts covering")

    # Target upside (0-10)
    upside = None
    if analysts.target_price and current_price and current_price > 0:
        upside = pct_change(analysts.target_price, current_price)
    if upside is not None:
        if upside > 30:
            score += 10
        elif upside > 15:
            score += 8
        elif upside > 5:
            score += 5
        elif upside > -5:
            score += 3
        else:
            score += 1
        details.append(f"Analyst target upside {upside:+.0f}%")

    # Agreement (0-5): a clear majority in one bucket
    total = analysts.total_ratings
    if total > 0:
        bullish_pct = (analysts.strong_buy + analysts.buy) / total * 100
        hold_pct = analysts.hold / total * 100
        sell_pct = (analysts.sell + analysts.strong_sell) / total * 100
        top = max(bullish_pct, hold_pct, sell_pct)
        if top > 60:
            score += 5
            details.append("Strong analyst agreement")
        elif top > 50:
            score += 4
        elif top >= 30:
            score += 2
        else:
            score += 1

    return build_component("Analyst", score, ANALYST_MAX, details)


def estimate_upside_from_consensus(consensus_score: float | None) -> float | None:
    """Proxy upside (%) when no target price exists."""
    if consensus_score is None:
        return None
    if consensus_score >= 1.5:
        return 25.0
    if consensus_score >= 1.0:
        return 15.0
    if consensus_score >= 0.5:
        return 8.0
    return None


def resolve_target_price(
    current_price: float | None,
    portfolio: PortfolioContext | None,
    analysts: AnalystData | None,
    allow_estimate: bool = True,
) -> TargetPrice | None:
    """
    Resolve the target price with provenance.

    Priority: personal target -> analyst target -> consensus estimate.

    Args:
        current_price: Latest price
        portfolio: Position context carrying a personal target
        analysts: Analyst data carrying a consensus target
        allow_estimate: Fall back to a consensus-derived upside (no price)

    Returns:
        TargetPrice, or None when no source applies
    """
    has_price = current_price is not None and current_price > 0

    if has_price and portfolio is not None and portfolio.target_price:
        return TargetPrice(
            value=portfolio.target_price,
            upside=pct_change(portfolio.target_price, current_price),
            source="personal",
        )
    if has_price and analysts is not None and analysts.target_price:
        return TargetPrice(
            value=analysts.target_price,
            upside=pct_change(analysts.target_price, current_price),
            source="analyst",
        )
    if allow_estimate and analysts is not None and analysts.consensus_score is not None:
        return TargetPrice(
            value=None,
            upside=estimate_upside_from_consensus(analysts.consensus_score),
            source="estimated",
        )
    return None
