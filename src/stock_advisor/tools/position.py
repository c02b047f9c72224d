"""Portfolio position score component (holdings view only)."""

from stock_advisor.models import PortfolioContext, ScoreComponent
from stock_advisor.utils.scoring import build_component, pct_change

PORTFOLIO_MAX = 100
TARGET_NEUTRAL_RAW = 17  # midpoint of 0-35 when no personal target


def position_gain_pct(position: PortfolioContext, current_price: float | None) -> float:
    """Unrealized gain %: provided value, else derived from average cost."""
    if position.gain_pct is not None:
        return position.gain_pct
    gain = pct_change(current_price, position.avg_cost) if position.avg_cost > 0 else None
    return gain if gain is not None else 0.0


def score_position(position: PortfolioContext, current_price: float | None) -> ScoreComponent:
    """
    Score the personal position on 100 raw points.

    Personal target upside 0-35, distance below average cost 0-25 (DCA
    opportunity), weight 0-20 (3-6% ideal), unrealized gain 0-20 (large
    gains score lower to bias toward taking profit).

    Args:
        position: Position context
        current_price: Latest price

    Returns:
        "Portfolio" ScoreComponent
    """
    details: list[str] = []
    score = 0.0

    # Personal target upside (0-35)
    upside = None
    if position.target_price is not None and current_price is not None and current_price > 0:
        upside = pct_change(position.target_price, current_price)
    if upside is not None:
        if upside > 30:
            score += 35
        elif upside > 20:
            score += 28
        elif upside > 10:
            score += 21
        elif upside > 5:
            score += 14
        elif upside > 0:
            score += 7
        else:
            details.append(f"Price {abs(upside):.0f}% above personal target - consider taking profit")
        if upside > 0:
            details.append(f"{upside:.0f}% upside to personal target")
    else:
        score += TARGET_NEUTRAL_RAW
        details.append("No personal target set")

    # Distance from average cost (0-25)
    if position.avg_cost > 0 and current_price is not None:
        distance = pct_change(current_price, position.avg_cost)
        if distance < -15:
            score += 25
            details.append(f"{distance:.0f}% below average cost - DCA opportunity")
        elif distance < -10:
            score += 20
            details.append(f"{distance:.0f}% below average cost - add on dip")
        elif distance < 0:
            score += 15
        elif distance < 25:
            score += 10
        elif distance < 50:
            score += 5
            details.append(f"+{distance:.0f}% above average cost - solid gain")
        else:
            score += 2
            details.append(f"+{distance:.0f}% above average cost - consider rebalancing")

    # Position weight (0-20)
    weight = position.weight
    if weight > 12:
        score += 4
        details.append(f"Weight {weight:.1f}% - concentration risk")
    elif weight > 6:
        score += 12
    elif weight >= 3:
        score += 20
    else:
        score += 15

    # Unrealized gain (0-20)
    gain = position_gain_pct(position, current_price)
    if gain > 75:
        score += 10
    elif gain > 40:
        score += 13
        details.append(f"+{gain:.0f}% gain - consider partial profit")
    elif gain > 15:
        score += 16
    elif gain > 0:
        score += 20
    elif gain > -15:
        score += 14
    elif gain > -30:
        score += 10
    else:
        score += 4

    return build_component("Portfolio", score, PORTFOLIO_MAX, details)
