"""Buy-zone and exit-level planning."""

import logging

from stock_advisor.models import (
    BuyStrategy,
    ConvictionLevel,
    ExitStrategy,
    TechnicalBias,
    TechnicalSnapshot,
)
from stock_advisor.utils.scoring import round_half_up

logger = logging.getLogger(__name__)

# Fibonacci retracements that act as resistance in a downtrend
RESISTANCE_FIB_LEVELS = ("38.2%", "50%", "61.8%")

STOP_DRAWDOWN = {"HIGH": 0.15, "MEDIUM": 0.12, "LOW": 0.08}
TRAILING_BY_CONVICTION = {"HIGH": 15.0, "MEDIUM": 12.0, "LOW": 10.0}


def find_support_price(
    bollinger_lower: float | None,
    sma200: float | None,
    fifty_two_week_low: float | None,
) -> float | None:
    """Second-lowest of the available support levels, or the only one."""
    levels = sorted(x for x in (bollinger_lower, sma200, fifty_two_week_low) if x is not None)
    if not levels:
        return None
    return levels[1] if len(levels) > 1 else levels[0]


def calculate_buy_strategy(
    current_price: float | None,
    avg_cost: float,
    weight: float,
    target_price: float | None,
    tech: TechnicalSnapshot | None,
    fifty_two_week_low: float | None,
    is_dip: bool,
    primary_buyable: bool,
) -> BuyStrategy:
    """
    Buy zone, DCA pacing and risk/reward for adding to a position.

    Args:
        current_price: Latest price
        avg_cost: Average cost basis (0 when not held)
        weight: Portfolio weight in percent (0 when not held)
        target_price: Personal or analyst target
        tech: Technical snapshot (Bollinger lower band, 200-MA)
        fifty_two_week_low: 52-week low
        is_dip: Dip score reached its trigger
        primary_buyable: Primary signal is a buy-type signal

    Returns:
        BuyStrategy
    """
    support = find_support_price(
        tech.bollinger_lower if tech else None,
        tech.sma200 if tech else None,
        fifty_two_week_low,
    )
    price = current_price or 0.0

    zone_low: float | None = None
    zone_high: float | None = None
    if price > 0:
        zone_low = support if support and support < price else price * 0.9
        zone_high = min(avg_cost * 1.05, price) if avg_cost > 0 else price
        if zone_low >= zone_high:
            zone_low = zone_high * 0.9

    in_zone = zone_low is not None and zone_high is not None and zone_low <= price <= zone_high

    if weight > 12:
        dca, reason, max_add = "NO_DCA", "Position overweight (>12%)", 0.0
    elif weight > 8:
        dca, reason, max_add = "CAUTIOUS", "Slightly overweight (8-12%), add every 2 months", 0.5
    elif weight >= 3:
        dca, reason, max_add = "NORMAL", "Balanced position (3-8%), add monthly", 1.0
    else:
        dca, reason, max_add = "AGGRESSIVE", "Underweight (<3%), add every 2 weeks", 2.0

    if not primary_buyable and not is_dip and dca != "NO_DCA":
        dca, reason, max_add = "CAUTIOUS", "No strong buy signal", min(max_add, 0.5)

    risk_reward = None
    if target_price and price > 0 and support and support < price:
        risk_reward = round_half_up((target_price - price) / (price - support), 1)

    return BuyStrategy(
        buy_zone_low=zone_low,
        buy_zone_high=zone_high,
        in_buy_zone=in_zone,
        dca_recommendation=dca,
        dca_reason=reason,
        max_add_percent=max_add,
        risk_reward_ratio=risk_reward,
        support_price=support,
    )


def find_resistance_level(
    current_price: float,
    bollinger_upper: float | None,
    fifty_two_week_high: float | None,
    tech: TechnicalSnapshot | None,
) -> float | None:
    """Nearest resistance above the price."""
    levels = [x for x in (bollinger_upper, fifty_two_week_high) if x is not None]
    fib = tech.fibonacci if tech else None
    if fib is not None and fib.trend == "downtrend":
        levels.extend(fib.levels[k] for k in RESISTANCE_FIB_LEVELS if k in fib.levels)
    above = [r for r in levels if r > current_price]
    return min(above) if above else None


def calculate_exit_strategy(
    current_price: float | None,
    avg_cost: float,
    gain_pct: float,
    target_price: float | None,
    tech: TechnicalSnapshot | None,
    fifty_two_week_high: float | None,
    conviction: ConvictionLevel,
    bias: TechnicalBias,
) -> ExitStrategy:
    """
    Take-profit ladder, stop-loss, trailing stop and holding period.

    Args:
        current_price: Latest price
        avg_cost: Average cost basis (0 when not held)
        gain_pct: Reported unrealized gain %, used for the holding override
        target_price: Personal or analyst target
        tech: Technical snapshot
        fifty_two_week_high: 52-week high
        conviction: Conviction level
        bias: Technical bias

    Returns:
        ExitStrategy
    """
    price = current_price or 0.0
    resistance = None
    tp1 = tp2 = tp3 = None

    if price > 0:
        resistance = find_resistance_level(
            price, tech.bollinger_upper if tech else None, fifty_two_week_high, tech
        )

        tp1 = round_half_up(price * (1.12 if bias == "BULLISH" else 1.08), 2)
        if resistance and resistance < tp1:
            tp1 = resistance

        tp2 = round_half_up(price * (1.25 if bias == "BULLISH" else 1.18), 2)
        if target_price and target_price > price:
            if target_price <= tp1 * 1.1:
                tp1 = target_price
                tp2 = round_half_up(target_price * 1.15, 2)
            elif target_price <= tp2 * 1.1:
                tp2 = target_price

        tp3 = round_half_up(price * (1.5 if conviction == "HIGH" else 1.35), 2)
        if target_price and target_price > tp2:
            tp3 = target_price
        if fifty_two_week_high and fifty_two_week_high > tp3:
            tp3 = fifty_two_week_high

    stop_loss = None
    if price > 0 and avg_cost > 0:
        stop_loss = round_half_up(avg_cost * (1 - STOP_DRAWDOWN[conviction]), 2)
        # Already under water: do not stop out above technical support
        if price < avg_cost and tech is not None and tech.bollinger_lower:
            stop_loss = max(stop_loss, round_half_up(tech.bollinger_lower * 0.97, 2))

    gain_from_cost = (price - avg_cost) / avg_cost * 100 if avg_cost > 0 else 0.0
    if gain_from_cost >= 50:
        trailing = 6.0
    elif gain_from_cost >= 30:
        trailing = 8.0
    elif gain_from_cost >= 20:
        trailing = 10.0
    else:
        trailing = TRAILING_BY_CONVICTION[conviction]

    if conviction == "HIGH" and bias != "BEARISH":
        period, reason = "LONG", "Strong fundamentals and positive outlook"
    elif conviction == "LOW" or bias == "BEARISH":
        period = "SWING"
        if bias == "BEARISH":
            reason = "Bearish technicals - consider quick exit"
        else:
            reason = "Weak fundamentals - trade momentum only"
    else:
        period, reason = "MEDIUM", "Hold for target, reassess quarterly"

    if gain_pct > 50 and conviction != "HIGH":
        period, reason = "SWING", "Large unrealized gain - consider taking profits"

    if tp1 is not None and tp2 is not None and tp3 is not None and not tp1 <= tp2 <= tp3:
        logger.debug(f"Take-profit ladder not monotonic: {tp1}, {tp2}, {tp3}")

    return ExitStrategy(
        take_profit_1=tp1,
        take_profit_2=tp2,
        take_profit_3=tp3,
        stop_loss=stop_loss,
        trailing_stop_percent=trailing,
        holding_period=period,
        holding_reason=reason,
        resistance_level=resistance,
    )
