"""Dip (oversold opportunity) score and its quality gate."""

from stock_advisor.config import DEFAULT_THRESHOLDS, Thresholds
from stock_advisor.models import DipResult, TechnicalSnapshot
from stock_advisor.utils.scoring import pct_change

DIP_MAX = 100


def calculate_dip_score(
    tech: TechnicalSnapshot | None,
    current_price: float | None,
    fifty_two_week_high: float | None,
) -> tuple[float, list[str]]:
    """
    Score how oversold a stock is, independent of its quality.

    RSI 0-25, Bollinger lower-band proximity 0-20, distance below the 200-MA
    0-20, drop from the 52-week high 0-15, MACD divergence or histogram
    improvement 0-10, volume spike 0-10. Capped at 100.

    Args:
        tech: Technical snapshot (None scores 0 on every technical tier)
        current_price: Latest price
        fifty_two_week_high: 52-week high

    Returns:
        Tuple of (score, details)
    """
    score = 0.0
    details: list[str] = []

    if tech is None:
        tech = TechnicalSnapshot()

    # RSI (0-25)
    rsi = tech.rsi14
    if rsi is not None:
        if rsi <= 25:
            score += 25
            details.append(f"RSI {rsi:.0f} - extremely oversold")
        elif rsi < 30:
            score += 20
            details.append(f"RSI {rsi:.0f} - oversold")
        elif rsi < 35:
            score += 15
            details.append(f"RSI {rsi:.0f} - mildly oversold")
        elif rsi < 40:
            score += 8
            details.append(f"RSI {rsi:.0f} - approaching oversold")

    # Bollinger lower band (0-20)
    lower, upper = tech.bollinger_lower, tech.bollinger_upper
    if lower is not None and upper is not None and tech.bollinger_middle is not None and current_price is not None:
        band_width = upper - lower
        if current_price < lower - band_width * 0.5:
            score += 20
            details.append("Price far below lower Bollinger band")
        elif current_price < lower:
            score += 15
            details.append("Price below lower Bollinger band")
        elif current_price < lower + band_width * 0.2:
            score += 8
            details.append("Price in lower Bollinger zone")

    # Distance below 200-MA (0-20)
    distance = pct_change(current_price, tech.sma200)
    if distance is not None:
        if distance < -15:
            score += 20
            details.append(f"Price {abs(distance):.0f}% below 200-MA")
        elif distance < -10:
            score += 15
            details.append(f"Price {abs(distance):.0f}% below 200-MA")
        elif distance < -5:
            score += 10
            details.append(f"Price {abs(distance):.0f}% below 200-MA")
        elif distance < 0:
            score += 5
            details.append("Price slightly below 200-MA")

    # Drop from 52-week high (0-15)
    if fifty_two_week_high and current_price is not None:
        drop = (fifty_two_week_high - current_price) / fifty_two_week_high * 100
        if drop > 35:
            score += 15
        elif drop > 25:
            score += 12
        elif drop > 15:
            score += 8
        elif drop > 10:
            score += 4
        if drop > 10:
            details.append(f"{drop:.0f}% below 52-week high")

    # MACD (0-10): confirmed divergence, else histogram improvement as a proxy
    histogram = tech.macd_histogram
    if tech.macd_divergence == "bullish":
        score += 10
        details.append("Bullish MACD divergence")
    elif histogram is not None:
        below_ma = (
            current_price is not None and tech.sma200 is not None and current_price < tech.sma200
        )
        if histogram > 0 and tech.macd is not None:
            if below_ma:
                score += 10
                details.append("MACD histogram positive below 200-MA")
        elif -0.5 < histogram <= 0:
            score += 5
            details.append("MACD histogram improving")

    # Volume spike (0-10), volume_change is % vs 20-bar average
    volume_change = tech.volume_change
    if volume_change is not None:
        if volume_change > 100:
            score += 10
            details.append("Extreme volume - possible capitulation")
        elif volume_change > 50:
            score += 7
            details.append("High volume")
        elif volume_change > 0:
            score += 3
            details.append("Above-average volume")

    return min(DIP_MAX, score), details


def check_dip_quality(
    fundamental_pct: float,
    analyst_pct: float,
    news_pct: float,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> tuple[bool, list[str]]:
    """
    Gate a dip on quality: an oversold stock with weak fundamentals, bearish
    analysts or very negative news is not an opportunity.

    Returns:
        Tuple of (passes, reasons for failing)
    """
    reasons: list[str] = []
    if fundamental_pct < thresholds.dip_gate_fundamental:
        reasons.append("Weak fundamentals")
    if analyst_pct < thresholds.dip_gate_analyst:
        reasons.append("Analysts bearish")
    if news_pct < thresholds.dip_gate_news:
        reasons.append("Very negative news")
    return not reasons, reasons


def evaluate_dip(
    tech: TechnicalSnapshot | None,
    current_price: float | None,
    fifty_two_week_high: float | None,
    fundamental_pct: float,
    analyst_pct: float,
    news_pct: float,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> DipResult:
    """Dip score plus quality gate as a single result."""
    score, details = calculate_dip_score(tech, current_price, fifty_two_week_high)
    passes, reasons = check_dip_quality(fundamental_pct, analyst_pct, news_pct, thresholds)
    return DipResult(
        score=score,
        details=tuple(details),
        quality_passes=passes,
        quality_reasons=tuple(reasons),
    )
