"""Fundamental score component."""

from stock_advisor.models import FundamentalMetrics, ScoreComponent
from stock_advisor.utils.scoring import build_component

FUNDAMENTAL_MAX = 140

# Leverage above which strong ROE is discounted
ROE_LEVERAGE_PENALTY_DE = 1.5


def _score_peg(peg: float) -> tuple[int, str]:
    # Extreme cheapness is treated as suspect rather than rewarded
    if 0.5 <= peg <= 1.2:
        return 20, f"PEG {peg:.2f} - ideal growth-adjusted valuation"
    if 1.2 < peg <= 2.0:
        return 15, f"PEG {peg:.2f} - fair"
    if 0.3 <= peg < 0.5:
        return 10, f"PEG {peg:.2f} - cheap"
    if 2.0 < peg <= 3.0:
        return 5, f"PEG {peg:.2f} - expensive"
    if peg < 0.3:
        return 0, f"PEG {peg:.2f} - suspiciously low, verify"
    return 0, f"PEG {peg:.2f} - very expensive"


def _score_pe(pe: float) -> tuple[int, str]:
    if pe <= 0:
        return 0, "Negative earnings (loss-making)"
    if pe < 5:
        return 3, f"P/E {pe:.1f} - suspiciously low"
    if pe < 7:
        return 8, f"P/E {pe:.1f} - very low"
    if pe < 10:
        return 15, f"P/E {pe:.1f} - low"
    if pe <= 20:
        return 20, f"P/E {pe:.1f} - sweet spot"
    if pe <= 30:
        return 15, f"P/E {pe:.1f} - moderate"
    if pe <= 40:
        return 8, f"P/E {pe:.1f} - high"
    if pe <= 60:
        return 3, f"P/E {pe:.1f} - very high"
    return 0, f"P/E {pe:.1f} - extreme"


def score_fundamentals(f: FundamentalMetrics | None) -> ScoreComponent:
    """
    Score fundamentals on 140 raw points.

    PEG 0-20, P/E 0-20, ROE 0-30 (minus a leverage penalty), net margin 0-25,
    revenue growth 0-25, debt/equity 0-10, current ratio 0-10. Missing
    fundamentals score 0: absence of data is treated as a genuine negative.

    Args:
        f: Fundamental metrics (None when unavailable)

    Returns:
        "Fundamentals" ScoreComponent
    """
    if f is None:
        return build_component("Fundamentals", 0, FUNDAMENTAL_MAX, ["No fundamental data available"])

    details: list[str] = []
    score = 0.0

    # PEG (0-20), only meaningful for positive values
    if f.peg is not None and f.peg > 0:
        points, note = _score_peg(f.peg)
        score += points
        details.append(note)

    # Absolute P/E (0-20)
    if f.pe is not None:
        points, note = _score_pe(f.pe)
        score += points
        details.append(note)

    # ROE (0-30) with leverage penalty
    if f.roe is not None:
        roe = f.roe
        if roe > 25:
            roe_score = 30
        elif roe > 18:
            roe_score = 24
        elif roe > 12:
            roe_score = 18
        elif roe > 5:
            roe_score = 9
        elif roe > 0:
            roe_score = 4
        else:
            roe_score = 0

        penalty = 0
        if f.debt_to_equity is not None and f.debt_to_equity > ROE_LEVERAGE_PENALTY_DE:
            if roe > 25:
                penalty = -6
            elif roe > 18:
                penalty = -5
            elif roe > 12:
                penalty = -3
        details.append(f"ROE {roe:.1f}%")
        if penalty:
            details.append(f"ROE discounted {penalty} for leverage (D/E {f.debt_to_equity:.2f})")
        score += max(0, roe_score + penalty)

    # Net margin (0-25)
    if f.net_margin is not None:
        margin = f.net_margin
        if margin > 25:
            score += 25
        elif margin > 15:
            score += 20
        elif margin > 8:
            score += 13
        elif margin > 0:
            score += 6
        details.append(f"Net margin {margin:.1f}%")

    # Revenue growth (0-25)
    if f.revenue_growth is not None:
        growth = f.revenue_growth
        if growth > 25:
            score += 25
        elif growth > 15:
            score += 20
        elif growth > 5:
            score += 13
        elif growth > 0:
            score += 6
        details.append(f"Revenue growth {growth:.1f}%")

    # Debt/equity (0-10), lower is better
    if f.debt_to_equity is not None:
        de = f.debt_to_equity
        if de < 0.3:
            score += 10
        elif de < 0.7:
            score += 8
        elif de < 1.5:
            score += 5
        elif de < 2.5:
            score += 2
        details.append(f"D/E {de:.2f}")

    # Current ratio (0-10), higher is better
    if f.current_ratio is not None:
        cr = f.current_ratio
        if cr > 2.0:
            score += 10
        elif cr > 1.5:
            score += 8
        elif cr > 1.0:
            score += 5
        elif cr > 0.5:
            score += 2
        details.append(f"Current ratio {cr:.2f}")

    return build_component("Fundamentals", score, FUNDAMENTAL_MAX, details)
