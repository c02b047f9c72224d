"""Technical snapshot builder and technical score component."""

import logging
from collections.abc import Sequence

import pandas as pd

from stock_advisor.models import FibonacciLevels, PriceBar, ScoreComponent, TechnicalSnapshot
from stock_advisor.utils.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_fibonacci_levels,
    calculate_macd,
    calculate_obv,
    calculate_rsi,
    calculate_sma_series,
    calculate_stochastic,
    classify_adx_direction,
    classify_adx_strength,
    classify_macd_trend,
    classify_obv_trend,
    detect_macd_divergence,
    detect_obv_divergence,
    latest,
)
from stock_advisor.utils.ohlcv import standardize_ohlcv
from stock_advisor.utils.scoring import build_component, pct_change

logger = logging.getLogger(__name__)

TECHNICAL_MAX = 120
TECHNICAL_NEUTRAL_RAW = 60  # 50% when no snapshot
TRADING_DAYS_52W = 252
HISTORY_LIMIT = 252


def _calc_sma_slope_pct_per_day(
    sma_series: pd.Series,
    slope_window: int = 20,
) -> float | None:
    """Calculate SMA slope as percent change per day over slope_window."""
    series = sma_series.dropna()
    if len(series) < slope_window + 1:
        return None
    start = series.iloc[-(slope_window + 1)]
    end = series.iloc[-1]
    if start == 0 or pd.isna(start) or pd.isna(end):
        return None
    return float((end - start) / start / slope_window * 100)


def _history_points(
    dates: pd.Series,
    limit: int,
    **columns: pd.Series,
) -> list[dict]:
    """Date-tagged points for the trailing `limit` bars where every column is defined."""
    frame = pd.concat(columns, axis=1).dropna().tail(limit)
    points = []
    for idx, row in frame.iterrows():
        point = {"date": dates.loc[idx]}
        point.update({name: round(float(value), 4) for name, value in row.items()})
        points.append(point)
    return points


def _label(value: float | None, high: float, low: float, labels: tuple[str, str, str]) -> str | None:
    if value is None:
        return None
    if value > high:
        return labels[0]
    if value < low:
        return labels[1]
    return labels[2]


def build_technical_snapshot(
    prices: pd.DataFrame | Sequence[PriceBar],
    history_limit: int = HISTORY_LIMIT,
) -> TechnicalSnapshot:
    """
    Compute every indicator for a price series.

    Args:
        prices: OHLCV DataFrame or PriceBar sequence (any order; sorted here)
        history_limit: Max points kept per history array (default: 252)

    Returns:
        TechnicalSnapshot with latest values and bounded histories. Indicators
        lacking enough bars are None.
    """
    df = standardize_ohlcv(prices)
    if len(df) == 0:
        return TechnicalSnapshot()

    dates = df["date"]
    close = df["close"]
    high = df["high"]
    low = df["low"]
    volume = df["volume"]

    current_price = latest(close)

    # Moving Averages
    sma_20 = calculate_sma_series(close, 20)
    sma_50 = calculate_sma_series(close, 50)
    sma_200 = calculate_sma_series(close, 200)
    sma_50_val = latest(sma_50)
    sma_200_val = latest(sma_200)
    sma_200_slope = _calc_sma_slope_pct_per_day(sma_200, slope_window=20)

    # RSI
    rsi_val = latest(calculate_rsi(close, 14))

    # MACD
    macd_data = calculate_macd(close, 12, 26, 9)
    macd_val = latest(macd_data["macd_line"])
    histogram_val = latest(macd_data["histogram"])
    macd_divergence = (
        detect_macd_divergence(close, macd_data["macd_line"])
        if len(macd_data["macd_line"]) > 0
        else None
    )

    # Bollinger Bands
    bands = calculate_bollinger_bands(close, 20, 2.0)
    bb_upper = latest(bands["upper"])
    bb_middle = latest(bands["middle"])
    bb_lower = latest(bands["lower"])
    bb_position = None
    bb_signal = None
    if current_price is not None and bb_upper is not None and bb_lower is not None:
        width = bb_upper - bb_lower
        bb_position = (current_price - bb_lower) / width * 100 if width > 0 else 50.0
        if current_price > bb_upper:
            bb_signal = "overbought"
        elif current_price < bb_lower:
            bb_signal = "oversold"
        else:
            bb_signal = "neutral"

    # Stochastic
    stoch = calculate_stochastic(close, high, low, 14, 3)
    stoch_k = latest(stoch["k"])
    stoch_d = latest(stoch["d"])

    # Volume
    current_volume = latest(volume)
    avg_volume_20 = float(volume.iloc[-20:].mean()) if len(volume) >= 20 else None
    volume_ratio = (
        current_volume / avg_volume_20
        if current_volume is not None and avg_volume_20
        else None
    )
    volume_change = (volume_ratio - 1) * 100 if volume_ratio is not None else None

    # ATR
    atr_series = calculate_atr(high, low, close, 14)
    atr_val = latest(atr_series)
    atr_pct = atr_val / current_price * 100 if atr_val is not None and current_price else None

    # OBV
    obv_series = calculate_obv(close, volume)
    obv_sma = calculate_sma_series(obv_series, 20)

    # ADX
    adx_data = calculate_adx(high, low, close, 14)
    adx_val = latest(adx_data["adx"])
    plus_di = latest(adx_data["plus_di"])
    minus_di = latest(adx_data["minus_di"])

    # Fibonacci
    fib = calculate_fibonacci_levels(high, low, close, lookback=50)
    fibonacci = FibonacciLevels(**fib) if fib is not None else None

    # 52-week range
    window_high = high.iloc[-TRADING_DAYS_52W:]
    window_low = low.iloc[-TRADING_DAYS_52W:]
    week_52_high = float(window_high.max()) if not window_high.isna().all() else None
    week_52_low = float(window_low.min()) if not window_low.isna().all() else None

    history = {
        "prices": _history_points(dates, history_limit, close=close, volume=volume),
        "sma50": _history_points(dates, history_limit, sma50=sma_50),
        "sma200": _history_points(dates, history_limit, sma200=sma_200),
        "macd": _history_points(
            dates, history_limit,
            macd=macd_data["macd_line"],
            signal=macd_data["signal_line"],
            histogram=macd_data["histogram"],
        ),
        "bollinger": _history_points(
            dates, history_limit,
            upper=bands["upper"], middle=bands["middle"], lower=bands["lower"],
        ),
        "stochastic": _history_points(dates, history_limit, k=stoch["k"], d=stoch["d"]),
        "atr": _history_points(dates, history_limit, atr=atr_series),
        "obv": _history_points(dates, history_limit, obv=obv_series, obv_sma=obv_sma),
        "adx": _history_points(
            dates, history_limit,
            adx=adx_data["adx"], plus_di=adx_data["plus_di"], minus_di=adx_data["minus_di"],
        ),
    }

    logger.debug(f"Built technical snapshot from {len(df)} bars ending {dates.iloc[-1]}")

    return TechnicalSnapshot(
        as_of=str(dates.iloc[-1]),
        bars=len(df),
        current_price=current_price,
        sma20=latest(sma_20),
        sma50=sma_50_val,
        sma200=sma_200_val,
        sma200_rising=(sma_200_slope > 0) if sma_200_slope is not None else None,
        price_vs_sma50=pct_change(current_price, sma_50_val),
        price_vs_sma200=pct_change(current_price, sma_200_val),
        ema12=latest(calculate_ema(close, 12)),
        ema26=latest(calculate_ema(close, 26)),
        rsi14=rsi_val,
        rsi_signal=_label(rsi_val, 70, 30, ("overbought", "oversold", "neutral")),
        macd=macd_val,
        macd_signal=latest(macd_data["signal_line"]),
        macd_histogram=histogram_val,
        macd_trend=classify_macd_trend(macd_val, histogram_val),
        macd_divergence=macd_divergence,
        bollinger_upper=bb_upper,
        bollinger_middle=bb_middle,
        bollinger_lower=bb_lower,
        bollinger_position=bb_position,
        bollinger_signal=bb_signal,
        stochastic_k=stoch_k,
        stochastic_d=stoch_d,
        stochastic_signal=_label(stoch_k, 80, 20, ("overbought", "oversold", "neutral")),
        current_volume=current_volume,
        avg_volume20=avg_volume_20,
        volume_change=volume_change,
        volume_signal=_label(volume_ratio, 1.5, 0.7, ("high", "low", "normal")),
        atr14=atr_val,
        atr_percent=atr_pct,
        atr_signal=_label(atr_pct, 3.0, 1.5, ("high", "low", "normal")),
        obv=latest(obv_series),
        obv_trend=classify_obv_trend(obv_series, 20),
        obv_divergence=detect_obv_divergence(close, obv_series, 20),
        adx=adx_val,
        plus_di=plus_di,
        minus_di=minus_di,
        adx_signal=classify_adx_strength(adx_val),
        adx_trend=classify_adx_direction(plus_di, minus_di),
        fibonacci=fibonacci,
        fifty_two_week_high=week_52_high,
        fifty_two_week_low=week_52_low,
        history=history,
    )


def score_technicals(tech: TechnicalSnapshot | None) -> ScoreComponent:
    """
    Score technicals on 120 raw points.

    RSI 0-15, MACD 0-35 (with +/-7 divergence), Bollinger 0-10, ADX 0-25,
    200-MA position 0-25, volume confirmation 0-10. Missing snapshot scores
    the neutral 60/120.
    """
    if tech is None or tech.current_price is None:
        return build_component(
            "Technical", TECHNICAL_NEUTRAL_RAW, TECHNICAL_MAX, ["No technical data available"]
        )

    details: list[str] = []
    score = 0.0
    price = tech.current_price

    # RSI (0-15): oversold rewarded
    if tech.rsi14 is not None:
        rsi = tech.rsi14
        if rsi < 20:
            rsi_score, note = 15, "extremely oversold"
        elif rsi < 30:
            rsi_score, note = 13, "oversold"
        elif rsi < 40:
            rsi_score, note = 11, "undervalued"
        elif rsi < 50:
            rsi_score, note = 9, "neutral, slightly weak"
        elif rsi < 60:
            rsi_score, note = 7, "neutral, slightly strong"
        elif rsi < 70:
            rsi_score, note = 5, "leaning overbought"
        elif rsi < 80:
            rsi_score, note = 3, "overbought"
        else:
            rsi_score, note = 1, "extremely overbought"
        details.append(f"RSI {rsi:.0f} - {note}")
        score += rsi_score

    # MACD (0-35)
    if tech.macd_histogram is not None:
        histogram = tech.macd_histogram
        trend = tech.macd_trend
        if histogram > 0 and trend == "bullish":
            macd_score, note = 28, "strong bullish momentum"
        elif histogram > 0:
            macd_score, note = 23, "bullish"
        elif -0.5 < histogram <= 0:
            macd_score, note = 12, "slightly bearish"
        elif histogram < 0 and trend == "bearish":
            macd_score, note = 3, "strong bearish momentum"
        elif histogram < 0:
            macd_score, note = 7, "bearish"
        else:
            macd_score, note = 16, "neutral"
        details.append(f"MACD {note}")

        if tech.macd_divergence == "bullish":
            macd_score += 7
            details.append("MACD bullish divergence")
        elif tech.macd_divergence == "bearish":
            macd_score -= 7
            details.append("MACD bearish divergence")
        score += min(35, max(0, macd_score))

    # Bollinger (0-10)
    if tech.bollinger_upper is not None and tech.bollinger_lower is not None:
        upper = tech.bollinger_upper
        lower = tech.bollinger_lower
        middle = tech.bollinger_middle if tech.bollinger_middle is not None else (upper + lower) / 2
        band_width = upper - lower

        if price < lower - band_width * 0.5:
            bb_score, note = 9, "far below lower band"
        elif price < lower:
            bb_score, note = 7, "below lower band"
        elif price < middle:
            bb_score, note = 5, "in lower band zone"
        elif price < upper:
            bb_score, note = 4, "in upper band zone"
        elif price < upper + band_width * 0.5:
            bb_score, note = 2, "above upper band"
        else:
            bb_score, note = 1, "far above upper band"
        details.append(f"Price {note}")

        bandwidth_pct = band_width / middle * 100 if middle > 0 else None
        if bandwidth_pct is not None and bandwidth_pct < 5:
            bb_score = min(10, bb_score + 1)
            details.append("Bollinger squeeze detected")
        score += bb_score

    # ADX (0-25): strength x direction
    if tech.adx is not None and tech.plus_di is not None and tech.minus_di is not None:
        adx = tech.adx
        is_uptrend = tech.plus_di > tech.minus_di
        direction = "uptrend" if is_uptrend else "downtrend"
        if adx > 40:
            adx_score, note = 25, "very strong trend"
        elif adx >= 30:
            adx_score, note = (21 if is_uptrend else 14), f"strong {direction}"
        elif adx >= 25:
            adx_score, note = (16 if is_uptrend else 10), f"moderate {direction}"
        elif adx >= 20:
            adx_score, note = 6, "weak trend"
        else:
            adx_score, note = 3, "sideways"
        details.append(f"ADX {adx:.0f} - {note}")
        score += adx_score

    # 200-MA position (0-25)
    if tech.sma200 is not None:
        vs_200 = tech.price_vs_sma200
        if vs_200 is None:
            vs_200 = pct_change(price, tech.sma200) or 0.0
        rising = tech.sma200_rising if tech.sma200_rising is not None else vs_200 > 5
        if price > tech.sma200 and rising:
            ma_score, note = 25, "above rising 200-MA"
        elif price > tech.sma200:
            ma_score, note = 19, "above 200-MA"
        elif vs_200 >= -5:
            ma_score, note = 12, "at key 200-MA level"
        elif vs_200 >= -15:
            ma_score, note = 6, "below 200-MA"
        else:
            ma_score, note = 0, "far below 200-MA"
        details.append(f"Price {note}")
        score += ma_score

    # Volume confirmation (0-10)
    if tech.current_volume is not None and tech.avg_volume20:
        volume_ratio = tech.current_volume / tech.avg_volume20
        price_up = tech.price_vs_sma50 is not None and tech.price_vs_sma50 > 0
        if volume_ratio > 1.5 and price_up:
            vol_score, note = 10, "High volume confirms advance"
        elif volume_ratio > 1.5:
            vol_score, note = 8, "High volume on weakness - possible capitulation"
        elif volume_ratio > 1.0:
            vol_score, note = 7, "Above-average volume"
        elif volume_ratio >= 0.7:
            vol_score, note = 5, "Normal volume"
        else:
            vol_score, note = 2, "Low volume"
        details.append(note)
        score += vol_score

    return build_component("Technical", score, TECHNICAL_MAX, details)
