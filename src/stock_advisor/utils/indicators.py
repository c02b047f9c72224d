"""Technical indicator calculations.

All functions take chronologically ordered inputs (oldest first). Series
outputs keep the input index, so the first label of a result marks the bar
on which the indicator became computable. Inputs shorter than an
indicator's minimum length yield an empty Series (or None for scalars);
that is an expected "no data" state, not an error.
"""

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

FIBONACCI_RATIOS = {
    "0%": 0.0,
    "23.6%": 0.236,
    "38.2%": 0.382,
    "50%": 0.5,
    "61.8%": 0.618,
    "78.6%": 0.786,
    "100%": 1.0,
}


def _as_series(values: pd.Series | Sequence[float]) -> pd.Series:
    """Coerce list-likes to a float Series with a positional index."""
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(list(values), dtype=float)


def _empty() -> pd.Series:
    return pd.Series(dtype=float)


def _seeded_ewm(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Exponential smoothing seeded with the simple mean of the first `period` values.

    Output starts at position period-1. With alpha=2/(period+1) this is the
    classic EMA; with alpha=1/period it is Wilder smoothing.
    """
    if period <= 0 or len(values) < period:
        return _empty()
    seed = values.iloc[:period].mean()
    seeded = pd.concat(
        [pd.Series([seed], index=values.index[period - 1 : period]), values.iloc[period:]]
    )
    return seeded.ewm(alpha=alpha, adjust=False).mean()


def latest(series: pd.Series) -> float | None:
    """Last value of a series as float, or None if empty/NaN."""
    if series is None or len(series) == 0:
        return None
    value = series.iloc[-1]
    if pd.isna(value):
        return None
    return float(value)


def calculate_sma(prices: pd.Series | Sequence[float], period: int) -> float | None:
    """
    Calculate Simple Moving Average of the first `period` prices.

    The caller controls ordering and windowing (pass a tail slice for the
    latest value).

    Args:
        prices: Price sequence
        period: Number of periods for the average

    Returns:
        SMA value, or None if fewer than `period` prices
    """
    series = _as_series(prices)
    if period <= 0 or len(series) < period:
        return None
    return float(series.iloc[:period].mean())


def calculate_sma_series(prices: pd.Series | Sequence[float], period: int) -> pd.Series:
    """
    Calculate rolling Simple Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        SMA series starting at position period-1 (empty if insufficient data)
    """
    series = _as_series(prices)
    if period <= 0 or len(series) < period:
        return _empty()
    return series.rolling(window=period, min_periods=period).mean().iloc[period - 1 :]


def calculate_ema(prices: pd.Series | Sequence[float], period: int) -> pd.Series:
    """
    Calculate Exponential Moving Average.

    Seeded with the SMA of the first `period` values, then smoothed with
    multiplier 2/(period+1).

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        EMA series of length len(prices) - period + 1
    """
    series = _as_series(prices)
    return _seeded_ewm(series, period, alpha=2 / (period + 1))


def calculate_macd(
    prices: pd.Series | Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> dict[str, Any]:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    Args:
        prices: Price series (typically close prices)
        fast: Fast EMA period (default: 12)
        slow: Slow EMA period (default: 26)
        signal: Signal line period (default: 9)

    Returns:
        Dict with length-aligned 'macd_line', 'signal_line', 'histogram' series
        and 'start_index' (position of the first aligned bar in the input).
        All series are empty below slow + signal - 1 bars.
    """
    series = _as_series(prices)
    min_bars = slow + signal - 1
    if len(series) < min_bars:
        logger.debug(f"MACD needs {min_bars} bars, got {len(series)}")
        return {
            "macd_line": _empty(),
            "signal_line": _empty(),
            "histogram": _empty(),
            "start_index": None,
        }

    ema_fast = calculate_ema(series, fast)
    ema_slow = calculate_ema(series, slow)

    # Align fast EMA onto the slow EMA's bars
    fast_aligned = ema_fast.iloc[len(ema_fast) - len(ema_slow) :]
    macd_full = pd.Series(
        fast_aligned.to_numpy() - ema_slow.to_numpy(),
        index=ema_slow.index,
    )

    signal_line = calculate_ema(macd_full, signal)
    macd_line = macd_full.iloc[len(macd_full) - len(signal_line) :]
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line,
        "signal_line": signal_line,
        "histogram": histogram,
        "start_index": len(series) - len(signal_line),
    }


def classify_macd_trend(macd: float | None, histogram: float | None) -> str | None:
    """bullish if histogram and MACD are both positive, bearish if both negative."""
    if macd is None or histogram is None:
        return None
    if histogram > 0 and macd > 0:
        return "bullish"
    if histogram < 0 and macd < 0:
        return "bearish"
    return "neutral"


def find_swing_points(values: Sequence[float], kind: str = "low", neighbors: int = 2) -> list[int]:
    """
    Find local extrema strictly below (or above) `neighbors` points on each side.

    Args:
        values: Value sequence
        kind: "low" or "high"
        neighbors: Points required on each side

    Returns:
        Positions of swing points in ascending order
    """
    arr = np.asarray(values, dtype=float)
    points: list[int] = []
    for i in range(neighbors, len(arr) - neighbors):
        window = np.concatenate([arr[i - neighbors : i], arr[i + 1 : i + neighbors + 1]])
        if kind == "low" and (arr[i] < window).all():
            points.append(i)
        elif kind == "high" and (arr[i] > window).all():
            points.append(i)
    return points


def detect_macd_divergence(
    closes: pd.Series | Sequence[float],
    macd_line: pd.Series,
    lookback: int = 20,
    neighbors: int = 2,
    tolerance: int = 3,
) -> str | None:
    """
    Detect price/MACD divergence over the trailing window.

    Bullish: the two latest price swing lows descend while the matching MACD
    swing lows ascend. Bearish: mirror with swing highs. Matched swings must
    be within `tolerance` bars of each other.

    Args:
        closes: Close prices ending on the same bar as macd_line
        macd_line: MACD line series
        lookback: Trailing bars to inspect (default: 20)
        neighbors: Swing definition neighbors (default: 2)
        tolerance: Max bar offset between matched swings (default: 3)

    Returns:
        "bullish", "bearish", or None
    """
    closes = _as_series(closes)
    n = min(lookback, len(macd_line), len(closes))
    if n < 2 * neighbors + 1:
        return None

    price_win = closes.to_numpy()[-n:]
    macd_win = macd_line.to_numpy(dtype=float)[-n:]

    def _diverges(kind: str) -> bool:
        price_pts = find_swing_points(price_win, kind, neighbors)
        macd_pts = find_swing_points(macd_win, kind, neighbors)
        if len(price_pts) < 2 or len(macd_pts) < 2:
            return False
        p1, p2 = price_pts[-2:]
        m1, m2 = macd_pts[-2:]
        if abs(p1 - m1) > tolerance or abs(p2 - m2) > tolerance:
            return False
        if kind == "low":
            return price_win[p2] < price_win[p1] and macd_win[m2] > macd_win[m1]
        return price_win[p2] > price_win[p1] and macd_win[m2] < macd_win[m1]

    if _diverges("low"):
        return "bullish"
    if _diverges("high"):
        return "bearish"
    return None


def calculate_rsi(prices: pd.Series | Sequence[float], period: int = 14) -> pd.Series:
    """
    Calculate Relative Strength Index.

    Uses a simple average of gains/losses over the trailing `period` changes
    (not Wilder smoothing). RSI is 100 when the window has no losses.

    Args:
        prices: Price series (typically close prices)
        period: RSI period (default: 14)

    Returns:
        RSI series (0-100 scale), starting at position `period`
    """
    series = _as_series(prices)
    if len(series) < period + 1:
        return _empty()

    delta = series.diff()
    gain = delta.clip(lower=0)
    loss = (-delta).clip(lower=0)

    avg_gain = gain.rolling(window=period, min_periods=period).mean()
    avg_loss = loss.rolling(window=period, min_periods=period).mean()

    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))

    # Handle division by zero (no losses in window)
    rsi = rsi.where(avg_loss != 0, 100.0)

    return rsi.iloc[period:].clip(lower=0, upper=100)


def calculate_bollinger_bands(
    prices: pd.Series | Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> dict[str, pd.Series]:
    """
    Calculate Bollinger Bands (population standard deviation).

    Args:
        prices: Price series (typically close prices)
        period: Moving average period (default: 20)
        num_std: Band width in standard deviations (default: 2)

    Returns:
        Dict with aligned 'upper', 'middle', 'lower' series
    """
    series = _as_series(prices)
    if len(series) < period:
        return {"upper": _empty(), "middle": _empty(), "lower": _empty()}

    middle = series.rolling(window=period, min_periods=period).mean()
    std = series.rolling(window=period, min_periods=period).std(ddof=0).clip(lower=0)

    return {
        "upper": (middle + num_std * std).iloc[period - 1 :],
        "middle": middle.iloc[period - 1 :],
        "lower": (middle - num_std * std).iloc[period - 1 :],
    }


def calculate_stochastic(
    close: pd.Series | Sequence[float],
    high: pd.Series | Sequence[float],
    low: pd.Series | Sequence[float],
    k_period: int = 14,
    d_period: int = 3,
) -> dict[str, pd.Series]:
    """
    Calculate Stochastic Oscillator.

    Args:
        close: Close price series
        high: High price series
        low: Low price series
        k_period: Lookback for %K (default: 14)
        d_period: SMA period for %D (default: 3)

    Returns:
        Dict with 'k' and 'd' series, both bounded to [0, 100]
    """
    close, high, low = _as_series(close), _as_series(high), _as_series(low)
    if len(close) < k_period:
        return {"k": _empty(), "d": _empty()}

    lowest_low = low.rolling(window=k_period, min_periods=k_period).min()
    highest_high = high.rolling(window=k_period, min_periods=k_period).max()
    price_range = highest_high - lowest_low

    k = ((close - lowest_low) / price_range * 100).where(price_range != 0, 50.0)
    k = k.iloc[k_period - 1 :].clip(lower=0, upper=100)

    if len(k) < d_period:
        return {"k": k, "d": _empty()}

    d = k.rolling(window=d_period, min_periods=d_period).mean().iloc[d_period - 1 :]
    return {"k": k, "d": d.clip(lower=0, upper=100)}


def calculate_true_range(
    high: pd.Series | Sequence[float],
    low: pd.Series | Sequence[float],
    close: pd.Series | Sequence[float],
) -> pd.Series:
    """True range from the second bar on (needs a previous close)."""
    high, low, close = _as_series(high), _as_series(low), _as_series(close)
    prev_close = close.shift(1)

    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()

    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).iloc[1:]


def calculate_atr(
    high: pd.Series | Sequence[float],
    low: pd.Series | Sequence[float],
    close: pd.Series | Sequence[float],
    period: int = 14,
) -> pd.Series:
    """
    Calculate Average True Range.

    First ATR is the simple mean of the first `period` true ranges; later
    values use Wilder smoothing.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        period: ATR period (default: 14)

    Returns:
        ATR series starting at position `period` (empty below period+1 bars)
    """
    if len(_as_series(close)) < period + 1:
        return _empty()
    true_range = calculate_true_range(high, low, close)
    return _seeded_ewm(true_range, period, alpha=1 / period)


def calculate_obv(
    close: pd.Series | Sequence[float],
    volume: pd.Series | Sequence[float],
) -> pd.Series:
    """
    Calculate On-Balance Volume.

    Args:
        close: Close price series
        volume: Volume series

    Returns:
        Running OBV series (0 on the first bar)
    """
    close, volume = _as_series(close), _as_series(volume)
    if len(close) == 0:
        return _empty()
    direction = np.sign(close.diff()).fillna(0.0)
    return (direction * volume.fillna(0.0)).cumsum()


def classify_obv_trend(obv: pd.Series, period: int = 20, band: float = 0.05) -> str | None:
    """bullish/bearish when OBV deviates more than `band` from its SMA, else neutral."""
    if len(obv) < period:
        return None
    sma = float(obv.iloc[-period:].mean())
    if sma == 0:
        return "neutral"
    deviation = (float(obv.iloc[-1]) - sma) / abs(sma)
    if deviation > band:
        return "bullish"
    if deviation < -band:
        return "bearish"
    return "neutral"


def detect_obv_divergence(
    close: pd.Series | Sequence[float],
    obv: pd.Series,
    lookback: int = 20,
) -> str | None:
    """
    Compare price and OBV direction over the trailing window.

    Returns:
        "bullish" (price down, OBV up), "bearish" (price up, OBV down), or None
    """
    close = _as_series(close)
    if len(close) < lookback or len(obv) < lookback:
        return None
    price_change = float(close.iloc[-1] - close.iloc[-lookback])
    obv_change = float(obv.iloc[-1] - obv.iloc[-lookback])
    if price_change < 0 and obv_change > 0:
        return "bullish"
    if price_change > 0 and obv_change < 0:
        return "bearish"
    return None


def calculate_adx(
    high: pd.Series | Sequence[float],
    low: pd.Series | Sequence[float],
    close: pd.Series | Sequence[float],
    period: int = 14,
) -> dict[str, pd.Series]:
    """
    Calculate ADX with +DI/-DI.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        period: Smoothing period (default: 14)

    Returns:
        Dict with aligned 'adx', 'plus_di', 'minus_di' series, starting at
        position 2*period-1 (empty below 2*period bars)
    """
    high, low, close = _as_series(high), _as_series(low), _as_series(close)
    if len(close) < 2 * period:
        logger.debug(f"ADX needs {2 * period} bars, got {len(close)}")
        return {"adx": _empty(), "plus_di": _empty(), "minus_di": _empty()}

    up_move = high.diff()
    down_move = -low.diff()
    plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0).iloc[1:]
    minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0).iloc[1:]
    true_range = calculate_true_range(high, low, close)

    tr_smooth = _seeded_ewm(true_range, period, alpha=1 / period)
    plus_smooth = _seeded_ewm(plus_dm, period, alpha=1 / period)
    minus_smooth = _seeded_ewm(minus_dm, period, alpha=1 / period)

    plus_di = (100 * plus_smooth / tr_smooth).where(tr_smooth != 0, 0.0)
    minus_di = (100 * minus_smooth / tr_smooth).where(tr_smooth != 0, 0.0)

    di_sum = plus_di + minus_di
    dx = (100 * (plus_di - minus_di).abs() / di_sum).where(di_sum != 0, 0.0)

    adx = _seeded_ewm(dx, period, alpha=1 / period)
    offset = len(plus_di) - len(adx)

    return {
        "adx": adx,
        "plus_di": plus_di.iloc[offset:],
        "minus_di": minus_di.iloc[offset:],
    }


def classify_adx_strength(adx: float | None) -> str | None:
    if adx is None:
        return None
    if adx >= 40:
        return "strong"
    if adx >= 25:
        return "moderate"
    if adx >= 20:
        return "weak"
    return "no-trend"


def classify_adx_direction(
    plus_di: float | None,
    minus_di: float | None,
    margin: float = 5.0,
) -> str | None:
    """bullish if +DI leads -DI by more than `margin`, bearish if the reverse."""
    if plus_di is None or minus_di is None:
        return None
    if plus_di - minus_di > margin:
        return "bullish"
    if minus_di - plus_di > margin:
        return "bearish"
    return "neutral"


def calculate_fibonacci_levels(
    high: pd.Series | Sequence[float],
    low: pd.Series | Sequence[float],
    close: pd.Series | Sequence[float],
    lookback: int = 50,
    proximity: float = 0.02,
) -> dict[str, Any] | None:
    """
    Calculate Fibonacci retracement levels over the trailing swing range.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        lookback: Max trailing bars (default: 50)
        proximity: Fraction of the range for "near a level" (default: 0.02)

    Returns:
        Dict with high, low, levels (name -> price), trend, current_level;
        None if there is no data or the range is zero
    """
    high, low, close = _as_series(high), _as_series(low), _as_series(close)
    if len(close) == 0:
        return None

    swing_high = float(high.iloc[-lookback:].max())
    swing_low = float(low.iloc[-lookback:].min())
    price_range = swing_high - swing_low
    if not price_range > 0:
        return None

    levels = {
        name: swing_high - ratio * price_range for name, ratio in FIBONACCI_RATIOS.items()
    }
    current = float(close.iloc[-1])
    trend = "uptrend" if current >= (swing_high + swing_low) / 2 else "downtrend"

    nearest_name, nearest_price = min(levels.items(), key=lambda item: abs(current - item[1]))
    current_level = nearest_name if abs(current - nearest_price) <= proximity * price_range else None

    return {
        "high": swing_high,
        "low": swing_low,
        "levels": levels,
        "trend": trend,
        "current_level": current_level,
    }
