"""OHLCV price series standardization utilities."""

from collections.abc import Sequence

import pandas as pd

from stock_advisor.models import PriceBar

CANONICAL_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Convert PriceBar records to a DataFrame in canonical column order."""
    return pd.DataFrame(
        [
            {
                "date": bar.date,
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
            }
            for bar in bars
        ],
        columns=CANONICAL_COLUMNS,
    )


def standardize_ohlcv(prices: pd.DataFrame | Sequence[PriceBar]) -> pd.DataFrame:
    """
    Standardize OHLCV to a consistent, chronological schema.

    Output columns (always, in this order): date, open, high, low, close, volume
    All lowercase, numeric columns coerced to float, dates as YYYY-MM-DD
    strings, rows sorted oldest first, RangeIndex.

    Args:
        prices: DataFrame (date column or DatetimeIndex) or PriceBar sequence

    Returns:
        Standardized DataFrame

    Raises:
        ValueError: If the series contains duplicate dates
    """
    if isinstance(prices, pd.DataFrame):
        df = prices.copy()
    else:
        df = bars_to_frame(prices)

    # Handle multi-index columns from multi-ticker downloads
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    # Prefer adjusted close if the provider left both
    if "Adj Close" in df.columns:
        df = df.drop(columns=["Adj Close"])

    df.columns = [str(c).lower() for c in df.columns]

    if "date" not in df.columns:
        df = df.reset_index()
        date_cols = [c for c in df.columns if str(c).lower() in ("date", "datetime", "index")]
        if date_cols:
            df = df.rename(columns={date_cols[0]: "date"})

    for col in CANONICAL_COLUMNS:
        if col not in df.columns:
            df[col] = float("nan")

    df = df[CANONICAL_COLUMNS]

    if len(df) == 0:
        return df.reset_index(drop=True)

    df["date"] = pd.to_datetime(df["date"]).dt.strftime("%Y-%m-%d")
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)

    df = df.sort_values("date", kind="mergesort").reset_index(drop=True)
    validate_price_series(df)
    return df


def validate_price_series(df: pd.DataFrame) -> None:
    """
    Enforce strictly increasing dates.

    Raises:
        ValueError: On duplicate or out-of-order dates
    """
    dates = df["date"]
    duplicated = dates[dates.duplicated()]
    if len(duplicated) > 0:
        raise ValueError(f"Price series has duplicate dates: {sorted(set(duplicated))[:5]}")
    if not dates.is_monotonic_increasing:
        raise ValueError("Price series dates must be strictly increasing")

