"""News sentiment and insider activity scoring."""

from collections.abc import Sequence
from datetime import date

from stock_advisor.models import InsiderSentiment, NewsArticle, ScoreComponent
from stock_advisor.utils.scoring import build_component, round_half_up

NEWS_INSIDER_MAX = 60  # 35 news + 25 insider
NEWS_NEUTRAL_RAW = 17  # midpoint of 0-35
INSIDER_NEUTRAL_RAW = 12  # midpoint of 0-25


def filter_insider_sentiment(
    insider: InsiderSentiment | None,
    months: int,
    as_of: date,
) -> tuple[float | None, float | None]:
    """
    Average MSPR and summed net share change over the trailing window.

    Selects monthly records whose month distance from `as_of` is in
    [0, months). If none match, falls back to the first `months` records
    (most-recent-first). Without a monthly breakdown, uses the aggregate.

    Args:
        insider: Insider sentiment with monthly records
        months: Window length in months
        as_of: Reference date for the window

    Returns:
        Tuple of (mspr rounded to 2 decimals, net change); (None, None) if no data
    """
    if insider is None:
        return None, None

    if not insider.monthly:
        if insider.mspr is not None:
            return insider.mspr, insider.change
        return None, None

    selected = [
        m for m in insider.monthly
        if 0 <= (as_of.year - m.year) * 12 + (as_of.month - m.month) < months
    ]
    if not selected:
        selected = list(insider.monthly[:months])
    if not selected:
        return None, None

    avg_mspr = sum(m.mspr for m in selected) / len(selected)
    total_change = sum(m.change for m in selected)
    return round_half_up(avg_mspr, 2), total_change


def _ticker_articles(ticker: str, articles: Sequence[NewsArticle]) -> list[NewsArticle]:
    symbol = ticker.upper()
    return [a for a in articles if symbol in (t.upper() for t in a.tickers)]


def average_sentiment(ticker: str, articles: Sequence[NewsArticle]) -> tuple[float | None, int]:
    """Mean article sentiment for the ticker (missing scores count as 0) and article count."""
    matched = _ticker_articles(ticker, articles)
    if not matched:
        return None, 0
    avg = sum((a.sentiment or 0.0) for a in matched) / len(matched)
    return avg, len(matched)


def score_news_insider(
    ticker: str,
    articles: Sequence[NewsArticle],
    insider: InsiderSentiment | None,
    months: int,
    as_of: date,
) -> ScoreComponent:
    """
    Combined news + insider score on 60 raw points.

    News sentiment 0-35 (5 tiers), insider MSPR 0-25 (6 tiers). Each part
    defaults to its midpoint when there is no data.
    """
    details: list[str] = []

    news_raw = NEWS_NEUTRAL_RAW
    avg, count = average_sentiment(ticker, articles)
    if avg is None:
        details.append("No news for this stock")
    else:
        if avg > 0.5:
            news_raw, label = 35, "very positive"
        elif avg >= 0.15:
            news_raw, label = 28, "positive"
        elif avg >= -0.15:
            news_raw, label = 17, "neutral"
        elif avg >= -0.5:
            news_raw, label = 8, "negative"
        else:
            news_raw, label = 0, "very negative"
        matched = _ticker_articles(ticker, articles)
        positive = sum(1 for a in matched if (a.sentiment or 0.0) > 0.2)
        negative = sum(1 for a in matched if (a.sentiment or 0.0) < -0.2)
        details.append(f"News sentiment {label} ({avg * 100:+.0f}%)")
        details.append(f"{count} articles ({positive}+ / {negative}-)")

    insider_raw = INSIDER_NEUTRAL_RAW
    mspr, change = filter_insider_sentiment(insider, months, as_of)
    if mspr is None:
        details.append("No insider data available")
    else:
        if mspr > 50:
            insider_raw, label = 25, "strong buying"
        elif mspr >= 25:
            insider_raw, label = 21, "buying"
        elif mspr >= 0:
            insider_raw, label = 16, "slight buying"
        elif mspr >= -25:
            insider_raw, label = 12, "slight selling"
        elif mspr >= -50:
            insider_raw, label = 6, "selling"
        else:
            insider_raw, label = 0, "heavy selling"
        details.append(f"Insider {label} (MSPR {mspr:.1f}, {months}m)")
        if change:
            details.append(f"Net insider shares: {change:+,.0f}")

    return build_component("News+Insider", news_raw + insider_raw, NEWS_INSIDER_MAX, details)


def score_news(ticker: str, articles: Sequence[NewsArticle]) -> ScoreComponent:
    """Standalone news score: round_half_up((avg + 1) * 50), 50 without articles."""
    avg, count = average_sentiment(ticker, articles)
    if avg is None:
        return build_component("News", 50, 100, ["No news for this stock"])
    score = round_half_up((avg + 1) * 50)
    return build_component(
        "News", score, 100, [f"{count} articles, average sentiment {avg * 100:+.0f}%"]
    )


def score_insider(
    insider: InsiderSentiment | None,
    months: int,
    as_of: date,
) -> ScoreComponent:
    """Standalone insider score: clamp(round_half_up(50 + mspr / 2)), 50 without data."""
    mspr, change = filter_insider_sentiment(insider, months, as_of)
    if mspr is None:
        return build_component("Insider", 50, 100, ["No insider data available"])
    details = [f"MSPR {mspr:.1f} over {months}m"]
    if change is not None:
        details.append(f"Net shares: {change:+,.0f}")
    return build_component("Insider", round_half_up(50 + mspr / 2), 100, details)
