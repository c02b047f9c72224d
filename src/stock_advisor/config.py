"""Engine configuration: signal thresholds, composite weights, runtime settings."""

import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any

# Thresholds expressed on the 0-100 percent scale (component percents, dip score)
_PERCENT_FIELDS = {
    "tech_strong",
    "tech_moderate",
    "tech_weak",
    "fund_quality",
    "fund_strong",
    "fund_moderate",
    "fund_watch_high",
    "fund_watch_low",
    "analyst_quality",
    "insider_weak",
    "news_watch_high",
    "news_watch_low",
    "dip_trigger",
    "dip_accumulate_min",
    "dip_accumulate_max",
    "dip_gate_fundamental",
    "dip_gate_analyst",
    "dip_gate_news",
    "rsi_overbought",
    "rsi_oversold",
    "stochastic_overbought",
    "conviction_high",
    "conviction_medium",
}


@dataclass(frozen=True)
class Thresholds:
    """
    Immutable threshold set used by dip, conviction, strategy and signal rules.

    Pass an instance explicitly; use dataclasses.replace() for variants.
    """

    # Technical (% of 120 raw points)
    tech_strong: float = 60
    tech_moderate: float = 35
    tech_weak: float = 40

    # Fundamental (% of 140 raw points)
    fund_quality: float = 60
    fund_strong: float = 50
    fund_moderate: float = 40
    fund_watch_high: float = 35
    fund_watch_low: float = 20

    # Analyst / insider / news (%)
    analyst_quality: float = 55
    insider_weak: float = 35
    news_watch_high: float = 50
    news_watch_low: float = 25

    # Dip
    dip_trigger: float = 50
    dip_accumulate_min: float = 15
    dip_accumulate_max: float = 50
    dip_gate_fundamental: float = 35
    dip_gate_analyst: float = 25
    dip_gate_news: float = 20

    # Position (% of portfolio)
    weight_overweight: float = 8
    weight_max: float = 15

    # Target upside (%)
    target_near: float = 8
    target_low_upside: float = 5
    good_entry_upside: float = 15
    undervalued_upside: float = 30

    # Oscillators
    rsi_overbought: float = 70
    rsi_oversold: float = 30
    rsi_momentum_low: float = 45
    rsi_momentum_high: float = 75
    rsi_reversal_max: float = 40
    rsi_wait_for_dip: float = 65
    stochastic_overbought: float = 80
    adx_strong: float = 25

    # Volume change vs 20-bar average (%)
    volume_breakout: float = 50

    # Unrealized gain (%)
    gain_take_profit: float = 50

    # Conviction levels
    conviction_high: float = 70
    conviction_medium: float = 45

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name in _PERCENT_FIELDS:
                value = getattr(self, f.name)
                if not 0 <= value <= 100:
                    raise ValueError(f"Threshold '{f.name}' must be within [0, 100], got {value}")

        if self.dip_accumulate_min > self.dip_accumulate_max:
            raise ValueError(
                f"dip_accumulate_min ({self.dip_accumulate_min}) exceeds "
                f"dip_accumulate_max ({self.dip_accumulate_max})"
            )
        if self.rsi_oversold >= self.rsi_overbought:
            raise ValueError(
                f"rsi_oversold ({self.rsi_oversold}) must be below "
                f"rsi_overbought ({self.rsi_overbought})"
            )
        if self.conviction_medium > self.conviction_high:
            raise ValueError("conviction_medium must not exceed conviction_high")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class ScoreWeights:
    """Composite score weights per component. Must sum to 1.0."""

    fundamental: float
    technical: float
    analyst: float
    news_insider: float
    portfolio: float = 0.0

    def __post_init__(self) -> None:
        total = self.fundamental + self.technical + self.analyst + self.news_insider + self.portfolio
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Score weights must sum to 1.0, got {total}")
        if any(w < 0 for w in (self.fundamental, self.technical, self.analyst,
                               self.news_insider, self.portfolio)):
            raise ValueError("Score weights must be non-negative")


# Holdings view: 500 raw points incl. portfolio overlay
HOLDINGS_WEIGHTS = ScoreWeights(
    fundamental=0.28,
    technical=0.24,
    analyst=0.16,
    news_insider=0.12,
    portfolio=0.20,
)

# Research view: 400 raw points, no personal position
RESEARCH_WEIGHTS = ScoreWeights(
    fundamental=0.35,
    technical=0.30,
    analyst=0.20,
    news_insider=0.15,
)


@dataclass(frozen=True)
class Settings:
    """Runtime settings sourced from environment variables."""

    cache_dir: str = ".cache/recommendations"
    cache_ttl: int = 3600
    log_level: str = "INFO"
    max_workers: int = 8

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cache_dir=os.environ.get("CACHE_DIR", ".cache/recommendations"),
            cache_ttl=int(os.environ.get("CACHE_TTL", "3600")),  # 1 hour
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            max_workers=max(1, int(os.environ.get("MAX_WORKERS", "8"))),
        )


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging for applications embedding the engine.

    The library itself never calls this on import.

    Args:
        level: Log level name (default: LOG_LEVEL env var, then INFO)
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
