"""
Signal rule cascade.

Two ordered rule lists: action signals (what to do) and quality signals (how
good the stock is). Within each list the first rule whose conditions hold
wins. Quality always resolves, falling back to NEUTRAL. Every rule is
evaluated and its conditions recorded so the decision can be audited.
"""

import operator
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from stock_advisor.config import DEFAULT_THRESHOLDS, Thresholds
from stock_advisor.models import ConvictionLevel, Recommendation, SignalCategory, StockSignal
from stock_advisor.utils.scoring import round_half_up
from stock_advisor.utils.validators import check_rule_expr

ACTION_SIGNALS = (
    "DIP_OPPORTUNITY",
    "BREAKOUT",
    "REVERSAL",
    "MOMENTUM",
    "TAKE_PROFIT",
    "TRIM",
    "NEAR_TARGET",
    "ACCUMULATE",
    "GOOD_ENTRY",
    "WAIT_FOR_DIP",
    "WATCH",
    "HOLD",
)

QUALITY_SIGNALS = (
    "CONVICTION",
    "QUALITY_CORE",
    "UNDERVALUED",
    "STRONG_TREND",
    "STEADY",
    "OVERBOUGHT",
    "PROBLEMATIC",
    "FUNDAMENTALLY_WEAK",
    "TECHNICALLY_WEAK",
    "WEAK",
    "NEUTRAL",
)

# Static display ordering for ranked lists: actions 1-12, quality 13-23
SIGNAL_PRIORITIES: dict[str, int] = {
    name: i + 1 for i, name in enumerate(ACTION_SIGNALS + QUALITY_SIGNALS)
}

SIGNAL_CATEGORIES: dict[str, SignalCategory] = {
    **{name: "action" for name in ACTION_SIGNALS},
    **{name: "quality" for name in QUALITY_SIGNALS},
}

CATEGORY_LABELS: dict[SignalCategory, str] = {
    "action": "What to do",
    "quality": "Stock quality",
}

SIGNAL_LABELS: dict[str, tuple[str, str]] = {
    "DIP_OPPORTUNITY": ("Buy the dip", "Oversold with solid fundamentals - potential buying opportunity"),
    "BREAKOUT": ("Buy the breakout", "Price broke above the Bollinger band on high volume"),
    "REVERSAL": ("Catch the reversal", "MACD divergence suggests a potential trend reversal"),
    "MOMENTUM": ("Ride the trend", "Technical indicators show bullish momentum"),
    "TAKE_PROFIT": ("Take profit", "Large gain (+50%) - consider partial profit-taking"),
    "TRIM": ("Trim", "Overbought with high weight - reduce the position"),
    "NEAR_TARGET": ("Prepare exit", "Approaching the target price - prepare an exit plan"),
    "ACCUMULATE": ("Accumulate", "Quality stock - keep buying gradually (DCA)"),
    "GOOD_ENTRY": ("Enter", "Quality stock below the analyst target - suitable to buy"),
    "WAIT_FOR_DIP": ("Wait for a dip", "Quality stock but the price is stretched - wait for a pullback"),
    "WATCH": ("Watch", "Some metrics are deteriorating - monitor closely"),
    "HOLD": ("Hold", "Quality stock - keep holding"),
    "CONVICTION": ("Top quality", "Strong long-term fundamentals - hold through volatility"),
    "QUALITY_CORE": ("Quality", "Strong fundamentals and positive analyst sentiment"),
    "UNDERVALUED": ("Undervalued", "30%+ upside to the target price"),
    "STRONG_TREND": ("Strong trend", "Strong trend confirmed by a high ADX"),
    "STEADY": ("Steady", "Solid stock without notable problems"),
    "OVERBOUGHT": ("Overbought", "RSI and Stochastic are in the overbought zone"),
    "PROBLEMATIC": ("Problematic", "Weak fundamentals and technicals"),
    "FUNDAMENTALLY_WEAK": ("Weak fundamentals", "Weak fundamentals but technically OK"),
    "TECHNICALLY_WEAK": ("Weak technicals", "Good fundamentals but poor timing"),
    "WEAK": ("Weak", "Weak fundamentals or trend"),
    "NEUTRAL": ("Neutral", "No strong signals"),
}

BUYABLE_SIGNALS = frozenset(
    {"DIP_OPPORTUNITY", "ACCUMULATE", "MOMENTUM", "BREAKOUT", "REVERSAL", "GOOD_ENTRY"}
)
SELL_SIDE_SIGNALS = frozenset({"TAKE_PROFIT", "TRIM", "NEAR_TARGET"})


@dataclass(frozen=True)
class SignalContext:
    """Score percents and raw indicator values the rules read."""

    fundamental: float
    technical: float
    analyst: float
    news: float
    insider: float
    dip_score: float
    dip_quality_passes: bool
    conviction_score: float
    conviction_level: ConvictionLevel
    target_upside: float | None = None
    weight: float = 0.0
    gain_pct: float | None = None
    current_price: float | None = None
    rsi: float | None = None
    stochastic_k: float | None = None
    bollinger_upper: float | None = None
    volume_change: float | None = None
    macd_divergence: str | None = None
    adx: float | None = None
    adx_trend: str | None = None


Op = Literal[">=", ">", "<=", "<", "==", "!="]

_OPS: dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}


def condition(name: str, actual: Any, op: Op, required: Any) -> dict[str, Any]:
    """One rule condition with its actual and required values. None never passes."""
    passed = check_rule_expr(actual, required, _OPS[op])
    return {
        "name": name,
        "actual": actual,
        "required": f"{op} {required}",
        "passed": bool(passed),
    }


@dataclass(frozen=True)
class SignalRule:
    """A named predicate over SignalContext plus how to build its signal."""

    type: str
    conditions: Callable[[SignalContext, Thresholds], list[dict[str, Any]]]
    strength: Callable[[SignalContext], float]
    match: Literal["all", "any"] = "all"

    @property
    def category(self) -> SignalCategory:
        return SIGNAL_CATEGORIES[self.type]

    def evaluate(self, ctx: SignalContext, th: Thresholds) -> tuple[bool, list[dict[str, Any]]]:
        conds = self.conditions(ctx, th)
        if not conds:
            return True, conds
        results = [c["passed"] for c in conds]
        return (all(results) if self.match == "all" else any(results)), conds

    def build(self, ctx: SignalContext) -> StockSignal:
        title, description = SIGNAL_LABELS[self.type]
        return StockSignal(
            type=self.type,
            category=self.category,
            strength=round_half_up(min(max(self.strength(ctx), 0.0), 100.0), 1),
            priority=SIGNAL_PRIORITIES[self.type],
            title=title,
            description=description,
        )


def _not_low(ctx: SignalContext) -> dict[str, Any]:
    return condition("conviction_level", ctx.conviction_level, "!=", "LOW")


def _abs_upside(ctx: SignalContext) -> float | None:
    return abs(ctx.target_upside) if ctx.target_upside is not None else None


ACTION_RULES: tuple[SignalRule, ...] = (
    SignalRule(
        "DIP_OPPORTUNITY",
        lambda c, t: [
            condition("dip_score", c.dip_score, ">=", t.dip_trigger),
            condition("dip_quality_passes", c.dip_quality_passes, "==", True),
        ],
        lambda c: c.dip_score,
    ),
    SignalRule(
        "BREAKOUT",
        lambda c, t: [
            condition("price_above_bollinger_upper", c.current_price, ">", c.bollinger_upper),
            condition("volume_change", c.volume_change, ">=", t.volume_breakout),
            condition("technical_pct", c.technical, ">=", t.tech_moderate),
        ],
        lambda c: c.technical,
    ),
    SignalRule(
        "REVERSAL",
        lambda c, t: [
            condition("macd_divergence", c.macd_divergence, "==", "bullish"),
            condition("rsi", c.rsi, "<", t.rsi_reversal_max),
            condition("fundamental_pct", c.fundamental, ">=", t.dip_gate_fundamental),
        ],
        lambda c: (c.fundamental + c.technical) / 2,
    ),
    SignalRule(
        "MOMENTUM",
        lambda c, t: [
            condition("technical_pct", c.technical, ">=", t.tech_strong),
            condition("rsi", c.rsi, ">", t.rsi_momentum_low),
            condition("rsi", c.rsi, "<", t.rsi_momentum_high),
        ],
        lambda c: c.technical,
    ),
    SignalRule(
        "TAKE_PROFIT",
        lambda c, t: [condition("gain_pct", c.gain_pct, ">=", t.gain_take_profit)],
        lambda c: min(100.0, 50 + (c.gain_pct or 0) / 2),
    ),
    SignalRule(
        "TRIM",
        lambda c, t: [
            condition("rsi", c.rsi, ">", t.rsi_overbought),
            condition("weight", c.weight, ">", t.weight_overweight),
            condition("target_upside", c.target_upside, "<", t.target_low_upside),
        ],
        lambda c: 70,
    ),
    SignalRule(
        "NEAR_TARGET",
        lambda c, t: [condition("abs_target_upside", _abs_upside(c), "<=", t.target_near)],
        lambda c: 100 - abs(c.target_upside or 0) * 5,
    ),
    SignalRule(
        "ACCUMULATE",
        lambda c, t: [
            _not_low(c),
            condition("dip_score", c.dip_score, ">=", t.dip_accumulate_min),
            condition("dip_score", c.dip_score, "<", t.dip_accumulate_max),
            condition("fundamental_pct", c.fundamental, ">=", t.fund_strong),
        ],
        lambda c: 60,
    ),
    SignalRule(
        "GOOD_ENTRY",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_strong),
            condition("analyst_pct", c.analyst, ">=", t.analyst_quality),
            condition("target_upside", c.target_upside, ">=", t.good_entry_upside),
        ],
        lambda c: (c.fundamental + c.analyst) / 2,
    ),
    SignalRule(
        "WAIT_FOR_DIP",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_strong),
            condition("rsi", c.rsi, ">=", t.rsi_wait_for_dip),
        ],
        lambda c: c.fundamental,
    ),
    SignalRule(
        "WATCH",
        lambda c, t: [
            condition(
                "fundamental_in_watch_band",
                t.fund_watch_low < c.fundamental < t.fund_watch_high,
                "==",
                True,
            ),
            condition("insider_pct", c.insider, "<", t.insider_weak),
            condition(
                "news_in_watch_band",
                t.news_watch_low < c.news < t.news_watch_high,
                "==",
                True,
            ),
        ],
        lambda c: 50,
        match="any",
    ),
    SignalRule(
        "HOLD",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_moderate),
            condition("technical_pct", c.technical, ">=", t.tech_moderate),
            _not_low(c),
        ],
        lambda c: (c.fundamental + c.technical) / 2,
    ),
)

QUALITY_RULES: tuple[SignalRule, ...] = (
    SignalRule(
        "CONVICTION",
        lambda c, t: [condition("conviction_level", c.conviction_level, "==", "HIGH")],
        lambda c: c.conviction_score,
    ),
    SignalRule(
        "QUALITY_CORE",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_quality),
            condition("analyst_pct", c.analyst, ">=", t.analyst_quality),
            _not_low(c),
        ],
        lambda c: (c.fundamental + c.analyst) / 2,
    ),
    SignalRule(
        "UNDERVALUED",
        lambda c, t: [
            condition("target_upside", c.target_upside, ">=", t.undervalued_upside),
            condition("fundamental_pct", c.fundamental, ">=", t.fund_moderate),
        ],
        lambda c: min(100.0, 50 + (c.target_upside or 0)),
    ),
    SignalRule(
        "STRONG_TREND",
        lambda c, t: [
            condition("adx", c.adx, ">=", t.adx_strong),
            condition("adx_trend", c.adx_trend, "==", "bullish"),
        ],
        lambda c: min(100.0, (c.adx or 0) * 2),
    ),
    SignalRule(
        "STEADY",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_moderate),
            condition("technical_pct", c.technical, ">=", t.tech_moderate),
        ],
        lambda c: (c.fundamental + c.technical) / 2,
    ),
    SignalRule(
        "OVERBOUGHT",
        lambda c, t: [
            condition("rsi", c.rsi, ">", t.rsi_overbought),
            condition("stochastic_k", c.stochastic_k, ">", t.stochastic_overbought),
        ],
        lambda c: c.rsi or 50,
    ),
    SignalRule(
        "PROBLEMATIC",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, "<", t.dip_gate_fundamental),
            condition("technical_pct", c.technical, "<", t.tech_weak),
        ],
        lambda c: 100 - (c.fundamental + c.technical) / 2,
    ),
    SignalRule(
        "FUNDAMENTALLY_WEAK",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, "<", t.dip_gate_fundamental),
            condition("technical_pct", c.technical, ">=", t.tech_weak),
        ],
        lambda c: 100 - c.fundamental,
    ),
    SignalRule(
        "TECHNICALLY_WEAK",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, ">=", t.fund_strong),
            condition("technical_pct", c.technical, "<", t.tech_weak),
        ],
        lambda c: 100 - c.technical,
    ),
    SignalRule(
        "WEAK",
        lambda c, t: [
            condition("fundamental_pct", c.fundamental, "<", t.fund_moderate),
            condition("technical_pct", c.technical, "<", t.tech_weak),
        ],
        lambda c: 100 - min(c.fundamental, c.technical),
        match="any",
    ),
    SignalRule("NEUTRAL", lambda c, t: [], lambda c: 50),
)


@dataclass(frozen=True)
class SignalResult:
    action: StockSignal | None
    quality: StockSignal
    evaluations: tuple[dict[str, Any], ...]
    action_reason: str
    quality_reason: str


def _reason(rule: SignalRule | None, conds: list[dict[str, Any]], fallback: str) -> str:
    if rule is None:
        return fallback
    passed = [f"{c['name']} {c['required']} (actual {_fmt(c['actual'])})" for c in conds if c["passed"]]
    return "; ".join(passed) if passed else "Fallback"


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


def _run_cascade(
    rules: tuple[SignalRule, ...],
    ctx: SignalContext,
    th: Thresholds,
    evaluations: list[dict[str, Any]],
) -> tuple[SignalRule | None, list[dict[str, Any]]]:
    chosen: SignalRule | None = None
    chosen_conds: list[dict[str, Any]] = []
    for rule in rules:
        passed, conds = rule.evaluate(ctx, th)
        selected = passed and chosen is None
        if selected:
            chosen, chosen_conds = rule, conds
        evaluations.append({
            "signal": rule.type,
            "category": rule.category,
            "passed": passed,
            "selected": selected,
            "conditions": conds,
        })
    return chosen, chosen_conds


def generate_signals(ctx: SignalContext, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> SignalResult:
    """
    Resolve at most one action signal and exactly one quality signal.

    Args:
        ctx: Score percents and indicator values
        thresholds: Threshold set the rules compare against

    Returns:
        SignalResult with the full evaluation trace
    """
    evaluations: list[dict[str, Any]] = []
    action_rule, action_conds = _run_cascade(ACTION_RULES, ctx, thresholds, evaluations)
    quality_rule, quality_conds = _run_cascade(QUALITY_RULES, ctx, thresholds, evaluations)
    if quality_rule is None:
        raise RuntimeError("Quality rules must end with an unconditional fallback")

    return SignalResult(
        action=action_rule.build(ctx) if action_rule else None,
        quality=quality_rule.build(ctx),
        evaluations=tuple(evaluations),
        action_reason=_reason(action_rule, action_conds, "No action rule matched"),
        quality_reason=_reason(quality_rule, quality_conds, "No quality rule matched"),
    )


def get_display_signals(rec: Recommendation) -> list[StockSignal]:
    """Signals to render for a recommendation, action first (at most two)."""
    return rec.signals[:2]


def has_actionable_signal(rec: Recommendation) -> bool:
    """True when the action signal is a buy-type or sell-side signal."""
    action = rec.action_signal
    return action is not None and (action.type in BUYABLE_SIGNALS or action.type in SELL_SIDE_SIGNALS)


def is_buyable(signal: StockSignal | None) -> bool:
    return signal is not None and signal.type in BUYABLE_SIGNALS
