"""Local analysis helpers: trends, position flow and the neutral fallback."""

from __future__ import annotations

from enum import Enum

from .models import AnalysisResult, Citation, DataPoint, Sentiment, Trend

# Moves smaller than these count as STABLE
PRICE_STABLE_BAND = 0.5
OI_STABLE_BAND = 100

FALLBACK_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "summary": "Could not reach the analysis service or the API key is invalid. "
        "Check the key and try again.",
        "recommendation": "Hold off on trading until data is available again.",
    },
    "th": {
        "summary": "ไม่สามารถเชื่อมต่อ AI ได้ หรือ API Key ไม่ถูกต้อง โปรดตรวจสอบ Key และลองใหม่อีกครั้ง",
        "recommendation": "ชะลอการซื้อขายจนกว่าข้อมูลจะกลับมาเป็นปกติ",
    },
}


class PositionFlow(str, Enum):
    """How price and open interest moved together over the last step."""

    NEW_LONGS = "NEW_LONGS"  # price up, OI up: bullish confirmation
    SHORT_COVERING = "SHORT_COVERING"  # price up, OI down: weak bullish
    NEW_SHORTS = "NEW_SHORTS"  # price down, OI up: bearish confirmation
    LONG_LIQUIDATION = "LONG_LIQUIDATION"  # price down, OI down: weak bearish
    NEUTRAL = "NEUTRAL"


def trend_of(change: float, stable_band: float) -> Trend:
    if change > stable_band:
        return Trend.RISING
    if change < -stable_band:
        return Trend.FALLING
    return Trend.STABLE


def classify_position_flow(price_change: float, oi_change: float) -> PositionFlow:
    if price_change > 0 and oi_change > 0:
        return PositionFlow.NEW_LONGS
    if price_change > 0 and oi_change < 0:
        return PositionFlow.SHORT_COVERING
    if price_change < 0 and oi_change > 0:
        return PositionFlow.NEW_SHORTS
    if price_change < 0 and oi_change < 0:
        return PositionFlow.LONG_LIQUIDATION
    return PositionFlow.NEUTRAL


def step_changes(latest: DataPoint, previous: DataPoint | None) -> tuple[float, int]:
    """(spot change, OI change) from ``previous`` to ``latest``."""
    if previous is None:
        return 0.0, 0
    return (
        round(latest.spot_price - previous.spot_price, 2),
        latest.open_interest - previous.open_interest,
    )


def fallback_analysis(
    series: list[DataPoint],
    language: str = "en",
    citations: tuple[Citation, ...] = (),
) -> AnalysisResult:
    """Neutral, zero-confidence result shown when a cycle fails.

    The basis is computed locally from the latest point so the figure stays
    meaningful even without the remote analysis.
    """
    messages = FALLBACK_MESSAGES.get(language, FALLBACK_MESSAGES["en"])
    basis = series[-1].basis if series else 0.0
    return AnalysisResult(
        sentiment=Sentiment.NEUTRAL,
        confidence=0.0,
        summary=messages["summary"],
        recommendation=messages["recommendation"],
        support="-",
        resistance="-",
        basis=basis,
        oi_trend=Trend.STABLE,
        price_trend=Trend.STABLE,
        citations=citations,
    )
