"""Data models for the market series."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import AnalysisError


def now_ms() -> int:
    """Current time as integer Unix milliseconds."""
    return int(time.time() * 1000)


def format_label(timestamp_ms: int) -> str:
    """Local wall-clock label ("HH:MM") for a millisecond timestamp."""
    return time.strftime("%H:%M", time.localtime(timestamp_ms / 1000))


class DataSourceMode(str, Enum):
    SIMULATED = "SIMULATED"
    EXTERNAL = "EXTERNAL"


class SeriesKind(str, Enum):
    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"
    DAILY = "DAILY"


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class Trend(str, Enum):
    RISING = "RISING"
    FALLING = "FALLING"
    STABLE = "STABLE"


class AnalysisStatus(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class DataPoint:
    """Immutable snapshot of spot, futures and open interest at one instant."""

    timestamp: int  # Unix milliseconds
    label: str
    spot_price: float
    future_price: float
    open_interest: int
    volume: int
    source: DataSourceMode = DataSourceMode.SIMULATED

    @property
    def basis(self) -> float:
        """Futures minus spot."""
        return round(self.future_price - self.spot_price, 2)

    @property
    def is_simulated(self) -> bool:
        return self.source is DataSourceMode.SIMULATED

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "timestamp": self.timestamp,
            "label": self.label,
            "spot_price": self.spot_price,
            "future_price": self.future_price,
            "open_interest": self.open_interest,
            "volume": self.volume,
            "basis": self.basis,
            "source": self.source.value,
        }


@dataclass(frozen=True, slots=True)
class OptionSeriesEntry:
    """Open interest for one option expiry (monthly, weekly or daily)."""

    expiry: str
    call_oi: int
    put_oi: int
    code: str | None = None
    kind: SeriesKind = SeriesKind.MONTHLY
    max_pain: float | None = None

    @property
    def put_call_ratio(self) -> float | None:
        if self.call_oi <= 0:
            return None
        return round(self.put_oi / self.call_oi, 2)

    def to_dict(self) -> dict:
        return {
            "expiry": self.expiry,
            "code": self.code,
            "call_oi": self.call_oi,
            "put_oi": self.put_oi,
            "kind": self.kind.value,
            "max_pain": self.max_pain,
            "put_call_ratio": self.put_call_ratio,
        }


@dataclass(frozen=True, slots=True)
class Citation:
    title: str
    uri: str

    def to_dict(self) -> dict:
        return {"title": self.title, "uri": self.uri}


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Everything one external fetch produces."""

    data_point: DataPoint
    option_series: list[OptionSeriesEntry] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Output of one analysis pass. A new cycle produces a new instance."""

    sentiment: Sentiment
    confidence: float
    summary: str
    recommendation: str
    support: str
    resistance: str
    basis: float
    oi_trend: Trend
    price_trend: Trend
    citations: tuple[Citation, ...] = ()

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> AnalysisResult:
        """Build from a structured model response.

        Raises AnalysisError if a required field is missing or has an
        unexpected value.
        """
        try:
            confidence = float(payload["confidence"])
            return cls(
                sentiment=Sentiment(str(payload["sentiment"]).upper()),
                confidence=min(100.0, max(0.0, confidence)),
                summary=str(payload["summary"]),
                recommendation=str(payload["recommendation"]),
                support=str(payload["support"]),
                resistance=str(payload["resistance"]),
                basis=round(float(payload["basis"]), 2),
                oi_trend=Trend(str(payload["oiTrend"]).upper()),
                price_trend=Trend(str(payload["priceTrend"]).upper()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AnalysisError(
                f"Malformed analysis response: {e}", context={"payload": payload}
            ) from e

    def to_dict(self) -> dict:
        return {
            "sentiment": self.sentiment.value,
            "confidence": self.confidence,
            "summary": self.summary,
            "recommendation": self.recommendation,
            "support": self.support,
            "resistance": self.resistance,
            "basis": self.basis,
            "oi_trend": self.oi_trend.value,
            "price_trend": self.price_trend.value,
            "citations": [c.to_dict() for c in self.citations],
        }


DEFAULT_COUNTDOWN_SECONDS = 60


@dataclass
class RefreshCycleState:
    """Mutable status of the refresh cycle, shared by scheduler and sequencer."""

    status: AnalysisStatus = AnalysisStatus.IDLE
    countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS
    auto_refresh_enabled: bool = False

    def reset(self) -> None:
        self.status = AnalysisStatus.IDLE
        self.countdown_seconds = DEFAULT_COUNTDOWN_SECONDS
        self.auto_refresh_enabled = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "countdown_seconds": self.countdown_seconds,
            "auto_refresh_enabled": self.auto_refresh_enabled,
        }
