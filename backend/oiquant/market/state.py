"""The single owned application state of the market subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field

from .analysis import classify_position_flow, step_changes
from .cache import SeriesStore
from .models import (
    AnalysisResult,
    AnalysisStatus,
    DataSourceMode,
    OptionSeriesEntry,
    RefreshCycleState,
)


@dataclass
class MarketState:
    """Series, option chain, latest analysis and cycle status.

    Owned by the ModeController, which mediates all writes; the scheduler and
    sequencer receive it explicitly. ``epoch`` is bumped on every mode switch
    and manual refresh so in-flight work can detect that it is stale.
    """

    series: SeriesStore
    mode: DataSourceMode = DataSourceMode.SIMULATED
    option_series: list[OptionSeriesEntry] = field(default_factory=list)
    analysis: AnalysisResult | None = None
    cycle: RefreshCycleState = field(default_factory=RefreshCycleState)
    epoch: int = 0
    last_error: str | None = None
    revision: int = 0  # Bumped on every non-series change; used for SSE change detection

    def touch(self) -> None:
        self.revision += 1

    def set_status(self, status: AnalysisStatus) -> None:
        self.cycle.status = status
        self.touch()

    @property
    def change_token(self) -> tuple[int, int, int]:
        """Changes whenever anything a client displays has changed."""
        return (self.series.version, self.revision, self.cycle.countdown_seconds)

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        points = self.series.snapshot()
        latest = points[-1] if points else None
        previous = points[-2] if len(points) > 1 else None
        summary = None
        if latest is not None:
            price_change, oi_change = step_changes(latest, previous)
            summary = {
                "spot_price": latest.spot_price,
                "future_price": latest.future_price,
                "open_interest": latest.open_interest,
                "basis": latest.basis,
                "price_change": price_change,
                "oi_change": oi_change,
                "position_flow": classify_position_flow(price_change, oi_change).value,
            }
        return {
            "mode": self.mode.value,
            "epoch": self.epoch,
            "latest": summary,
            "series": [p.to_dict() for p in points],
            "option_series": [o.to_dict() for o in self.option_series],
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "cycle": self.cycle.to_dict(),
            "last_error": self.last_error,
        }
