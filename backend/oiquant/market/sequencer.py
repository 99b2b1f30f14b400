"""Fetch → merge → analyze sequencing for one refresh cycle."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Sequence

from .analysis import fallback_analysis
from .errors import MarketDataError
from .models import AnalysisResult, AnalysisStatus, Citation, DataPoint, FetchResult
from .reconciler import HistoryReconciler
from .state import MarketState

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[FetchResult]]
AnalyzeFn = Callable[
    [list[DataPoint], DataPoint | None, Sequence[Citation]], Awaitable[AnalysisResult]
]
IsCurrentFn = Callable[[], bool]


def _always_current() -> bool:
    return True


class AnalysisSequencer:
    """Runs one cycle against the shared MarketState.

    Cycle:
        1. status -> LOADING
        2. fetch; on failure -> ERROR + fallback, series untouched
        3. merge: reconcile onto a simulated tail, append onto a real one
        4. analyze(series, prior latest, citations); on failure -> ERROR +
           fallback, merged data kept
        5. status -> SUCCESS, result stored with the fetch citations

    ``is_current`` is checked after every suspension point. Once it returns
    False the cycle is stale: nothing more is written and None is returned.
    A cycle never raises.
    """

    def __init__(
        self,
        state: MarketState,
        reconciler: HistoryReconciler | None = None,
        language: str = "en",
    ) -> None:
        self._state = state
        self._reconciler = reconciler or HistoryReconciler()
        self._language = language

    async def run_cycle(
        self,
        fetch_fn: FetchFn,
        analyze_fn: AnalyzeFn,
        is_current: IsCurrentFn | None = None,
    ) -> AnalysisResult | None:
        is_current = is_current or _always_current
        if not is_current():
            return None

        self._state.set_status(AnalysisStatus.LOADING)
        prior = self._state.series.latest()

        try:
            fetched = await fetch_fn()
        except Exception as e:
            if not is_current():
                logger.warning("Discarding failed fetch from a stale cycle: %s", e)
                return None
            return self._fail("fetch", e)

        if not is_current():
            logger.warning("Discarding fetched point from a stale cycle")
            return None

        prior = self._merge(fetched, prior)
        citations = tuple(fetched.citations)
        return await self._analyze(analyze_fn, prior, citations, is_current)

    async def run_analysis(
        self,
        analyze_fn: AnalyzeFn,
        is_current: IsCurrentFn | None = None,
    ) -> AnalysisResult | None:
        """Analysis-only pass over the current series (no fetch, no merge)."""
        is_current = is_current or _always_current
        if not is_current():
            return None
        self._state.set_status(AnalysisStatus.LOADING)
        return await self._analyze(analyze_fn, self._state.series.previous(), (), is_current)

    # --- Internal ---

    async def _analyze(
        self,
        analyze_fn: AnalyzeFn,
        prior: DataPoint | None,
        citations: tuple[Citation, ...],
        is_current: IsCurrentFn,
    ) -> AnalysisResult | None:
        series = self._state.series.snapshot()
        try:
            result = await analyze_fn(series, prior, list(citations))
        except Exception as e:
            if not is_current():
                logger.warning("Discarding failed analysis from a stale cycle: %s", e)
                return None
            return self._fail("analysis", e, citations)

        if not is_current():
            logger.warning("Discarding analysis result from a stale cycle")
            return None

        result = dataclasses.replace(result, citations=citations)
        self._state.analysis = result
        self._state.last_error = None
        self._state.set_status(AnalysisStatus.SUCCESS)
        logger.info(
            "Cycle complete: %s (confidence %.0f)", result.sentiment.value, result.confidence
        )
        return result

    def _merge(self, fetched: FetchResult, prior: DataPoint | None) -> DataPoint | None:
        """Merge the fetched point; returns the prior latest as it now reads.

        After a reconcile the prior latest has been shifted to the new price
        level, so the shifted copy is returned instead of the original.
        """
        store = self._state.series
        point = fetched.data_point
        tail = store.latest()

        if tail is not None and tail.is_simulated:
            merged = self._reconciler.reconcile(store, point)
            prior = merged[-2] if len(merged) > 1 else prior
        else:
            if tail is not None and point.timestamp <= tail.timestamp:
                point = dataclasses.replace(point, timestamp=tail.timestamp + 1)
            store.append(point)

        if fetched.option_series:
            self._state.option_series = list(fetched.option_series)
        self._state.touch()
        return prior

    def _fail(
        self,
        stage: str,
        error: Exception,
        citations: tuple[Citation, ...] = (),
    ) -> AnalysisResult:
        if isinstance(error, MarketDataError):
            logger.error("Cycle %s failed: %s", stage, error)
        else:
            logger.exception("Unexpected error during cycle %s", stage)
        result = fallback_analysis(self._state.series.snapshot(), self._language, citations)
        self._state.analysis = result
        self._state.last_error = str(error)
        self._state.set_status(AnalysisStatus.ERROR)
        return result
