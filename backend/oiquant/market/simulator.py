"""Random-walk generator for simulated spot, futures and open interest."""

from __future__ import annotations

import logging

import numpy as np

from .models import DataPoint, DataSourceMode, OptionSeriesEntry, format_label, now_ms
from .seed_prices import (
    BOOTSTRAP_DELTA_BOUND,
    CANDLE_INTERVAL_MS,
    MOCK_START_OI,
    MOCK_START_PRICE,
    OI_NOISE,
    OI_TREND_BIAS,
    OI_TREND_THRESHOLD,
    OPTION_TEMPLATES,
    PREMIUM_BASE,
    PREMIUM_SPREAD,
    TICK_DELTA_BOUND,
    VOLUME_RANGE,
)

logger = logging.getLogger(__name__)


class SeriesGenerator:
    """Bounded random walk with a price/open-interest correlation.

    Each step:
        spot(t+1)   = spot(t) + U(-bound, +bound)
        future(t+1) = spot(t+1) + PREMIUM_BASE + U(0, PREMIUM_SPREAD)
        oi(t+1)     = oi(t) + U(-OI_NOISE, +OI_NOISE) + bias

    where bias is +OI_TREND_BIAS when the spot delta exceeds
    +OI_TREND_THRESHOLD, -OI_TREND_BIAS below -OI_TREND_THRESHOLD and zero
    otherwise. Strong up-moves therefore tend to add open interest (new
    longs) and strong down-moves tend to remove it.
    """

    def __init__(
        self,
        delta_bound: float = TICK_DELTA_BOUND,
        bootstrap_delta_bound: float = BOOTSTRAP_DELTA_BOUND,
        seed: int | None = None,
    ) -> None:
        self._delta_bound = delta_bound
        self._bootstrap_bound = bootstrap_delta_bound
        self._rng = np.random.default_rng(seed)

    # --- Public API ---

    def next(self, previous: DataPoint, timestamp: int | None = None) -> DataPoint:
        """Produce the point following ``previous``.

        The timestamp defaults to now, bumped to ``previous.timestamp + 1`` if
        the clock has not advanced, so a series stays strictly increasing.
        """
        ts = max(timestamp if timestamp is not None else now_ms(), previous.timestamp + 1)
        return self._step(previous, ts, self._delta_bound)

    def bootstrap(
        self,
        count: int,
        start_price: float = MOCK_START_PRICE,
        start_oi: int = MOCK_START_OI,
        end_timestamp: int | None = None,
    ) -> list[DataPoint]:
        """Generate ``count`` candles spaced CANDLE_INTERVAL_MS apart, ending now."""
        if count <= 0:
            return []
        end = end_timestamp if end_timestamp is not None else now_ms()
        first_ts = end - (count - 1) * CANDLE_INTERVAL_MS

        # Virtual predecessor so the first candle is already one step away from the seed
        seed_point = DataPoint(
            timestamp=first_ts - CANDLE_INTERVAL_MS,
            label=format_label(first_ts - CANDLE_INTERVAL_MS),
            spot_price=start_price,
            future_price=round(start_price + PREMIUM_BASE, 2),
            open_interest=start_oi,
            volume=0,
        )

        points: list[DataPoint] = []
        prev = seed_point
        for i in range(count):
            prev = self._step(prev, first_ts + i * CANDLE_INTERVAL_MS, self._bootstrap_bound)
            points.append(prev)

        logger.debug(
            "Bootstrapped %d simulated points (last spot %.2f)", count, points[-1].spot_price
        )
        return points

    def simulated_options(self) -> list[OptionSeriesEntry]:
        """A fresh mix of monthly, weekly and daily option series."""
        return [
            OptionSeriesEntry(
                expiry=expiry,
                code=code,
                kind=kind,
                call_oi=int(self._rng.integers(call_lo, call_hi)),
                put_oi=int(self._rng.integers(put_lo, put_hi)),
            )
            for expiry, code, kind, (call_lo, call_hi), (put_lo, put_hi) in OPTION_TEMPLATES
        ]

    def maybe_options(self, probability: float) -> list[OptionSeriesEntry] | None:
        """New option series with the given probability, otherwise None."""
        if self._rng.random() < probability:
            return self.simulated_options()
        return None

    # --- Internals ---

    def _step(self, previous: DataPoint, timestamp: int, bound: float) -> DataPoint:
        delta = float(self._rng.uniform(-bound, bound))
        premium = PREMIUM_BASE + float(self._rng.uniform(0.0, PREMIUM_SPREAD))

        if delta > OI_TREND_THRESHOLD:
            bias = OI_TREND_BIAS
        elif delta < -OI_TREND_THRESHOLD:
            bias = -OI_TREND_BIAS
        else:
            bias = 0.0
        oi_change = float(self._rng.uniform(-OI_NOISE, OI_NOISE)) + bias

        spot = previous.spot_price + delta
        return DataPoint(
            timestamp=timestamp,
            label=format_label(timestamp),
            spot_price=round(spot, 2),
            future_price=round(spot + premium, 2),
            open_interest=max(0, int(previous.open_interest + oi_change)),
            volume=int(self._rng.integers(*VOLUME_RANGE)),
            source=DataSourceMode.SIMULATED,
        )
