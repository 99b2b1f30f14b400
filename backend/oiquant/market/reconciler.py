"""Price-level reconciliation of a simulated history with an authoritative point."""

from __future__ import annotations

import dataclasses
import logging

from .cache import SeriesStore
from .models import DataPoint

logger = logging.getLogger(__name__)


def shift_history(points: list[DataPoint], offset: float, precision: int = 2) -> list[DataPoint]:
    """Shift spot and futures of every point by ``offset``.

    Open interest, volume and timestamps are left untouched, so the shape of
    the series is preserved and only its price level moves.
    """
    return [
        dataclasses.replace(
            p,
            spot_price=round(p.spot_price + offset, precision),
            future_price=round(p.future_price + offset, precision),
        )
        for p in points
    ]


class HistoryReconciler:
    """Joins an authoritative point onto a simulated series without a jump.

    Switching from a simulated baseline (e.g. 2350) to a real quote (e.g. 2600)
    would otherwise leave a vertical step in the chart. The whole stored window
    is shifted by ``authoritative.spot_price - latest.spot_price``, the oldest
    point is dropped and the authoritative point is appended, so the window
    length is unchanged and the tail equals the authoritative price.

    Apply once per incoming authoritative point; reconciling the same point
    twice shifts the history twice.
    """

    def __init__(self, precision: int = 2) -> None:
        self._precision = precision

    def reconcile(self, store: SeriesStore, authoritative: DataPoint) -> list[DataPoint]:
        """Merge ``authoritative`` into ``store``. Returns the new series."""
        history = store.snapshot()
        if not history:
            return store.append(authoritative)

        offset = authoritative.spot_price - history[-1].spot_price
        shifted = shift_history(history, offset, self._precision)

        # Rewrite, then evict the oldest, then append
        retained = shifted[1:]
        if retained and authoritative.timestamp <= retained[-1].timestamp:
            authoritative = dataclasses.replace(
                authoritative, timestamp=retained[-1].timestamp + 1
            )

        logger.info(
            "Reconciled %d points onto %.2f (offset %+.2f)",
            len(history),
            authoritative.spot_price,
            offset,
        )
        return store.replace_all([*retained, authoritative])
