"""Fixed-capacity in-memory window of market data points."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from threading import Lock

from .models import DataPoint
from .seed_prices import DEFAULT_HISTORY_SIZE


class SeriesStore:
    """Ordered window of at most ``capacity`` DataPoints, oldest first.

    Writers: the ModeController's simulation loop and the AnalysisSequencer
    (one at a time, on the event loop).
    Readers: SSE streaming endpoint, analysis step.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._points: deque[DataPoint] = deque(maxlen=capacity)
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every mutation

    def append(self, point: DataPoint) -> list[DataPoint]:
        """Add a point at the tail, evicting the oldest once full.

        Returns a snapshot of the series after the append.
        """
        with self._lock:
            if self._points and point.timestamp <= self._points[-1].timestamp:
                raise ValueError(
                    f"timestamp {point.timestamp} is not after tail {self._points[-1].timestamp}"
                )
            self._points.append(point)
            self._version += 1
            return list(self._points)

    def replace_all(self, points: Iterable[DataPoint]) -> list[DataPoint]:
        """Swap in a rewritten series of the same length and ordering."""
        new_points = list(points)
        _check_ordering(new_points)
        with self._lock:
            if len(new_points) != len(self._points):
                raise ValueError(
                    f"replace_all must keep length {len(self._points)}, got {len(new_points)}"
                )
            self._points = deque(new_points, maxlen=self._capacity)
            self._version += 1
            return list(self._points)

    def load(self, points: Iterable[DataPoint]) -> list[DataPoint]:
        """Bulk initial fill. Keeps only the newest ``capacity`` points."""
        new_points = list(points)[-self._capacity :]
        _check_ordering(new_points)
        with self._lock:
            self._points = deque(new_points, maxlen=self._capacity)
            self._version += 1
            return list(self._points)

    def latest(self) -> DataPoint | None:
        with self._lock:
            return self._points[-1] if self._points else None

    def previous(self) -> DataPoint | None:
        """Second-to-last point, or None with fewer than two points."""
        with self._lock:
            return self._points[-2] if len(self._points) > 1 else None

    def snapshot(self) -> list[DataPoint]:
        """Shallow copy of the series, oldest first."""
        with self._lock:
            return list(self._points)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)


def _check_ordering(points: list[DataPoint]) -> None:
    for earlier, later in zip(points, points[1:]):
        if later.timestamp <= earlier.timestamp:
            raise ValueError("timestamps must be strictly increasing")
