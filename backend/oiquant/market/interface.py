"""Abstract interface for the external fetch + analysis collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from .models import AnalysisResult, Citation, DataPoint, FetchResult


class MarketDataClient(ABC):
    """Contract for the remote side of a refresh cycle.

    Implementations talk to the network; the AnalysisSequencer decides what
    happens with the results. Both methods raise the errors from
    ``market.errors`` instead of library-specific exceptions.

    Lifecycle:
        client = GeminiMarketClient(api_key=...)
        result = await client.fetch_snapshot()
        analysis = await client.analyze(series, previous, result.citations)
    """

    @abstractmethod
    async def fetch_snapshot(self) -> FetchResult:
        """Fetch the latest authoritative quote, option series and citations.

        Raises FetchError when the credential is missing or invalid, or the
        response holds no parsable price data.
        """

    @abstractmethod
    async def analyze(
        self,
        series: Sequence[DataPoint],
        previous: DataPoint | None = None,
        citations: Sequence[Citation] = (),
        user_prompt: str | None = None,
    ) -> AnalysisResult:
        """Analyze the series. ``previous`` is the latest point before the merge.

        Raises AnalysisError on a remote failure or malformed response.
        """

    @abstractmethod
    def set_api_key(self, api_key: str | None) -> None:
        """Replace the credential used for subsequent calls."""
