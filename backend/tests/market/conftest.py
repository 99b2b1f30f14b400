"""Fixtures for market data tests.

``FakeMarketClient`` stands in for the Gemini-backed client so cycles can be
driven deterministically. Setting ``fetch_gate`` makes fetch_snapshot() wait
until the event is set, which lets tests interleave mode switches and
refreshes with an in-flight fetch.
"""

import asyncio
from collections.abc import Sequence

import pytest

from oiquant.market.cache import SeriesStore
from oiquant.market.errors import AnalysisError, FetchError
from oiquant.market.interface import MarketDataClient
from oiquant.market.models import (
    AnalysisResult,
    Citation,
    DataPoint,
    DataSourceMode,
    FetchResult,
    OptionSeriesEntry,
    Sentiment,
    Trend,
)


def make_point(
    timestamp: int,
    spot: float,
    future: float | None = None,
    oi: int = 450_000,
    volume: int = 1000,
    source: DataSourceMode = DataSourceMode.SIMULATED,
) -> DataPoint:
    return DataPoint(
        timestamp=timestamp,
        label="00:00",
        spot_price=spot,
        future_price=future if future is not None else round(spot + 15, 2),
        open_interest=oi,
        volume=volume,
        source=source,
    )


def make_analysis(sentiment: Sentiment = Sentiment.BULLISH, confidence: float = 75.0) -> AnalysisResult:
    return AnalysisResult(
        sentiment=sentiment,
        confidence=confidence,
        summary="Price and OI rising together",
        recommendation="Buy dips",
        support="2590-2595",
        resistance="2610-2615",
        basis=15.0,
        oi_trend=Trend.RISING,
        price_trend=Trend.RISING,
    )


class FakeMarketClient(MarketDataClient):
    def __init__(self, spot: float = 2600.0) -> None:
        self.spot = spot
        self.fetch_calls = 0
        self.analyze_calls: list[tuple[list[DataPoint], DataPoint | None, list[Citation], str | None]] = []
        self.fetch_error: Exception | None = None
        self.analyze_error: Exception | None = None
        self.fetch_gate: asyncio.Event | None = None
        self.api_key: str | None = "test-key"
        self.citations = [Citation(title="Kitco", uri="https://www.kitco.com")]
        self.option_series = [OptionSeriesEntry(expiry="Dec 24", code="OGZ24", call_oi=15000, put_oi=12000)]
        self._ts = 10**13

    async def fetch_snapshot(self) -> FetchResult:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        self._ts += 60_000
        point = make_point(self._ts, self.spot, source=DataSourceMode.EXTERNAL)
        return FetchResult(
            data_point=point,
            option_series=list(self.option_series),
            citations=list(self.citations),
        )

    async def analyze(
        self,
        series: Sequence[DataPoint],
        previous: DataPoint | None = None,
        citations: Sequence[Citation] = (),
        user_prompt: str | None = None,
    ) -> AnalysisResult:
        self.analyze_calls.append((list(series), previous, list(citations), user_prompt))
        if self.analyze_error is not None:
            raise self.analyze_error
        return make_analysis()

    def set_api_key(self, api_key: str | None) -> None:
        self.api_key = api_key


@pytest.fixture(name="make_point")
def make_point_fixture():
    return make_point


@pytest.fixture(name="make_analysis")
def make_analysis_fixture():
    return make_analysis


@pytest.fixture
def fake_client() -> FakeMarketClient:
    return FakeMarketClient()


@pytest.fixture
def simulated_store() -> SeriesStore:
    """Store holding three simulated points: 100, 102, 101."""
    store = SeriesStore(capacity=3)
    store.load(
        [
            make_point(1_000, 100.0, 112.0, oi=1000, volume=10),
            make_point(2_000, 102.0, 114.5, oi=1100, volume=20),
            make_point(3_000, 101.0, 113.25, oi=1050, volume=30),
        ]
    )
    return store


@pytest.fixture
def fetch_error() -> FetchError:
    return FetchError("API key is missing")


@pytest.fixture
def analysis_error() -> AnalysisError:
    return AnalysisError("Empty response from analysis model")
