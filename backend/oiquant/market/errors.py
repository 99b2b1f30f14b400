"""Exceptions raised by the market data collaborators."""

from __future__ import annotations

from typing import Any


class MarketDataError(Exception):
    """Base class for failures at the fetch/analyze boundary."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class FetchError(MarketDataError):
    """External snapshot could not be obtained.

    Raised for a missing or rejected credential, an API failure, or a response
    with too few numeric fields to build a DataPoint.
    """


class AnalysisError(MarketDataError):
    """The analysis step failed or returned a malformed structured response."""
