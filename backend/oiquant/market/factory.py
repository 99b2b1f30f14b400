"""Factory for wiring the market controller."""

from __future__ import annotations

import logging

from .cache import SeriesStore
from .config import MarketSettings
from .controller import ModeController
from .gemini_client import GeminiMarketClient
from .interface import MarketDataClient
from .reconciler import HistoryReconciler
from .scheduler import RefreshScheduler
from .sequencer import AnalysisSequencer
from .simulator import SeriesGenerator
from .state import MarketState

logger = logging.getLogger(__name__)


def create_market_controller(
    settings: MarketSettings | None = None,
    client: MarketDataClient | None = None,
) -> ModeController:
    """Build a ModeController and its collaborators from settings.

    - settings default to MarketSettings.from_env()
    - client defaults to a GeminiMarketClient using settings.api_key

    Returns an unstarted controller. Caller must await controller.start().
    """
    settings = settings or MarketSettings.from_env()

    if client is None:
        client = GeminiMarketClient(
            api_key=settings.api_key,
            model=settings.model,
            language=settings.language,
        )
    if not settings.api_key:
        logger.info("No Gemini API key configured; external refresh needs one at runtime")

    state = MarketState(series=SeriesStore(capacity=settings.history_size), mode=settings.initial_mode)
    controller = ModeController(
        client=client,
        state=state,
        generator=SeriesGenerator(),
        sequencer=AnalysisSequencer(state, HistoryReconciler(), language=settings.language),
        scheduler=RefreshScheduler(state.cycle),
        refresh_interval=settings.refresh_interval,
        simulation_interval=settings.simulation_interval,
    )
    logger.info(
        "Market data source: %s (history %d, refresh %.0fs)",
        settings.initial_mode.value,
        settings.history_size,
        settings.refresh_interval,
    )
    return controller
