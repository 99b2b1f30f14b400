"""Market data subsystem for the gold OI analyzer.

Public API:
    DataPoint               - Immutable spot/futures/OI snapshot dataclass
    SeriesStore             - Fixed-capacity in-memory series window
    SeriesGenerator         - Random-walk generator for simulated points
    HistoryReconciler       - Shifts a simulated history onto a real quote
    RefreshScheduler        - Cancellable periodic refresh with countdown
    AnalysisSequencer       - One fetch -> merge -> analyze cycle
    ModeController          - Owner of the state; switches SIMULATED/EXTERNAL
    MarketDataClient        - Abstract interface for fetch + analysis providers
    create_market_controller - Factory that wires everything from settings
    create_market_router    - FastAPI router factory for snapshot/SSE/control
"""

from .cache import SeriesStore
from .config import MarketSettings
from .controller import ModeController
from .factory import create_market_controller
from .interface import MarketDataClient
from .models import AnalysisResult, AnalysisStatus, DataPoint, DataSourceMode
from .reconciler import HistoryReconciler
from .scheduler import RefreshScheduler
from .sequencer import AnalysisSequencer
from .simulator import SeriesGenerator
from .stream import create_market_router

__all__ = [
    "AnalysisResult",
    "AnalysisSequencer",
    "AnalysisStatus",
    "DataPoint",
    "DataSourceMode",
    "HistoryReconciler",
    "MarketDataClient",
    "MarketSettings",
    "ModeController",
    "RefreshScheduler",
    "SeriesGenerator",
    "SeriesStore",
    "create_market_controller",
    "create_market_router",
]
