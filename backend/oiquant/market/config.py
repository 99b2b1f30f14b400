"""Environment-driven settings for the market subsystem."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .gemini_client import DEFAULT_MODEL
from .models import DataSourceMode
from .seed_prices import DEFAULT_HISTORY_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSettings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    history_size: int = DEFAULT_HISTORY_SIZE
    refresh_interval: float = 60.0  # seconds between auto-refresh cycles
    simulation_interval: float = 3.0  # seconds between simulated points
    language: str = "en"
    initial_mode: DataSourceMode = DataSourceMode.SIMULATED

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MarketSettings:
        """Read settings from environment variables.

        - GEMINI_API_KEY (or API_KEY): credential for the external source
        - MARKET_MODE: "simulated" or "external"; defaults to external when a
          key is set, simulated otherwise
        - MARKET_HISTORY_SIZE, MARKET_REFRESH_INTERVAL,
          MARKET_SIMULATION_INTERVAL, GEMINI_MODEL, ANALYSIS_LANGUAGE
        """
        env = os.environ if environ is None else environ
        api_key = (env.get("GEMINI_API_KEY") or env.get("API_KEY") or "").strip()

        mode_name = env.get("MARKET_MODE", "").strip().upper()
        if mode_name in DataSourceMode.__members__:
            initial_mode = DataSourceMode[mode_name]
        else:
            if mode_name:
                logger.warning("Ignoring unknown MARKET_MODE=%r", mode_name)
            initial_mode = DataSourceMode.EXTERNAL if api_key else DataSourceMode.SIMULATED

        language = env.get("ANALYSIS_LANGUAGE", "en").strip().lower() or "en"

        return cls(
            api_key=api_key,
            model=env.get("GEMINI_MODEL", "").strip() or DEFAULT_MODEL,
            history_size=int(_positive(env, "MARKET_HISTORY_SIZE", DEFAULT_HISTORY_SIZE)),
            refresh_interval=_positive(env, "MARKET_REFRESH_INTERVAL", 60.0),
            simulation_interval=_positive(env, "MARKET_SIMULATION_INTERVAL", 3.0),
            language=language,
            initial_mode=initial_mode,
        )


def _positive(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive, using default %s", name, default)
        return default
    return value
