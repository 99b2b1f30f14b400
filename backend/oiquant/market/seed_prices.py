"""Seed values and random-walk parameters for the market simulator."""

from .models import SeriesKind

# Starting point for the simulated history (XAU/USD spot, CME gold futures OI)
MOCK_START_PRICE = 2350.00
MOCK_START_OI = 450_000

DEFAULT_HISTORY_SIZE = 50
CANDLE_INTERVAL_MS = 15 * 60 * 1000  # Bootstrapped history uses 15 min candles

# Per-step spot delta is uniform in [-bound, +bound]
BOOTSTRAP_DELTA_BOUND = 2.5
TICK_DELTA_BOUND = 1.5

# Futures trade above spot (contango): premium = base + U(0, spread)
PREMIUM_BASE = 12.0
PREMIUM_SPREAD = 5.0

# OI change = U(-noise, +noise), shifted by +/- bias when |delta| > threshold
OI_NOISE = 500.0
OI_TREND_BIAS = 500.0
OI_TREND_THRESHOLD = 1.0

VOLUME_RANGE = (1000, 6000)

# Simulated option chain: (expiry, code, kind, call OI range, put OI range)
OPTION_TEMPLATES: list[tuple[str, str, SeriesKind, tuple[int, int], tuple[int, int]]] = [
    ("Dec 24", "OGZ24", SeriesKind.MONTHLY, (15000, 17000), (12000, 14000)),
    ("Feb 25", "OGG25", SeriesKind.MONTHLY, (8000, 9000), (6000, 7000)),
    ("Oct W4", "OGV4", SeriesKind.WEEKLY, (3000, 3500), (2500, 3000)),
    ("Today (Mon)", "1GO", SeriesKind.DAILY, (1200, 1500), (1500, 1800)),
    ("Tmrw (Tue)", "2GO", SeriesKind.DAILY, (900, 1100), (800, 1000)),
]

# Probability that a simulation tick also regenerates the option chain
OPTION_REFRESH_PROBABILITY = 0.3
