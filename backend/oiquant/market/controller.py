"""Top-level owner of the market state: mode switching and refresh orchestration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from .cache import SeriesStore
from .interface import MarketDataClient
from .models import AnalysisResult, AnalysisStatus, Citation, DataPoint, DataSourceMode
from .scheduler import RefreshScheduler
from .seed_prices import OPTION_REFRESH_PROBABILITY
from .sequencer import AnalysisSequencer
from .simulator import SeriesGenerator
from .state import MarketState

logger = logging.getLogger(__name__)


class ModeController:
    """Selects the active data source and mediates every write to MarketState.

    SIMULATED: a background task appends a generated point every
    ``simulation_interval`` seconds. No analysis runs unless requested.
    EXTERNAL: each refresh is one AnalysisSequencer cycle (fetch, reconcile,
    analyze); optional auto-refresh via the RefreshScheduler.

    Every mode switch and manual refresh bumps ``state.epoch``. Cycles capture
    the epoch and mode when launched and commit nothing once either changes.

    Lifecycle:
        controller = create_market_controller(settings)
        await controller.start()
        await controller.set_mode(DataSourceMode.EXTERNAL)
        await controller.set_auto_refresh(True)
        # ... app runs ...
        await controller.stop()
    """

    def __init__(
        self,
        client: MarketDataClient,
        state: MarketState | None = None,
        generator: SeriesGenerator | None = None,
        sequencer: AnalysisSequencer | None = None,
        scheduler: RefreshScheduler | None = None,
        refresh_interval: float = 60.0,
        simulation_interval: float = 3.0,
        option_refresh_probability: float = OPTION_REFRESH_PROBABILITY,
    ) -> None:
        self._client = client
        self._state = state if state is not None else MarketState(series=SeriesStore())
        self._generator = generator or SeriesGenerator()
        self._sequencer = sequencer or AnalysisSequencer(self._state)
        self._scheduler = scheduler or RefreshScheduler(self._state.cycle)
        self._refresh_interval = refresh_interval
        self._simulation_interval = simulation_interval
        self._option_refresh_prob = option_refresh_probability
        self._sim_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._user_prompt: str | None = None

    # --- Lifecycle ---

    async def start(self) -> None:
        """Seed the history if empty and enter the configured mode."""
        if len(self._state.series) == 0:
            self._state.series.load(self._generator.bootstrap(self._state.series.capacity))
        if not self._state.option_series:
            self._state.option_series = self._generator.simulated_options()
        self._state.touch()
        await self._enter_mode(self._state.mode)
        logger.info("Market controller started in %s mode", self._state.mode.value)

    async def stop(self) -> None:
        """Cancel every timer and in-flight cycle. Safe to call multiple times."""
        await self._scheduler.stop()
        await self._stop_simulation()
        self._state.epoch += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._cycle_task = None
        logger.info("Market controller stopped")

    # --- Mode ---

    async def set_mode(self, mode: DataSourceMode) -> None:
        if mode is self._state.mode:
            return
        logger.info("Switching data source: %s -> %s", self._state.mode.value, mode.value)
        await self._enter_mode(mode)

    async def toggle_mode(self) -> DataSourceMode:
        if self._state.mode is DataSourceMode.SIMULATED:
            await self.set_mode(DataSourceMode.EXTERNAL)
        else:
            await self.set_mode(DataSourceMode.SIMULATED)
        return self._state.mode

    async def _enter_mode(self, mode: DataSourceMode) -> None:
        await self._scheduler.stop()
        await self._stop_simulation()

        self._state.epoch += 1
        self._state.mode = mode
        self._state.analysis = None
        self._state.last_error = None
        self._state.cycle.reset()
        self._state.touch()

        if mode is DataSourceMode.EXTERNAL:
            self._launch_cycle()
        else:
            self._sim_task = asyncio.create_task(self._run_simulation(), name="simulation-loop")

    # --- Refresh ---

    async def set_auto_refresh(self, enabled: bool) -> None:
        """Start or stop periodic refresh cycles (EXTERNAL mode only)."""
        cycle = self._state.cycle
        if enabled:
            if self._state.mode is not DataSourceMode.EXTERNAL:
                raise ValueError("Auto-refresh is only available in EXTERNAL mode")
            if cycle.auto_refresh_enabled:
                return
            await self._scheduler.start(self._refresh_interval, self._on_scheduled_tick)
            cycle.auto_refresh_enabled = True
        else:
            was_enabled = cycle.auto_refresh_enabled
            await self._scheduler.stop()
            cycle.auto_refresh_enabled = False
            if was_enabled:
                # A scheduled cycle still in flight must not commit after the timers stop
                self._state.epoch += 1
                if cycle.status is AnalysisStatus.LOADING:
                    cycle.status = AnalysisStatus.IDLE
        self._state.touch()
        logger.info("Auto-refresh %s", "enabled" if enabled else "disabled")

    def request_refresh(self) -> asyncio.Task:
        """Force a new cycle now, superseding any cycle still in flight.

        In SIMULATED mode this is an analysis-only pass over the current series.
        """
        self._state.epoch += 1
        return self._launch_cycle()

    async def refresh(self) -> AnalysisResult | None:
        return await self.request_refresh()

    async def _on_scheduled_tick(self) -> None:
        if self.cycle_in_flight:
            logger.warning("Scheduled refresh skipped: a cycle is already in flight")
            return
        await self._launch_cycle()

    def _launch_cycle(self) -> asyncio.Task:
        epoch = self._state.epoch
        mode = self._state.mode

        def is_current() -> bool:
            return self._state.epoch == epoch and self._state.mode is mode

        task = asyncio.create_task(self._run_cycle(mode, is_current), name=f"cycle-{epoch}")
        self._cycle_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_cycle(
        self, mode: DataSourceMode, is_current: Callable[[], bool]
    ) -> AnalysisResult | None:
        if mode is DataSourceMode.EXTERNAL:
            result = await self._sequencer.run_cycle(
                self._client.fetch_snapshot, self._analyze, is_current
            )
        else:
            result = await self._sequencer.run_analysis(self._analyze, is_current)
        if is_current() and self._state.cycle.status is AnalysisStatus.SUCCESS:
            self._scheduler.reset_countdown()
        return result

    async def _analyze(
        self,
        series: list[DataPoint],
        previous: DataPoint | None,
        citations: Sequence[Citation],
    ) -> AnalysisResult:
        return await self._client.analyze(series, previous, citations, self._user_prompt)

    # --- Simulation ---

    async def _run_simulation(self) -> None:
        """Core loop: sleep, then append one generated point."""
        while True:
            await asyncio.sleep(self._simulation_interval)
            try:
                self._simulate_once()
            except Exception:
                logger.exception("Simulation step failed")

    def _simulate_once(self) -> None:
        store = self._state.series
        latest = store.latest()
        if latest is None:
            store.load(self._generator.bootstrap(store.capacity))
        else:
            store.append(self._generator.next(latest))
        options = self._generator.maybe_options(self._option_refresh_prob)
        if options is not None:
            self._state.option_series = options
            self._state.touch()

    async def _stop_simulation(self) -> None:
        if self._sim_task and not self._sim_task.done():
            self._sim_task.cancel()
            try:
                await self._sim_task
            except asyncio.CancelledError:
                pass
        self._sim_task = None

    # --- Session / accessors ---

    def set_api_key(self, api_key: str | None) -> None:
        self._client.set_api_key(api_key)

    @property
    def user_prompt(self) -> str | None:
        return self._user_prompt

    @user_prompt.setter
    def user_prompt(self, value: str | None) -> None:
        self._user_prompt = (value or "").strip() or None

    @property
    def state(self) -> MarketState:
        return self._state

    @property
    def mode(self) -> DataSourceMode:
        return self._state.mode

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def current_cycle(self) -> asyncio.Task | None:
        return self._cycle_task

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    @property
    def simulation_running(self) -> bool:
        return self._sim_task is not None and not self._sim_task.done()

    def snapshot(self) -> dict:
        data = self._state.to_dict()
        data["scheduler"] = self._scheduler.state.value
        data["user_prompt"] = self._user_prompt
        return data
