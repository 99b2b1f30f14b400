"""Integration tests for ModeController."""

import asyncio

import pytest

from oiquant.market.cache import SeriesStore
from oiquant.market.controller import ModeController
from oiquant.market.models import AnalysisStatus, DataSourceMode
from oiquant.market.scheduler import SchedulerState
from oiquant.market.simulator import SeriesGenerator
from oiquant.market.state import MarketState


def _make_controller(client, mode=DataSourceMode.SIMULATED, **kwargs) -> ModeController:
    kwargs.setdefault("simulation_interval", 10.0)
    kwargs.setdefault("refresh_interval", 10.0)
    state = MarketState(series=SeriesStore(capacity=10), mode=mode)
    return ModeController(client=client, state=state, generator=SeriesGenerator(seed=1), **kwargs)


@pytest.mark.asyncio
class TestModeController:
    """Mode switching, refresh orchestration and stale-result guards."""

    async def test_start_bootstraps_history(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()

        assert len(controller.state.series) == 10
        assert controller.state.option_series
        assert controller.simulation_running
        assert fake_client.fetch_calls == 0

        await controller.stop()

    async def test_simulation_appends_points(self, fake_client):
        controller = _make_controller(fake_client, simulation_interval=0.02)
        await controller.start()
        version = controller.state.series.version
        first_latest = controller.state.series.latest()

        await asyncio.sleep(0.12)

        assert controller.state.series.version > version + 2
        assert len(controller.state.series) == 10
        assert controller.state.series.latest() != first_latest
        assert controller.state.series.latest().is_simulated
        assert fake_client.analyze_calls == []

        await controller.stop()

    async def test_entering_external_runs_one_cycle(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()

        await controller.set_mode(DataSourceMode.EXTERNAL)
        assert not controller.simulation_running
        await controller.current_cycle

        assert fake_client.fetch_calls == 1
        assert len(fake_client.analyze_calls) == 1
        assert controller.state.cycle.status is AnalysisStatus.SUCCESS
        assert controller.state.series.latest().spot_price == fake_client.spot
        assert len(controller.state.series) == 10

        await controller.stop()

    async def test_start_in_external_mode(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        await controller.current_cycle

        assert fake_client.fetch_calls == 1
        assert controller.state.analysis is not None

        await controller.stop()

    async def test_switching_mode_resets_derived_state(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        await controller.current_cycle
        await controller.set_auto_refresh(True)
        epoch = controller.state.epoch

        await controller.set_mode(DataSourceMode.SIMULATED)

        assert controller.state.analysis is None
        assert controller.state.cycle.status is AnalysisStatus.IDLE
        assert controller.state.cycle.auto_refresh_enabled is False
        assert controller.state.cycle.countdown_seconds == 60
        assert controller.scheduler.state is SchedulerState.STOPPED
        assert controller.state.epoch > epoch
        assert controller.simulation_running

        await controller.stop()

    async def test_in_flight_fetch_discarded_after_mode_switch(self, fake_client):
        """EXTERNAL -> SIMULATED while fetching: the late result is not applied."""
        fake_client.fetch_gate = asyncio.Event()
        controller = _make_controller(fake_client)
        await controller.start()
        await controller.set_mode(DataSourceMode.EXTERNAL)
        in_flight = controller.current_cycle
        await asyncio.sleep(0)  # let the cycle reach the fetch

        await controller.set_mode(DataSourceMode.SIMULATED)
        before = controller.state.series.snapshot()
        fake_client.fetch_gate.set()
        result = await in_flight

        assert result is None
        assert controller.state.series.snapshot() == before
        assert all(p.is_simulated for p in before)
        assert controller.state.analysis is None
        assert controller.state.cycle.status is AnalysisStatus.IDLE
        assert fake_client.analyze_calls == []

        await controller.stop()

    async def test_manual_refresh_supersedes_in_flight_cycle(self, fake_client):
        fake_client.fetch_gate = asyncio.Event()
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        stuck = controller.current_cycle
        await asyncio.sleep(0)

        fresh = controller.request_refresh()
        assert fresh is not stuck
        await asyncio.sleep(0)
        fake_client.fetch_gate.set()

        assert await stuck is None
        assert await fresh is not None
        assert fake_client.fetch_calls == 2
        assert len(fake_client.analyze_calls) == 1
        assert controller.state.cycle.status is AnalysisStatus.SUCCESS

        await controller.stop()

    async def test_auto_refresh_runs_cycles(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL, refresh_interval=0.05)
        await controller.start()
        await controller.current_cycle

        await controller.set_auto_refresh(True)
        assert controller.state.cycle.auto_refresh_enabled
        assert controller.scheduler.state is SchedulerState.RUNNING
        await asyncio.sleep(0.18)
        await controller.set_auto_refresh(False)

        assert fake_client.fetch_calls >= 3
        assert controller.state.cycle.auto_refresh_enabled is False
        assert controller.state.cycle.countdown_seconds == 60
        assert controller.scheduler.state is SchedulerState.STOPPED

        await controller.stop()

    async def test_scheduled_tick_skipped_while_cycle_in_flight(self, fake_client):
        fake_client.fetch_gate = asyncio.Event()
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL, refresh_interval=0.03)
        await controller.start()

        await controller.set_auto_refresh(True)
        await asyncio.sleep(0.15)

        assert fake_client.fetch_calls == 1

        fake_client.fetch_gate.set()
        await controller.stop()

    async def test_auto_refresh_requires_external_mode(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()

        with pytest.raises(ValueError):
            await controller.set_auto_refresh(True)
        assert controller.scheduler.state is SchedulerState.STOPPED

        await controller.stop()

    async def test_manual_refresh_in_simulated_mode_analyzes_only(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()
        before = controller.state.series.snapshot()

        result = await controller.refresh()

        assert result is not None
        assert fake_client.fetch_calls == 0
        assert len(fake_client.analyze_calls) == 1
        assert controller.state.series.snapshot() == before
        assert controller.state.cycle.status is AnalysisStatus.SUCCESS

        await controller.stop()

    async def test_user_prompt_reaches_analysis(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()
        controller.user_prompt = "  Is 2600 a good entry?  "

        await controller.refresh()

        assert fake_client.analyze_calls[0][3] == "Is 2600 a good entry?"
        controller.user_prompt = "   "
        assert controller.user_prompt is None

        await controller.stop()

    async def test_set_api_key_is_forwarded(self, fake_client):
        controller = _make_controller(fake_client)
        controller.set_api_key("new-key")
        assert fake_client.api_key == "new-key"

    async def test_toggle_mode(self, fake_client):
        controller = _make_controller(fake_client)
        await controller.start()

        assert await controller.toggle_mode() is DataSourceMode.EXTERNAL
        await controller.current_cycle
        assert await controller.toggle_mode() is DataSourceMode.SIMULATED

        await controller.stop()

    async def test_set_same_mode_is_noop(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        await controller.current_cycle
        epoch = controller.state.epoch

        await controller.set_mode(DataSourceMode.EXTERNAL)

        assert controller.state.epoch == epoch
        assert fake_client.fetch_calls == 1

        await controller.stop()

    async def test_stop_cancels_everything(self, fake_client):
        fake_client.fetch_gate = asyncio.Event()
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        cycle = controller.current_cycle

        await controller.stop()

        assert cycle.done()
        assert not controller.cycle_in_flight
        assert not controller.simulation_running
        await controller.stop()  # Double stop should not raise

    async def test_snapshot(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        await controller.current_cycle

        snapshot = controller.snapshot()

        assert snapshot["mode"] == "EXTERNAL"
        assert snapshot["scheduler"] == "STOPPED"
        assert len(snapshot["series"]) == 10
        assert snapshot["latest"]["spot_price"] == fake_client.spot
        assert snapshot["analysis"]["sentiment"] == "BULLISH"
        assert snapshot["analysis"]["citations"][0]["title"] == "Kitco"
        assert snapshot["cycle"]["status"] == "SUCCESS"
        assert snapshot["option_series"][0]["code"] == "OGZ24"

        await controller.stop()

    async def test_disabling_auto_refresh_discards_in_flight_cycle(self, fake_client):
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL, refresh_interval=0.05)
        await controller.start()
        await controller.current_cycle
        before = controller.state.series.snapshot()
        analysis = controller.state.analysis

        fake_client.fetch_gate = asyncio.Event()
        await controller.set_auto_refresh(True)
        await asyncio.sleep(0.08)  # first scheduled tick is now blocked in fetch
        assert fake_client.fetch_calls == 2

        await controller.set_auto_refresh(False)
        fake_client.fetch_gate.set()
        await asyncio.sleep(0.02)

        assert controller.state.series.snapshot() == before
        assert controller.state.analysis is analysis
        assert controller.state.cycle.status is AnalysisStatus.IDLE
        assert not controller.cycle_in_flight
        assert len(fake_client.analyze_calls) == 1

        await controller.stop()

    async def test_disabling_inactive_auto_refresh_keeps_manual_cycle(self, fake_client):
        fake_client.fetch_gate = asyncio.Event()
        controller = _make_controller(fake_client, mode=DataSourceMode.EXTERNAL)
        await controller.start()
        cycle = controller.current_cycle

        await controller.set_auto_refresh(False)
        fake_client.fetch_gate.set()

        assert await cycle is not None
        assert controller.state.cycle.status is AnalysisStatus.SUCCESS

        await controller.stop()

    async def test_seeded_simulation_is_reproducible(self, fake_client):
        first = _make_controller(fake_client)
        second = _make_controller(fake_client)

        for _ in range(20):
            first._simulate_once()
            second._simulate_once()

        assert first.state.option_series == second.state.option_series
        assert [p.spot_price for p in first.state.series.snapshot()] == [
            p.spot_price for p in second.state.series.snapshot()
        ]
