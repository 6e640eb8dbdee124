"""
Fixed-interval simulation scheduler.

Owns the recurring simulation loop.  Each cycle:

1. Lists all dwellings from the device repository.
2. Fetches weather for every dwelling location (bounded concurrency).
3. For each dwelling, sequentially: loads its devices, computes solar
   generation and household load, runs the energy flow allocator, computes
   new device states, and writes them as one atomic batch.
4. Publishes every successfully persisted dwelling result.

A dwelling without weather is skipped for the cycle; a dwelling that raises
is logged and skipped while the others continue; a dwelling whose batch write
fails is not published.  Nothing in a cycle stops the loop.

Ticks are fixed-rate (tick *n* is due at ``start + n * interval``).  A cycle
that overruns the interval causes the missed ticks to be skipped rather than
queued, so cycles never overlap.  Stopping wakes the idle loop; a cycle in
flight always runs to completion.

CHANGELOG:
- 2026-10-16: Publish dwelling update and summary independently
- 2026-10-16: Skip overdue ticks instead of running overlapping cycles
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from hems.src.allocator import calculate_energy_flows
from hems.src.health import HealthWriter
from hems.src.household import (
    DEFAULT_PHANTOM_LOAD_W,
    group_devices_by_type,
    household_load_w,
    total_solar_power_w,
)
from hems.src.models import (
    Device,
    Dwelling,
    DwellingSummary,
    SimulationUpdate,
    WeatherSample,
)
from hems.src.publisher import UpdatePublisher
from hems.src.repository import DeviceRepository, RepositoryError
from hems.src.state_updater import StateUpdater
from hems.src.weather import WeatherProvider, WeatherRequest

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class CycleReport:
    """Outcome counts of one simulation cycle.

    Attributes:
        dwellings_total: Dwellings listed at the start of the cycle.
        dwellings_published: Dwellings simulated, persisted and published.
        dwellings_failed: Dwellings that raised (including failed writes).
        dwellings_skipped: Dwellings without weather or without devices.
        skipped: True if the whole cycle was skipped because another cycle
            was still in flight.
    """

    dwellings_total: int = 0
    dwellings_published: int = 0
    dwellings_failed: int = 0
    dwellings_skipped: int = 0
    skipped: bool = False


class SimulationScheduler:
    """Runs the simulation cycle on a fixed interval.

    Args:
        repository: Device repository (reads and batch state writes).
        weather: Weather provider.
        publisher: Real-time update publisher.
        interval_s: Seconds between cycle starts.
        phantom_load_w: Baseline load added to every dwelling.
        updater: State updater; built from *interval_s* when omitted.
        health: Optional health file writer, updated after every cycle.
        clock: Returns the current UTC time.

    Usage::

        scheduler = SimulationScheduler(
            repository=repo, weather=provider, publisher=publisher, interval_s=60
        )
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        *,
        repository: DeviceRepository,
        weather: WeatherProvider,
        publisher: UpdatePublisher,
        interval_s: float,
        phantom_load_w: float = DEFAULT_PHANTOM_LOAD_W,
        updater: StateUpdater | None = None,
        health: HealthWriter | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if updater is None:
            updater = StateUpdater(interval_s=interval_s)
        elif updater.interval_s != interval_s:
            raise ValueError(
                f"StateUpdater interval ({updater.interval_s}s) does not match "
                f"scheduler interval ({interval_s}s)"
            )
        self._repository = repository
        self._weather = weather
        self._publisher = publisher
        self._interval_s = interval_s
        self._phantom_load_w = phantom_load_w
        self._updater = updater
        self._health = health
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop; the first cycle runs immediately.

        Must be called with a running event loop. Starting an already
        running scheduler is a no-op.
        """
        if self.is_running:
            logger.warning("Simulation scheduler is already running")
            return

        logger.info("Starting simulation scheduler (interval=%ss)", self._interval_s)
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop the loop and wait for any in-flight cycle to finish.

        Stopping a stopped scheduler is a no-op.
        """
        task = self._task
        if task is None:
            return

        logger.info("Stopping simulation scheduler")
        self._stop_event.set()
        self._task = None
        await task
        logger.info("Simulation scheduler stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        tick = 0
        while not self._stop_event.is_set():
            await self._tick()

            tick += 1
            now = loop.time()
            next_due = started + tick * self._interval_s
            if now > next_due:
                missed = int((now - next_due) // self._interval_s) + 1
                logger.warning(
                    "Simulation cycle overran the %ss interval, skipping %d tick(s)",
                    self._interval_s,
                    missed,
                )
                tick += missed
                next_due = started + tick * self._interval_s

            # Use wait with timeout so stop() interrupts the sleep
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=max(0.0, next_due - loop.time()),
                )

    async def _tick(self) -> None:
        try:
            await self.run_cycle()
        except Exception:
            logger.error("Simulation cycle error", exc_info=True)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Run one simulation cycle across all dwellings.

        Returns immediately with ``skipped=True`` if another cycle is still
        in flight.

        Returns:
            CycleReport: Outcome counts for the cycle.
        """
        if self._cycle_lock.locked():
            logger.warning("Previous simulation cycle still running, skipping")
            return CycleReport(skipped=True)

        async with self._cycle_lock:
            report = await self._run_cycle()

        if self._health is not None:
            try:
                self._health.record_cycle(
                    simulated=report.dwellings_published,
                    failed=report.dwellings_failed,
                )
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)
        return report

    async def _run_cycle(self) -> CycleReport:
        logger.debug("Running simulation cycle")
        dwellings = await self._repository.list_dwellings()
        report = CycleReport(dwellings_total=len(dwellings))
        if not dwellings:
            logger.debug("No dwellings found, skipping simulation cycle")
            return report

        try:
            weather_by_dwelling = await self._weather.get_many_current(
                [WeatherRequest(d.id, d.location) for d in dwellings]
            )
        except Exception:
            logger.error("Weather batch fetch failed, skipping all dwellings", exc_info=True)
            weather_by_dwelling = {}

        results: list[SimulationUpdate] = []
        for dwelling in dwellings:
            weather = weather_by_dwelling.get(dwelling.id)
            if weather is None:
                logger.warning("No weather data for dwelling %s, skipping", dwelling.id)
                report.dwellings_skipped += 1
                continue

            try:
                result = await self.simulate_dwelling(dwelling, weather)
            except RepositoryError:
                logger.error(
                    "State write failed for dwelling %s, update not published",
                    dwelling.id,
                    exc_info=True,
                )
                report.dwellings_failed += 1
                continue
            except Exception:
                logger.error("Error simulating dwelling %s", dwelling.id, exc_info=True)
                report.dwellings_failed += 1
                continue

            if result is None:
                report.dwellings_skipped += 1
            else:
                results.append(result)

        await self._publish(results)
        report.dwellings_published = len(results)
        logger.info(
            "Simulation cycle complete: %d published, %d failed, %d skipped of %d dwellings",
            report.dwellings_published,
            report.dwellings_failed,
            report.dwellings_skipped,
            report.dwellings_total,
        )
        return report

    async def simulate_dwelling(
        self,
        dwelling: Dwelling,
        weather: WeatherSample,
    ) -> SimulationUpdate | None:
        """Simulate, persist and return one dwelling's update.

        Returns:
            The persisted update, or ``None`` if the dwelling has no devices.

        Raises:
            RepositoryError: If the batch state write fails.
        """
        devices = await self._repository.get_devices_for_dwelling(dwelling.id)
        if not devices:
            return None

        grouped = group_devices_by_type(devices)
        solar_w = total_solar_power_w(grouped.solar_inverters, weather)
        load_w = household_load_w(
            grouped.appliances, grouped.hot_water_storages, self._phantom_load_w
        )
        flows = calculate_energy_flows(solar_w, load_w, grouped.battery)
        logger.debug(
            "Dwelling %s: solar=%.0fW load=%.0fW grid=%.0fW battery=%.0fW",
            dwelling.id,
            solar_w,
            load_w,
            flows.net_grid_power,
            flows.battery_power,
        )

        now = self._clock()
        updates = self._updater.update(
            grouped, flows, weather, now=now, time_zone=dwelling.time_zone
        )
        await self._repository.batch_update_state(updates)

        refreshed: list[Device] = []
        for update in updates:
            device = await self._repository.get_device(update.device_id)
            if device is not None:
                refreshed.append(device)

        return SimulationUpdate(
            dwelling_id=dwelling.id,
            devices=refreshed,
            timestamp=now,
            weather=weather,
        )

    async def _publish(self, results: list[SimulationUpdate]) -> None:
        for result in results:
            summary = DwellingSummary(
                dwelling_id=result.dwelling_id,
                device_count=len(result.devices),
                timestamp=result.timestamp,
                weather=result.weather,
            )
            try:
                await self._publisher.publish_dwelling_update(result)
            except Exception:
                logger.error(
                    "Update publish failed for dwelling %s",
                    result.dwelling_id,
                    exc_info=True,
                )
            try:
                await self._publisher.publish_summary(summary)
            except Exception:
                logger.error(
                    "Summary publish failed for dwelling %s",
                    result.dwelling_id,
                    exc_info=True,
                )
        logger.debug("Published updates for %d dwellings", len(results))
