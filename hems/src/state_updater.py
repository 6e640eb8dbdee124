"""
Per-device state dynamics for one simulation cycle.

Applies the allocator's :class:`~hems.src.models.EnergyFlows` and the current
weather sample to every device of a dwelling and returns the replacement
states as :class:`~hems.src.models.StateUpdate` records, ready to be written
as a single batch.

Dynamics per device type:

- Solar inverter: power from the PV model; today/lifetime energy accumulate.
- Battery (dwelling battery only): SoC follows the allocator's battery power,
  scaled by efficiency and clamped to ``[min_soc, max_soc]``; temperature is
  ambient with +/-2 degC jitter.
- Meter (dwelling meter only): power is the net grid power; import/export
  counters accumulate from its positive/negative part.
- Appliance: non-controllable appliances toggle at random; controllable ones
  follow control commands only.
- Hot-water storage: lumped thermal model with boost heating and standby loss.
- EV: charges at its max rate while plugged in and charging.
- EV charger: delivers its clamped target power while charging.

"Today" counters restart when the dwelling-local date moves past the
``counters_date`` held in the device state. The rollover also applies to
offline devices, which are otherwise written back unchanged, as is any battery
or meter beyond the first. Randomness comes from an injected ``random.Random``
so runs can be made reproducible.

CHANGELOG:
- 2026-10-16: Keep the daily reset marker in state; store SoC unrounded
- 2026-10-16: Reset "today" counters at dwelling-local midnight
- 2026-10-16: Add EV and EV charger dynamics
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import functools
import logging
import random
from datetime import UTC, date, datetime, tzinfo
from typing import TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from hems.src.household import DevicesByType, inverter_power_w
from hems.src.models import (
    ApplianceDevice,
    ApplianceState,
    BatteryDevice,
    BatteryState,
    EnergyFlows,
    EVChargerDevice,
    EVChargerState,
    EVDevice,
    EVState,
    HotWaterStorageDevice,
    HotWaterStorageState,
    MeterDevice,
    MeterState,
    SolarInverterDevice,
    SolarInverterState,
    StateUpdate,
    WeatherSample,
)

logger = logging.getLogger(__name__)

SPECIFIC_HEAT_WATER_J_PER_KG_C: float = 4186.0
"""Specific heat capacity of water; 1 L of water is taken as 1 kg."""

BATTERY_TEMPERATURE_JITTER_C: float = 2.0

DEFAULT_TOGGLE_PROBABILITY: float = 0.05

_S = TypeVar("_S", SolarInverterState, MeterState, ApplianceState, EVState, EVChargerState)
_CountingDevice = TypeVar(
    "_CountingDevice",
    SolarInverterDevice,
    MeterDevice,
    ApplianceDevice,
    EVDevice,
    EVChargerDevice,
)


@functools.lru_cache(maxsize=256)
def resolve_time_zone(name: str) -> tzinfo:
    """Return the zone for an IANA name, falling back to UTC if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone '%s', falling back to UTC", name)
        return UTC


def _local_date(ts: datetime, zone: tzinfo) -> date:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(zone).date()


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


class StateUpdater:
    """Computes new device states for one dwelling per cycle.

    Args:
        interval_s: Cycle duration in seconds; every energy increment and
            thermal/SoC change is integrated over this duration.
        rng: Random source for appliance toggling and battery temperature
            jitter. Defaults to an unseeded ``random.Random``.
        toggle_probability: Per-cycle chance that a non-controllable
            appliance flips state.
        daily_reset: Restart "today" counters when their ``counters_date``
            is earlier than the cycle's local date.
    """

    def __init__(
        self,
        *,
        interval_s: float,
        rng: random.Random | None = None,
        toggle_probability: float = DEFAULT_TOGGLE_PROBABILITY,
        daily_reset: bool = True,
    ) -> None:
        self._interval_s = interval_s
        self._rng = rng if rng is not None else random.Random()
        self._toggle_probability = toggle_probability
        self._daily_reset = daily_reset

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def energy_increment_kwh(self, power_w: float) -> float:
        """Energy delivered by *power_w* over one cycle, in kWh."""
        return (power_w / 1000) * (self._interval_s / 3600)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update(
        self,
        devices: DevicesByType,
        flows: EnergyFlows,
        weather: WeatherSample,
        *,
        now: datetime,
        time_zone: str = "UTC",
    ) -> list[StateUpdate]:
        """Return the replacement state of every device in the dwelling.

        Args:
            devices: The dwelling's devices grouped by variant.
            flows: Allocator output for this cycle.
            weather: Weather sample used for this cycle.
            now: Cycle time (timezone-aware).
            time_zone: Dwelling time zone, used for the daily reset.

        Returns:
            One :class:`StateUpdate` per device.
        """
        zone = resolve_time_zone(time_zone)
        today = _local_date(now, zone)

        def rolled(device: _CountingDevice, *fields: str) -> _CountingDevice:
            state = self._roll_over(device.state, today, fields)
            if state is device.state:
                return device
            return device.model_copy(update={"state": state})

        updates: list[StateUpdate] = []

        for inverter in devices.solar_inverters:
            inverter = rolled(inverter, "energy_today_kwh")
            updates.append(StateUpdate(inverter.id, self._solar_inverter(inverter, weather)))

        if devices.battery is not None:
            battery = devices.battery
            updates.append(StateUpdate(battery.id, self._battery(battery, flows, weather)))

        if devices.meter is not None:
            meter = rolled(
                devices.meter, "energy_import_today_kwh", "energy_export_today_kwh"
            )
            updates.append(StateUpdate(meter.id, self._meter(meter, flows)))

        for appliance in devices.appliances:
            appliance = rolled(appliance, "energy_today_kwh")
            updates.append(StateUpdate(appliance.id, self._appliance(appliance)))

        for storage in devices.hot_water_storages:
            updates.append(StateUpdate(storage.id, self._hot_water_storage(storage)))

        for ev in devices.evs:
            ev = rolled(ev, "energy_today_kwh")
            updates.append(StateUpdate(ev.id, self._ev(ev)))

        for charger in devices.ev_chargers:
            charger = rolled(charger, "energy_today_kwh")
            updates.append(StateUpdate(charger.id, self._ev_charger(charger)))

        # Only the first battery and meter are simulated.
        for extra in (*devices.batteries[1:], *devices.meters[1:]):
            updates.append(StateUpdate(extra.id, extra.state))

        return updates

    def _roll_over(self, state: _S, today: date, fields: tuple[str, ...]) -> _S:
        """Zero *fields* when the counters belong to an earlier local date.

        A state without ``counters_date`` is stamped with *today* and keeps its
        counters. Applies to offline devices too.
        """
        if not self._daily_reset:
            return state
        if state.counters_date is not None and state.counters_date >= today:
            return state
        update: dict[str, object] = {"counters_date": today}
        if state.counters_date is not None:
            update.update(dict.fromkeys(fields, 0.0))
        return state.model_copy(update=update)

    # ------------------------------------------------------------------
    # Per-type dynamics
    # ------------------------------------------------------------------

    def _solar_inverter(
        self,
        inverter: SolarInverterDevice,
        weather: WeatherSample,
    ) -> SolarInverterState:
        state = inverter.state
        if not state.is_online:
            return state

        power_w = inverter_power_w(inverter, weather)
        increment = self.energy_increment_kwh(power_w)
        return state.model_copy(
            update={
                "power_w": round(power_w),
                "energy_today_kwh": state.energy_today_kwh + increment,
                "total_energy_kwh": state.total_energy_kwh + increment,
            }
        )

    def _battery(
        self,
        battery: BatteryDevice,
        flows: EnergyFlows,
        weather: WeatherSample,
    ) -> BatteryState:
        state = battery.state
        config = battery.config
        if not state.is_online:
            return state

        energy_change_kwh = self.energy_increment_kwh(flows.battery_power)
        soc = state.soc + (energy_change_kwh / config.capacity_kwh) * config.efficiency
        soc = _clamp(soc, config.min_soc, config.max_soc)

        jitter = self._rng.uniform(
            -BATTERY_TEMPERATURE_JITTER_C, BATTERY_TEMPERATURE_JITTER_C
        )
        return state.model_copy(
            update={
                "soc": soc,
                "power_w": round(flows.battery_power),
                "is_charging": flows.battery_power > 0,
                "temperature_c": weather.temperature_c + jitter,
            }
        )

    def _meter(self, meter: MeterDevice, flows: EnergyFlows) -> MeterState:
        state = meter.state
        if not state.is_online:
            return state

        import_kwh = self.energy_increment_kwh(max(flows.net_grid_power, 0.0))
        export_kwh = self.energy_increment_kwh(max(-flows.net_grid_power, 0.0))
        return state.model_copy(
            update={
                "power_w": round(flows.net_grid_power),
                "energy_import_today_kwh": state.energy_import_today_kwh + import_kwh,
                "energy_export_today_kwh": state.energy_export_today_kwh + export_kwh,
                "total_energy_import_kwh": state.total_energy_import_kwh + import_kwh,
                "total_energy_export_kwh": state.total_energy_export_kwh + export_kwh,
            }
        )

    def _appliance(self, appliance: ApplianceDevice) -> ApplianceState:
        state = appliance.state
        if not state.is_online:
            return state

        is_on = state.is_on
        if not appliance.config.is_controllable:
            if self._rng.random() < self._toggle_probability:
                is_on = not is_on

        power_w = appliance.config.power_w if is_on else 0.0
        energy_today = state.energy_today_kwh
        if is_on:
            energy_today += self.energy_increment_kwh(power_w)
        return state.model_copy(
            update={"is_on": is_on, "power_w": power_w, "energy_today_kwh": energy_today}
        )

    def _hot_water_storage(self, storage: HotWaterStorageDevice) -> HotWaterStorageState:
        """Lumped thermal model: dT = P * t / (m * c) while heating."""
        state = storage.state
        config = storage.config
        if not state.is_online:
            return state

        temperature_c = state.water_temperature_c
        power_w = 0.0
        if state.is_boost_on:
            if state.target_temperature_c - temperature_c > 0:
                power_w = config.heating_power_w
                water_mass_kg = config.tank_capacity_l
                temperature_c += (power_w * self._interval_s) / (
                    water_mass_kg * SPECIFIC_HEAT_WATER_J_PER_KG_C
                )
        else:
            temperature_c -= (config.standby_loss_per_hour_c / 3600) * self._interval_s

        target_c = _clamp(
            state.target_temperature_c, config.min_temperature_c, config.max_temperature_c
        )
        temperature_c = min(target_c, temperature_c)
        temperature_c = _clamp(
            temperature_c, config.min_temperature_c, config.max_temperature_c
        )
        return state.model_copy(
            update={
                "power_w": power_w,
                "water_temperature_c": temperature_c,
                "target_temperature_c": target_c,
            }
        )

    def _ev(self, ev: EVDevice) -> EVState:
        state = ev.state
        config = ev.config
        if not state.is_online:
            return state

        if not (state.is_plugged_in and state.is_charging and state.soc < 1.0):
            return state.model_copy(update={"is_charging": False, "power_w": 0.0})

        power_w = config.max_charge_power_w
        increment = self.energy_increment_kwh(power_w)
        soc = state.soc + (increment / config.battery_capacity_kwh) * config.efficiency
        soc = min(1.0, soc)
        return state.model_copy(
            update={
                "soc": soc,
                "is_charging": soc < 1.0,
                "power_w": power_w,
                "energy_today_kwh": state.energy_today_kwh + increment,
            }
        )

    def _ev_charger(self, charger: EVChargerDevice) -> EVChargerState:
        state = charger.state
        config = charger.config
        if not state.is_online:
            return state

        if not state.is_charging:
            return state.model_copy(update={"power_w": 0.0})

        requested_w = (
            state.target_power_w if state.target_power_w is not None else config.max_power_w
        )
        target_w = _clamp(requested_w, config.min_power_w, config.max_power_w)
        return state.model_copy(
            update={
                "power_w": target_w,
                "target_power_w": target_w,
                "energy_today_kwh": state.energy_today_kwh
                + self.energy_increment_kwh(target_w),
            }
        )
