"""
Device grouping and household aggregates for one dwelling.

Groups a dwelling's devices by variant and computes the two aggregate inputs
of the allocator: total solar generation and total household load.

Only the first battery and the first meter found are treated as "the"
dwelling battery and meter; multi-battery and multi-meter dwellings are not
modelled.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from hems.src.models import (
    ApplianceDevice,
    BatteryDevice,
    Device,
    EVChargerDevice,
    EVDevice,
    HotWaterStorageDevice,
    MeterDevice,
    SolarInverterDevice,
    WeatherSample,
)
from hems.src.solar import calculate_solar_power

DEFAULT_PHANTOM_LOAD_W: float = 200.0
"""Baseline consumption of unmodelled household electronics."""


@dataclass
class DevicesByType:
    """A dwelling's devices split by variant, in repository order."""

    solar_inverters: list[SolarInverterDevice] = field(default_factory=list)
    batteries: list[BatteryDevice] = field(default_factory=list)
    appliances: list[ApplianceDevice] = field(default_factory=list)
    meters: list[MeterDevice] = field(default_factory=list)
    hot_water_storages: list[HotWaterStorageDevice] = field(default_factory=list)
    evs: list[EVDevice] = field(default_factory=list)
    ev_chargers: list[EVChargerDevice] = field(default_factory=list)

    @property
    def battery(self) -> BatteryDevice | None:
        """The dwelling battery (first found), if any."""
        return self.batteries[0] if self.batteries else None

    @property
    def meter(self) -> MeterDevice | None:
        """The dwelling meter (first found), if any."""
        return self.meters[0] if self.meters else None


def group_devices_by_type(devices: Iterable[Device]) -> DevicesByType:
    """Split devices into per-variant lists, preserving order.

    Raises:
        TypeError: If a device is not one of the known variants.
    """
    grouped = DevicesByType()
    for device in devices:
        match device:
            case SolarInverterDevice():
                grouped.solar_inverters.append(device)
            case BatteryDevice():
                grouped.batteries.append(device)
            case ApplianceDevice():
                grouped.appliances.append(device)
            case MeterDevice():
                grouped.meters.append(device)
            case HotWaterStorageDevice():
                grouped.hot_water_storages.append(device)
            case EVDevice():
                grouped.evs.append(device)
            case EVChargerDevice():
                grouped.ev_chargers.append(device)
            case _:
                raise TypeError(f"Unknown device variant: {type(device).__name__}")
    return grouped


def inverter_power_w(inverter: SolarInverterDevice, weather: WeatherSample) -> float:
    """Instantaneous output of one inverter under the given weather."""
    return calculate_solar_power(
        weather.irradiance_wm2,
        inverter.config.kw_peak,
        inverter.config.efficiency,
        weather.temperature_c,
        weather.cloud_cover,
    )


def total_solar_power_w(
    inverters: Iterable[SolarInverterDevice],
    weather: WeatherSample,
) -> float:
    """Sum the output of all online inverters."""
    return sum(
        inverter_power_w(inverter, weather)
        for inverter in inverters
        if inverter.state.is_online
    )


def household_load_w(
    appliances: Iterable[ApplianceDevice],
    hot_water_storages: Iterable[HotWaterStorageDevice] = (),
    phantom_load_w: float = DEFAULT_PHANTOM_LOAD_W,
) -> float:
    """Return the total household load in watts.

    Sums the power of online appliances that are on, the heating power of
    online hot-water tanks with boost on, and the phantom baseline load.
    """
    load_w = sum(
        appliance.state.power_w
        for appliance in appliances
        if appliance.state.is_on and appliance.state.is_online
    )
    load_w += sum(
        storage.config.heating_power_w
        for storage in hot_water_storages
        if storage.state.is_online and storage.state.is_boost_on
    )
    return load_w + phantom_load_w
