"""
Pydantic models for dwellings, devices, weather samples, and simulation output.

Devices form a tagged union over ``device_type``. Each variant carries its own
typed config (immutable operational parameters, owned by device management)
and state (mutable, written by the simulation engine and control commands).
The state defaults of each variant are the initial state of a new device.

The ``device_type`` tags match the values stored in the device table, so
records read from the store can be validated directly with
:data:`DEVICE_ADAPTER`.

States with "today" counters carry ``counters_date``, the dwelling-local date
those counters belong to. Only the state updater writes it.

CHANGELOG:
- 2026-10-16: Track the local date of "today" counters in state
- 2026-10-16: Add EV and EV charger variants
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class DeviceType(StrEnum):
    """Device type tags as persisted in the device store."""

    SOLAR_INVERTER = "solarInverter"
    BATTERY = "battery"
    APPLIANCE = "appliance"
    METER = "meter"
    HOT_WATER_STORAGE = "hotWaterStorage"
    EV = "ev"
    EV_CHARGER = "evCharger"


BatteryControlMode = Literal["auto", "force_charge", "force_discharge", "idle"]


# ---------------------------------------------------------------------------
# Dwellings and weather
# ---------------------------------------------------------------------------


class Location(BaseModel):
    """Geographic coordinates in decimal degrees."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Dwelling(BaseModel):
    """A dwelling as seen by the engine (read-only).

    Attributes:
        id: Dwelling identifier.
        user_id: Owning user identifier.
        time_zone: IANA time zone name, used for local-midnight resets.
        location: Coordinates used for the weather lookup.
    """

    id: str
    user_id: str
    time_zone: str
    location: Location


class WeatherSample(BaseModel):
    """Current weather at a dwelling's location.

    Attributes:
        irradiance_wm2: Global horizontal irradiance in W/m^2.
        temperature_c: Ambient temperature in degrees Celsius.
        cloud_cover: Cloud cover percentage (0-100).
        timestamp: Observation time (UTC).
    """

    irradiance_wm2: float = Field(ge=0)
    temperature_c: float
    cloud_cover: float = Field(ge=0, le=100)
    timestamp: datetime


# ---------------------------------------------------------------------------
# Device configs and states
# ---------------------------------------------------------------------------


class SolarInverterConfig(BaseModel):
    kw_peak: float = Field(gt=0)
    efficiency: float = Field(default=0.85, ge=0, le=1)
    azimuth: float = Field(default=180, ge=0, le=360)
    tilt: float = Field(default=30, ge=0, le=90)


class SolarInverterState(BaseModel):
    power_w: float = Field(default=0, ge=0)
    energy_today_kwh: float = Field(default=0, ge=0)
    total_energy_kwh: float = Field(default=0, ge=0)
    is_online: bool = True
    counters_date: date | None = None


class BatteryConfig(BaseModel):
    capacity_kwh: float = Field(gt=0)
    max_charge_power_w: float = Field(gt=0)
    max_discharge_power_w: float = Field(gt=0)
    efficiency: float = Field(default=0.95, ge=0, le=1)
    min_soc: float = Field(default=0.1, ge=0, le=1)
    max_soc: float = Field(default=1.0, ge=0, le=1)

    @model_validator(mode="after")
    def _check_soc_bounds(self) -> BatteryConfig:
        if self.min_soc > self.max_soc:
            raise ValueError(
                f"min_soc ({self.min_soc}) must not exceed max_soc ({self.max_soc})"
            )
        return self


class BatteryState(BaseModel):
    """Battery state.

    ``power_w`` is positive while charging and negative while discharging.
    ``force_power_w`` is the pinned power used by the force modes.
    """

    soc: float = Field(default=0.5, ge=0, le=1)
    power_w: float = 0
    is_charging: bool = False
    is_online: bool = True
    temperature_c: float | None = None
    control_mode: BatteryControlMode = "auto"
    force_power_w: float | None = None


class ApplianceConfig(BaseModel):
    power_w: float = Field(gt=0)
    is_controllable: bool = False


class ApplianceState(BaseModel):
    is_on: bool = False
    power_w: float = Field(default=0, ge=0)
    energy_today_kwh: float = Field(default=0, ge=0)
    is_online: bool = True
    counters_date: date | None = None


class MeterConfig(BaseModel):
    meter_type: Literal["import", "export", "bidirectional"] = "bidirectional"


class MeterState(BaseModel):
    """Grid meter state. ``power_w`` is positive on import, negative on export."""

    power_w: float = 0
    energy_import_today_kwh: float = Field(default=0, ge=0)
    energy_export_today_kwh: float = Field(default=0, ge=0)
    total_energy_import_kwh: float = Field(default=0, ge=0)
    total_energy_export_kwh: float = Field(default=0, ge=0)
    is_online: bool = True
    counters_date: date | None = None


class HotWaterStorageConfig(BaseModel):
    tank_capacity_l: float = Field(gt=0)
    heating_power_w: float = Field(gt=0)
    min_temperature_c: float
    max_temperature_c: float
    standby_loss_per_hour_c: float = Field(ge=0)


class HotWaterStorageState(BaseModel):
    power_w: float = 0
    water_temperature_c: float = 45.0
    target_temperature_c: float = 55.0
    is_boost_on: bool = False
    is_online: bool = True


class EVConfig(BaseModel):
    battery_capacity_kwh: float = Field(gt=0)
    max_charge_power_w: float = Field(gt=0)
    efficiency: float = Field(default=0.92, ge=0, le=1)


class EVState(BaseModel):
    soc: float = Field(default=0.5, ge=0, le=1)
    is_plugged_in: bool = False
    is_charging: bool = False
    power_w: float = 0
    energy_today_kwh: float = Field(default=0, ge=0)
    is_online: bool = True
    counters_date: date | None = None


class EVChargerConfig(BaseModel):
    max_power_w: float = Field(gt=0)
    min_power_w: float = Field(default=0, ge=0)
    efficiency: float = Field(default=0.98, ge=0, le=1)


class EVChargerState(BaseModel):
    is_charging: bool = False
    power_w: float = 0
    target_power_w: float | None = None
    energy_today_kwh: float = Field(default=0, ge=0)
    is_online: bool = True
    counters_date: date | None = None


# ---------------------------------------------------------------------------
# Device variants
# ---------------------------------------------------------------------------


class _DeviceBase(BaseModel):
    id: str
    dwelling_id: str
    name: str | None = None
    created_at: datetime
    updated_at: datetime


class SolarInverterDevice(_DeviceBase):
    device_type: Literal["solarInverter"] = "solarInverter"
    config: SolarInverterConfig
    state: SolarInverterState = Field(default_factory=SolarInverterState)


class BatteryDevice(_DeviceBase):
    device_type: Literal["battery"] = "battery"
    config: BatteryConfig
    state: BatteryState = Field(default_factory=BatteryState)


class ApplianceDevice(_DeviceBase):
    device_type: Literal["appliance"] = "appliance"
    config: ApplianceConfig
    state: ApplianceState = Field(default_factory=ApplianceState)


class MeterDevice(_DeviceBase):
    device_type: Literal["meter"] = "meter"
    config: MeterConfig = Field(default_factory=MeterConfig)
    state: MeterState = Field(default_factory=MeterState)


class HotWaterStorageDevice(_DeviceBase):
    device_type: Literal["hotWaterStorage"] = "hotWaterStorage"
    config: HotWaterStorageConfig
    state: HotWaterStorageState = Field(default_factory=HotWaterStorageState)


class EVDevice(_DeviceBase):
    device_type: Literal["ev"] = "ev"
    config: EVConfig
    state: EVState = Field(default_factory=EVState)


class EVChargerDevice(_DeviceBase):
    device_type: Literal["evCharger"] = "evCharger"
    config: EVChargerConfig
    state: EVChargerState = Field(default_factory=EVChargerState)


Device = Annotated[
    Union[
        SolarInverterDevice,
        BatteryDevice,
        ApplianceDevice,
        MeterDevice,
        HotWaterStorageDevice,
        EVDevice,
        EVChargerDevice,
    ],
    Field(discriminator="device_type"),
]
"""Any device, discriminated by its ``device_type`` tag."""

DeviceState = Union[
    SolarInverterState,
    BatteryState,
    ApplianceState,
    MeterState,
    HotWaterStorageState,
    EVState,
    EVChargerState,
]

DEVICE_ADAPTER: TypeAdapter[Device] = TypeAdapter(Device)


# ---------------------------------------------------------------------------
# Simulation output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EnergyFlows:
    """Per-cycle power flows for one dwelling, all in watts.

    Attributes:
        solar_to_load: Solar power consumed directly by the household.
        solar_to_battery: Solar power charged into the battery.
        solar_to_grid: Solar power exported.
        battery_to_load: Battery power discharged into the household.
        grid_to_load: Grid power consumed by the household.
        grid_to_battery: Grid power charged into the battery.
        net_grid_power: Signed grid flow; positive = import, negative = export.
        battery_power: Signed battery flow; positive = charging.
    """

    solar_to_load: float = 0.0
    solar_to_battery: float = 0.0
    solar_to_grid: float = 0.0
    battery_to_load: float = 0.0
    grid_to_load: float = 0.0
    grid_to_battery: float = 0.0
    net_grid_power: float = 0.0
    battery_power: float = 0.0


@dataclass(frozen=True, slots=True)
class StateUpdate:
    """A replacement state for one device, applied in a batch."""

    device_id: str
    state: DeviceState


class SimulationUpdate(BaseModel):
    """Detailed per-dwelling result broadcast to dwelling subscribers."""

    dwelling_id: str
    devices: list[Device]
    timestamp: datetime
    weather: WeatherSample


class DwellingSummary(BaseModel):
    """Lightweight per-dwelling result broadcast to dashboard subscribers."""

    dwelling_id: str
    device_count: int
    timestamp: datetime
    weather: WeatherSample
