"""
Priority-ordered energy flow allocation for a single dwelling.

Given total solar power, total household load and at most one battery, splits
power between load, battery and grid in a fixed order:

1. Solar covers load directly.
2. The battery acts according to its control mode (``force_charge``,
   ``force_discharge``, ``idle`` or ``auto``).
3. Any solar left over is exported.
4. Load left over is covered by the battery (``auto`` only), then by the grid.

Energy headroom is converted to a power ceiling with ``kWh * 1000 * 4``, i.e.
the headroom is assumed to be exhaustible within a quarter hour.  The factor
is a modelling simplification and is applied uniformly to charge and
discharge limits.

This is a pure function: the same inputs always yield the same flows.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

from hems.src.models import BatteryConfig, BatteryDevice, BatteryState, EnergyFlows

HEADROOM_POWER_FACTOR: float = 1000.0 * 4
"""Converts kWh of headroom into a W ceiling (quarter-hour exhaustion)."""


def _charge_ceiling_w(config: BatteryConfig, state: BatteryState) -> float:
    """Max charge power allowed by the remaining capacity below max_soc."""
    headroom_kwh = config.capacity_kwh * (config.max_soc - state.soc)
    return headroom_kwh * HEADROOM_POWER_FACTOR


def _discharge_ceiling_w(config: BatteryConfig, state: BatteryState) -> float:
    """Max discharge power allowed by the energy stored above min_soc."""
    available_kwh = config.capacity_kwh * (state.soc - config.min_soc)
    return available_kwh * HEADROOM_POWER_FACTOR


def calculate_energy_flows(
    solar_power_w: float,
    household_load_w: float,
    battery: BatteryDevice | None = None,
) -> EnergyFlows:
    """Allocate solar, battery and grid power to the household load.

    Args:
        solar_power_w: Aggregate solar generation in watts.
        household_load_w: Aggregate household load in watts.
        battery: The dwelling battery. ``None`` or an offline battery skips
            every battery branch.

    Returns:
        The resulting :class:`~hems.src.models.EnergyFlows`.
    """
    solar_to_battery = 0.0
    solar_to_grid = 0.0
    battery_to_load = 0.0
    grid_to_load = 0.0
    grid_to_battery = 0.0
    net_grid_power = 0.0
    battery_power = 0.0

    if battery is not None and not battery.state.is_online:
        battery = None

    # -- 1. Solar to load --
    solar_to_load = min(solar_power_w, household_load_w)
    remaining_solar = solar_power_w - solar_to_load
    remaining_load = household_load_w - solar_to_load

    # -- 2. Battery control mode --
    mode = battery.state.control_mode if battery is not None else None
    if battery is not None:
        config = battery.config
        state = battery.state
        force_power_w = state.force_power_w

        if mode == "force_charge":
            if force_power_w and state.soc < config.max_soc:
                charge_w = min(
                    force_power_w,
                    config.max_charge_power_w,
                    _charge_ceiling_w(config, state),
                )
                if charge_w <= remaining_solar:
                    solar_to_battery = charge_w
                    remaining_solar -= charge_w
                else:
                    # Shortfall beyond the remaining solar is imported.
                    solar_to_battery = remaining_solar
                    grid_to_battery = charge_w - remaining_solar
                    net_grid_power += grid_to_battery
                    remaining_solar = 0.0
                battery_power = charge_w

        elif mode == "force_discharge":
            if force_power_w and state.soc > config.min_soc:
                discharge_w = min(
                    abs(force_power_w),
                    config.max_discharge_power_w,
                    _discharge_ceiling_w(config, state),
                )
                # Sold to the grid, not fed to the household.
                battery_power = -discharge_w
                net_grid_power -= discharge_w

        elif mode == "auto":
            if remaining_solar > 0 and state.soc < config.max_soc:
                charge_w = min(
                    remaining_solar,
                    config.max_charge_power_w,
                    _charge_ceiling_w(config, state),
                )
                solar_to_battery = charge_w
                battery_power = charge_w
                remaining_solar -= charge_w

    # -- 3. Export leftover solar --
    if remaining_solar > 0:
        solar_to_grid = remaining_solar
        net_grid_power -= remaining_solar

    # -- 4. Leftover load: battery (auto only), then grid --
    if remaining_load > 0:
        if (
            battery is not None
            and mode == "auto"
            and battery.state.soc > battery.config.min_soc
        ):
            discharge_w = min(
                remaining_load,
                battery.config.max_discharge_power_w,
                _discharge_ceiling_w(battery.config, battery.state),
            )
            battery_to_load = discharge_w
            battery_power = -discharge_w
            remaining_load -= discharge_w

        if remaining_load > 0:
            grid_to_load = remaining_load
            net_grid_power += remaining_load

    return EnergyFlows(
        solar_to_load=solar_to_load,
        solar_to_battery=solar_to_battery,
        solar_to_grid=solar_to_grid,
        battery_to_load=battery_to_load,
        grid_to_load=grid_to_load,
        grid_to_battery=grid_to_battery,
        net_grid_power=net_grid_power,
        battery_power=battery_power,
    )
