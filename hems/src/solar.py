"""
Pure photovoltaic output model.

Maps irradiance, panel rating, efficiency, ambient temperature and cloud
cover to instantaneous AC power.  No side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

STANDARD_IRRADIANCE_WM2: float = 1000.0
"""Standard Test Conditions irradiance."""

TEMPERATURE_COEFFICIENT: float = -0.004
"""Relative power change per degree Celsius for silicon panels."""

REFERENCE_TEMPERATURE_C: float = 25.0

MAX_CLOUD_DERATE: float = 0.8
"""Fraction of irradiance removed at 100 % cloud cover."""


def calculate_solar_power(
    irradiance_wm2: float,
    kw_peak: float,
    efficiency: float = 0.85,
    temperature_c: float = REFERENCE_TEMPERATURE_C,
    cloud_cover: float = 0.0,
) -> float:
    """Return the instantaneous output of a PV array in watts.

    Cloud cover linearly derates irradiance by up to 80 % at full overcast,
    and the output is derated by -0.4 %/degC away from 25 degC.

    Args:
        irradiance_wm2: Irradiance in W/m^2. Non-positive values yield 0.
        kw_peak: Array peak capacity in kW.
        efficiency: System efficiency (0-1).
        temperature_c: Ambient temperature in degrees Celsius.
        cloud_cover: Cloud cover percentage (0-100).

    Returns:
        Output power in watts, never negative.
    """
    if irradiance_wm2 <= 0:
        return 0.0

    temperature_factor = 1 + TEMPERATURE_COEFFICIENT * (
        temperature_c - REFERENCE_TEMPERATURE_C
    )
    cloud_factor = 1 - (cloud_cover / 100) * MAX_CLOUD_DERATE
    effective_irradiance = irradiance_wm2 * cloud_factor

    power_kw = (
        kw_peak
        * (effective_irradiance / STANDARD_IRRADIANCE_WM2)
        * efficiency
        * temperature_factor
    )
    return max(0.0, power_kw * 1000)
