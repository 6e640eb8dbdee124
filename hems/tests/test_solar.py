"""
Unit tests for the photovoltaic output model.

Tests verify:
- Output at standard test conditions equals kw_peak * efficiency.
- Non-positive irradiance yields zero.
- Cloud cover derates irradiance by up to 80 %.
- Temperature derates output by 0.4 %/degC away from 25 degC.
- Output is never negative.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import pytest

from hems.src.solar import calculate_solar_power


class TestStandardConditions:
    def test_stc_output(self) -> None:
        """1000 W/m^2, 25 degC, clear sky: kw_peak * efficiency."""
        assert calculate_solar_power(1000, 5.0, 0.85, 25, 0) == pytest.approx(4250.0)

    def test_scales_linearly_with_irradiance(self) -> None:
        assert calculate_solar_power(500, 5.0, 0.85) == pytest.approx(2125.0)

    @pytest.mark.parametrize("irradiance", [0, -10])
    def test_no_irradiance_no_power(self, irradiance: float) -> None:
        assert calculate_solar_power(irradiance, 5.0) == 0.0


class TestDerating:
    def test_full_cloud_cover_removes_80_percent(self) -> None:
        assert calculate_solar_power(1000, 5.0, 1.0, 25, 100) == pytest.approx(1000.0)

    def test_half_cloud_cover(self) -> None:
        assert calculate_solar_power(1000, 5.0, 1.0, 25, 50) == pytest.approx(3000.0)

    def test_hot_panel_loses_power(self) -> None:
        """35 degC: 10 degC above reference, -4 %."""
        assert calculate_solar_power(1000, 5.0, 1.0, 35, 0) == pytest.approx(4800.0)

    def test_cold_panel_gains_power(self) -> None:
        """5 degC: 20 degC below reference, +8 %."""
        assert calculate_solar_power(1000, 5.0, 1.0, 5, 0) == pytest.approx(5400.0)

    def test_extreme_heat_clamped_to_zero(self) -> None:
        assert calculate_solar_power(1000, 5.0, 1.0, 300, 0) == 0.0
