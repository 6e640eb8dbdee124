"""
Unit tests for simulation daemon configuration (SimulationSettings).

Tests verify:
- Config loads from environment variables with correct defaults.
- Config validation rejects missing required variables.
- DATABASE_URL must name an async driver.
- Numeric constraints are enforced (interval, concurrency, probability, timeout).

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import pytest
from pydantic import ValidationError

from hems.src.config import SimulationSettings


class TestSimulationSettingsLoadsFromEnv:
    """Config loads all values from environment variables."""

    def test_loads_all_env_vars(self, env_vars_full: dict[str, str]) -> None:
        """All env vars are read and assigned correctly."""
        settings = SimulationSettings()

        assert settings.database_url == env_vars_full["DATABASE_URL"]
        assert settings.redis_url == env_vars_full["REDIS_URL"]
        assert settings.simulation_interval_ms == 30000
        assert settings.simulation_interval_s == 30.0
        assert settings.phantom_load_w == 150.0
        assert settings.weather_batch_concurrency == 5
        assert settings.weather_mode == "simulated"
        assert settings.weather_api_url == env_vars_full["WEATHER_API_URL"]
        assert settings.weather_timeout_s == 2.5
        assert settings.appliance_toggle_probability == 0.1
        assert settings.daily_reset_enabled is False
        assert settings.strict_device_validation is True
        assert settings.random_seed == 42
        assert settings.health_path == env_vars_full["HEALTH_PATH"]

    def test_defaults_applied_when_optional_vars_missing(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        """Optional variables use default values when not set."""
        settings = SimulationSettings()

        assert settings.database_url == env_vars_required_only["DATABASE_URL"]
        assert settings.simulation_interval_ms == 60000
        assert settings.simulation_interval_s == 60.0
        assert settings.phantom_load_w == 200.0
        assert settings.weather_batch_concurrency == 3
        assert settings.weather_mode == "open_meteo"
        assert settings.weather_api_url == "https://api.open-meteo.com/v1/forecast"
        assert settings.weather_timeout_s == 5.0
        assert settings.appliance_toggle_probability == 0.05
        assert settings.daily_reset_enabled is True
        assert settings.strict_device_validation is False
        assert settings.random_seed is None
        assert settings.health_path == "/data/health.json"


class TestSimulationSettingsRequiredVars:
    """Config validation rejects missing required variables."""

    def test_missing_database_url_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """DATABASE_URL is required."""
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

        with pytest.raises(ValidationError) as exc_info:
            SimulationSettings()
        assert "database_url" in str(exc_info.value).lower()

    def test_missing_redis_url_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """REDIS_URL is required."""
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///hems.db")

        with pytest.raises(ValidationError) as exc_info:
            SimulationSettings()
        assert "redis_url" in str(exc_info.value).lower()


class TestDatabaseUrlValidation:
    """DATABASE_URL must use an async SQLAlchemy driver."""

    @pytest.mark.parametrize(
        "url",
        [
            "postgresql+asyncpg://user:pw@localhost/hems",
            "sqlite+aiosqlite:///hems.db",
            "postgresql+psycopg://user:pw@localhost/hems",
        ],
    )
    def test_async_drivers_accepted(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch, url: str
    ) -> None:
        monkeypatch.setenv("DATABASE_URL", url)
        assert SimulationSettings().database_url == url

    @pytest.mark.parametrize(
        "url",
        ["postgresql://user:pw@localhost/hems", "sqlite:///hems.db"],
    )
    def test_sync_drivers_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch, url: str
    ) -> None:
        monkeypatch.setenv("DATABASE_URL", url)
        with pytest.raises(ValidationError, match="async driver"):
            SimulationSettings()


class TestNumericConstraints:
    """Numeric settings are range-checked."""

    def test_interval_below_one_second_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SIMULATION_INTERVAL_MS", "999")
        with pytest.raises(ValidationError, match="SIMULATION_INTERVAL_MS"):
            SimulationSettings()

    def test_interval_of_one_second_accepted(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SIMULATION_INTERVAL_MS", "1000")
        assert SimulationSettings().simulation_interval_s == 1.0

    @pytest.mark.parametrize("value", ["0", "51"])
    def test_concurrency_out_of_range_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("WEATHER_BATCH_CONCURRENCY", value)
        with pytest.raises(ValidationError, match="WEATHER_BATCH_CONCURRENCY"):
            SimulationSettings()

    @pytest.mark.parametrize("value", ["-0.1", "1.5"])
    def test_toggle_probability_out_of_range_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("APPLIANCE_TOGGLE_PROBABILITY", value)
        with pytest.raises(ValidationError, match="APPLIANCE_TOGGLE_PROBABILITY"):
            SimulationSettings()

    def test_negative_phantom_load_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PHANTOM_LOAD_W", "-1")
        with pytest.raises(ValidationError, match="PHANTOM_LOAD_W"):
            SimulationSettings()

    def test_zero_timeout_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WEATHER_TIMEOUT_S", "0")
        with pytest.raises(ValidationError, match="WEATHER_TIMEOUT_S"):
            SimulationSettings()

    def test_non_http_weather_url_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WEATHER_API_URL", "ftp://weather.example.com")
        with pytest.raises(ValidationError, match="WEATHER_API_URL"):
            SimulationSettings()

    def test_unknown_weather_mode_rejected(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WEATHER_MODE", "psychic")
        with pytest.raises(ValidationError):
            SimulationSettings()
