"""
Simulation daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded hosts, URLs, or credentials.

CHANGELOG:
- 2026-10-16: Add weather mode, strict validation and random seed
- 2026-10-16: Initial creation

TODO:
- None
"""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

_ASYNC_DRIVERS = ("+asyncpg", "+aiosqlite", "+psycopg", "+asyncmy", "+aiomysql")


class SimulationSettings(BaseSettings):
    """Simulation daemon configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        database_url: SQLAlchemy async URL of the device store.
        redis_url: Redis URL used for real-time fan-out.
        simulation_interval_ms: Milliseconds between simulation cycles.
        phantom_load_w: Baseline household load added to every dwelling.
        weather_batch_concurrency: Number of weather requests in flight at once.
        weather_mode: ``open_meteo`` for the HTTP provider (with fallback),
            ``simulated`` for synthetic seasonal weather.
        weather_api_url: Open-Meteo forecast endpoint.
        weather_timeout_s: Per-request weather timeout in seconds.
        appliance_toggle_probability: Chance per cycle that a
            non-controllable appliance flips its on/off state.
        daily_reset_enabled: Reset "today" counters at local midnight.
        strict_device_validation: Raise on malformed device records instead
            of skipping them (development mode).
        random_seed: Optional seed for the simulation random source.
        health_path: Health JSON file path; empty disables the file.
    """

    database_url: str
    redis_url: str
    simulation_interval_ms: int = 60000
    phantom_load_w: float = 200.0
    weather_batch_concurrency: int = 3
    weather_mode: Literal["open_meteo", "simulated"] = "open_meteo"
    weather_api_url: str = "https://api.open-meteo.com/v1/forecast"
    weather_timeout_s: float = 5.0
    appliance_toggle_probability: float = 0.05
    daily_reset_enabled: bool = True
    strict_device_validation: bool = False
    random_seed: int | None = None
    health_path: str = "/data/health.json"

    @property
    def simulation_interval_s(self) -> float:
        """Cycle interval in seconds."""
        return self.simulation_interval_ms / 1000.0

    @field_validator("database_url")
    @classmethod
    def database_url_must_be_async(cls, v: str) -> str:
        """Validate that the database URL names an async driver."""
        scheme = v.split("://", 1)[0]
        if not any(scheme.endswith(driver) for driver in _ASYNC_DRIVERS):
            raise ValueError(
                "DATABASE_URL must use an async driver "
                f"(e.g. postgresql+asyncpg, sqlite+aiosqlite), got scheme '{scheme}'"
            )
        return v

    @field_validator("simulation_interval_ms")
    @classmethod
    def interval_must_be_reasonable(cls, v: int) -> int:
        """Validate the simulation interval is at least one second."""
        if v < 1000:
            raise ValueError("SIMULATION_INTERVAL_MS must be >= 1000")
        return v

    @field_validator("phantom_load_w")
    @classmethod
    def phantom_load_must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("PHANTOM_LOAD_W must be >= 0")
        return v

    @field_validator("weather_batch_concurrency")
    @classmethod
    def concurrency_must_be_valid(cls, v: int) -> int:
        """Validate weather batch concurrency is between 1 and 50."""
        if v < 1 or v > 50:
            raise ValueError("WEATHER_BATCH_CONCURRENCY must be >= 1 and <= 50")
        return v

    @field_validator("weather_api_url")
    @classmethod
    def weather_url_must_be_http(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("WEATHER_API_URL must be an http(s) URL")
        return v

    @field_validator("weather_timeout_s")
    @classmethod
    def weather_timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("WEATHER_TIMEOUT_S must be > 0")
        return v

    @field_validator("appliance_toggle_probability")
    @classmethod
    def toggle_probability_must_be_fraction(cls, v: float) -> float:
        """Validate the toggle probability lies in [0, 1]."""
        if v < 0 or v > 1:
            raise ValueError("APPLIANCE_TOGGLE_PROBABILITY must be between 0 and 1")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
