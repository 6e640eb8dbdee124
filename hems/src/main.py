"""
HEMS simulation daemon entrypoint.

Builds the simulation collaborators from environment configuration (device
repository over SQLAlchemy, weather provider, Redis publisher, state updater,
health writer), starts the fixed-interval :class:`SimulationScheduler`, and
waits for SIGTERM/SIGINT.  On shutdown the scheduler is stopped (an in-flight
cycle completes), then the database engine and Redis client are closed.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-16: Run the simulation scheduler instead of poll/upload loops
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from hems.src.health import HealthWriter
from hems.src.weather import OpenMeteoWeatherProvider, SimulatedWeatherProvider

if TYPE_CHECKING:
    from hems.src.config import SimulationSettings
    from hems.src.weather import WeatherProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the simulation daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def mask_url(url: str) -> str:
    """Return *url* with any password replaced by ``***``."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.hostname or ""
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    if parts.username:
        netloc = f"{parts.username}:***@{netloc}"
    else:
        netloc = f":***@{netloc}"
    return urlunsplit(parts._replace(netloc=netloc))


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: SimulationSettings) -> None:
    """Log a config summary at startup, with URL credentials masked."""
    logger.info(
        "Simulation daemon starting with config: "
        "database_url=%s, redis_url=%s, interval_ms=%s, phantom_load_w=%s, "
        "weather_mode=%s, weather_api_url=%s, weather_batch_concurrency=%s, "
        "weather_timeout_s=%s, appliance_toggle_probability=%s, "
        "daily_reset_enabled=%s, strict_device_validation=%s, "
        "random_seed=%s, health_path=%s",
        mask_url(settings.database_url),
        mask_url(settings.redis_url),
        settings.simulation_interval_ms,
        settings.phantom_load_w,
        settings.weather_mode,
        settings.weather_api_url,
        settings.weather_batch_concurrency,
        settings.weather_timeout_s,
        settings.appliance_toggle_probability,
        settings.daily_reset_enabled,
        settings.strict_device_validation,
        settings.random_seed,
        settings.health_path or "disabled",
    )


def build_weather_provider(
    settings: SimulationSettings, rng: random.Random
) -> WeatherProvider:
    """Return the weather provider selected by ``WEATHER_MODE``."""
    if settings.weather_mode == "simulated":
        return SimulatedWeatherProvider(
            rng=rng, batch_concurrency=settings.weather_batch_concurrency
        )
    return OpenMeteoWeatherProvider(
        api_url=settings.weather_api_url,
        timeout_s=settings.weather_timeout_s,
        batch_concurrency=settings.weather_batch_concurrency,
    )


def build_health_writer(settings: SimulationSettings) -> HealthWriter | None:
    """Return a health writer, or ``None`` if ``HEALTH_PATH`` is empty."""
    if not settings.health_path:
        return None
    return HealthWriter(settings.health_path)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run the scheduler.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from hems.src.config import SimulationSettings
    from hems.src.db.session import create_engine, create_session_factory
    from hems.src.publisher import RedisPublisher, get_redis
    from hems.src.repository import SqlDeviceRepository
    from hems.src.scheduler import SimulationScheduler
    from hems.src.state_updater import StateUpdater

    settings = SimulationSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    rng = random.Random(settings.random_seed)
    engine = create_engine(settings.database_url)
    redis_client = get_redis(settings.redis_url)

    repository = SqlDeviceRepository(
        create_session_factory(engine),
        strict=settings.strict_device_validation,
    )
    updater = StateUpdater(
        interval_s=settings.simulation_interval_s,
        rng=rng,
        toggle_probability=settings.appliance_toggle_probability,
        daily_reset=settings.daily_reset_enabled,
    )
    scheduler = SimulationScheduler(
        repository=repository,
        weather=build_weather_provider(settings, rng),
        publisher=RedisPublisher(redis_client),
        interval_s=settings.simulation_interval_s,
        phantom_load_w=settings.phantom_load_w,
        updater=updater,
        health=build_health_writer(settings),
    )

    try:
        scheduler.start()
        await shutdown_event.wait()
        await scheduler.stop()
    finally:
        await redis_client.aclose()
        await engine.dispose()
        logger.info("Shutdown complete")


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the simulation daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
