"""
Weather providers for the simulation engine.

Two providers share the same interface:

- :class:`OpenMeteoWeatherProvider` fetches current irradiance, temperature
  and cloud cover from the Open-Meteo forecast API over HTTPS.  Any failure
  (timeout, HTTP error, malformed body) is logged and replaced by a
  deterministic time-of-day estimate, so ``get_current`` never raises.
- :class:`SimulatedWeatherProvider` produces synthetic seasonal weather for
  offline and demo deployments.

``get_many_current`` fetches a list of dwelling locations in groups of at
most ``batch_concurrency`` concurrent requests.  A dwelling whose fetch
raises unexpectedly is logged and omitted from the result map.

CHANGELOG:
- 2026-10-16: Add simulated provider
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

import httpx

from hems.src.models import Location, WeatherSample

logger = logging.getLogger(__name__)

OPEN_METEO_API_URL = "https://api.open-meteo.com/v1/forecast"

DEFAULT_BATCH_CONCURRENCY = 3
DEFAULT_TIMEOUT_S = 5.0

_CURRENT_FIELDS = ("temperature_2m", "cloud_cover", "shortwave_radiation")

FALLBACK_PEAK_IRRADIANCE_WM2 = 600.0
FALLBACK_TEMPERATURE_C = 22.0
FALLBACK_CLOUD_COVER = 30.0


@dataclass(frozen=True, slots=True)
class WeatherRequest:
    """A dwelling location to fetch weather for."""

    dwelling_id: str
    location: Location


class WeatherProvider(Protocol):
    """Interface consumed by the scheduler."""

    async def get_current(self, location: Location) -> WeatherSample: ...

    async def get_many_current(
        self, requests: Sequence[WeatherRequest]
    ) -> dict[str, WeatherSample]: ...


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _solar_hour(now: datetime, location: Location) -> float:
    """Approximate local solar time in hours, from UTC time and longitude."""
    utc = now.astimezone(UTC)
    hour = utc.hour + utc.minute / 60 + utc.second / 3600
    return (hour + location.lng / 15) % 24


def fallback_weather(now: datetime, location: Location) -> WeatherSample:
    """Deterministic weather estimate used when the API is unavailable.

    Irradiance follows a half sine between 06:00 and 18:00 local solar time
    peaking at 600 W/m^2 at noon, with fixed 22 degC and 30 % cloud cover.
    """
    hour = _solar_hour(now, location)
    irradiance = 0.0
    if 6 <= hour <= 18:
        day_progress = (hour - 6) / 12
        irradiance = FALLBACK_PEAK_IRRADIANCE_WM2 * math.sin(day_progress * math.pi)

    return WeatherSample(
        irradiance_wm2=max(0.0, irradiance),
        temperature_c=FALLBACK_TEMPERATURE_C,
        cloud_cover=FALLBACK_CLOUD_COVER,
        timestamp=now,
    )


async def _gather_in_groups(
    requests: Sequence[WeatherRequest],
    fetch: Callable[[Location], Awaitable[WeatherSample]],
    batch_concurrency: int,
) -> dict[str, WeatherSample]:
    """Run *fetch* for every request, at most *batch_concurrency* at a time."""
    results: dict[str, WeatherSample] = {}
    for start in range(0, len(requests), batch_concurrency):
        group = requests[start : start + batch_concurrency]
        samples = await asyncio.gather(
            *(fetch(request.location) for request in group),
            return_exceptions=True,
        )
        for request, sample in zip(group, samples, strict=True):
            if isinstance(sample, BaseException):
                logger.error(
                    "Weather fetch failed for dwelling %s",
                    request.dwelling_id,
                    exc_info=sample,
                )
                continue
            results[request.dwelling_id] = sample
    return results


# ---------------------------------------------------------------------------
# Open-Meteo provider
# ---------------------------------------------------------------------------


class OpenMeteoWeatherProvider:
    """Current-weather client for the Open-Meteo forecast API.

    Args:
        api_url: Forecast endpoint URL.
        timeout_s: Per-request timeout in seconds.
        batch_concurrency: Max concurrent requests in ``get_many_current``.
        transport: Optional httpx transport (tests inject a MockTransport).
        clock: Returns the current UTC time; used for the fallback estimate.

    Usage::

        provider = OpenMeteoWeatherProvider()
        sample = await provider.get_current(Location(lat=51.0, lng=4.4))
    """

    def __init__(
        self,
        *,
        api_url: str = OPEN_METEO_API_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if batch_concurrency < 1:
            raise ValueError("batch_concurrency must be >= 1")
        self._api_url = api_url
        self._timeout_s = timeout_s
        self._batch_concurrency = batch_concurrency
        self._transport = transport
        self._clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_current(self, location: Location) -> WeatherSample:
        """Return current weather for *location*, or the fallback estimate."""
        async with self._client() as client:
            return await self._fetch(client, location)

    async def get_many_current(
        self, requests: Sequence[WeatherRequest]
    ) -> dict[str, WeatherSample]:
        """Fetch weather for many dwellings with bounded concurrency.

        Returns:
            Mapping of dwelling id to weather sample.
        """
        if not requests:
            return {}
        async with self._client() as client:
            return await _gather_in_groups(
                requests,
                lambda location: self._fetch(client, location),
                self._batch_concurrency,
            )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(self, client: httpx.AsyncClient, location: Location) -> WeatherSample:
        params = {
            "latitude": location.lat,
            "longitude": location.lng,
            "current": ",".join(_CURRENT_FIELDS),
            "timezone": "GMT",
            "forecast_days": 1,
        }
        try:
            response = await client.get(self._api_url, params=params)
            response.raise_for_status()
            return self._parse(response.json())
        except Exception:
            logger.warning(
                "Weather API error for location (%.4f, %.4f), using fallback estimate",
                location.lat,
                location.lng,
                exc_info=True,
            )
            return fallback_weather(self._clock(), location)

    def _parse(self, body: dict) -> WeatherSample:
        current = body.get("current")
        if not current:
            raise ValueError("No current weather data available")

        timestamp = self._clock()
        if current.get("time"):
            timestamp = datetime.fromisoformat(current["time"]).replace(tzinfo=UTC)

        irradiance = current.get("shortwave_radiation")
        temperature = current.get("temperature_2m")
        cloud_cover = current.get("cloud_cover")
        return WeatherSample(
            irradiance_wm2=irradiance if irradiance is not None else 0.0,
            temperature_c=temperature if temperature is not None else 20.0,
            cloud_cover=cloud_cover if cloud_cover is not None else 0.0,
            timestamp=timestamp,
        )


# ---------------------------------------------------------------------------
# Simulated provider
# ---------------------------------------------------------------------------


class SimulatedWeatherProvider:
    """Synthetic seasonal weather, for running without network access.

    Irradiance peaks around 800 W/m^2 at solar noon near the June solstice,
    scaled by a seasonal cosine and +/-20 % noise.  Temperature ranges from
    20 to 35 degC with the season, +/-5 degC over the day and +/-2 degC noise.

    Args:
        rng: Random source for the noise terms.
        clock: Returns the current UTC time.
        batch_concurrency: Group size used by ``get_many_current``.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utc_now,
        batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._batch_concurrency = batch_concurrency

    async def get_current(self, location: Location) -> WeatherSample:
        now = self._clock()
        hour = _solar_hour(now, location)
        day_of_year = now.timetuple().tm_yday

        # Peaks around June 21 (day 172).
        seasonal = 0.5 + 0.5 * math.cos((day_of_year - 172) * 2 * math.pi / 365)

        irradiance = 0.0
        if 6 <= hour <= 18:
            day_progress = (hour - 6) / 12
            irradiance = 800 * seasonal * math.sin(day_progress * math.pi)
        irradiance *= 0.8 + self._rng.random() * 0.4

        base_temperature = 20 + 15 * seasonal
        daily_variation = 5 * math.sin((hour - 6) * math.pi / 12)
        temperature = base_temperature + daily_variation + (self._rng.random() - 0.5) * 4

        return WeatherSample(
            irradiance_wm2=max(0, round(irradiance)),
            temperature_c=round(temperature, 1),
            cloud_cover=round(self._rng.random() * 60),
            timestamp=now,
        )

    async def get_many_current(
        self, requests: Sequence[WeatherRequest]
    ) -> dict[str, WeatherSample]:
        return await _gather_in_groups(requests, self.get_current, self._batch_concurrency)
