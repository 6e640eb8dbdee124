"""
Real-time fan-out of simulation results over Redis pub/sub.

Each dwelling result is published twice:

- the full update (all device states plus weather) on the dwelling channel
  ``dwelling-{dwelling_id}`` as event ``simulation-update``;
- a lightweight summary on the shared ``simulation`` channel as event
  ``dwelling-update``, for dashboard-level subscribers.

Publishing is best-effort: failures are logged and never raised, since the
next cycle supersedes any lost message.

CHANGELOG:
- 2026-10-16: Initial creation
"""

import json
import logging
from typing import Protocol

import redis.asyncio as redis

from hems.src.models import DwellingSummary, SimulationUpdate

logger = logging.getLogger(__name__)

SUMMARY_CHANNEL = "simulation"
UPDATE_EVENT = "simulation-update"
SUMMARY_EVENT = "dwelling-update"


def dwelling_channel(dwelling_id: str) -> str:
    """Return the pub/sub channel name for a dwelling."""
    return f"dwelling-{dwelling_id}"


class UpdatePublisher(Protocol):
    """Interface the scheduler publishes through."""

    async def publish_dwelling_update(self, update: SimulationUpdate) -> None: ...

    async def publish_summary(self, summary: DwellingSummary) -> None: ...


def get_redis(redis_url: str) -> redis.Redis:
    """Create an async Redis client for *redis_url*.

    Returns:
        redis.Redis: Async Redis client (connections are opened lazily).
    """
    return redis.from_url(redis_url)


class RedisPublisher:
    """Publishes simulation results to Redis channels.

    Args:
        client: An async Redis client. The caller owns its lifecycle.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def publish_dwelling_update(self, update: SimulationUpdate) -> None:
        """Publish the full dwelling update. Never raises."""
        await self._publish(
            dwelling_channel(update.dwelling_id),
            UPDATE_EVENT,
            update.model_dump(mode="json"),
        )

    async def publish_summary(self, summary: DwellingSummary) -> None:
        """Publish the dashboard summary. Never raises."""
        await self._publish(SUMMARY_CHANNEL, SUMMARY_EVENT, summary.model_dump(mode="json"))

    async def _publish(self, channel: str, event: str, data: dict) -> None:
        message = json.dumps({"event": event, "data": data})
        try:
            receivers = await self._client.publish(channel, message)
            logger.debug("Published %s to %s (%s receivers)", event, channel, receivers)
        except Exception:
            logger.error(
                "Failed to publish %s to channel %s",
                event,
                channel,
                exc_info=True,
            )
