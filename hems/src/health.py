"""
Health file writer for the simulation daemon.

Writes a JSON health file at a configurable path with three fields:
- last_cycle_ts: ISO timestamp of the most recent completed cycle.
- dwellings_simulated: Dwellings published in that cycle.
- dwellings_failed: Dwellings that failed in that cycle.

The file is rewritten after every cycle, providing a simple liveness signal
that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-16: Track simulation cycles instead of poll/upload events

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes simulation health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_cycle_ts: str | None = None
        self._dwellings_simulated: int = 0
        self._dwellings_failed: int = 0

    def record_cycle(self, *, simulated: int, failed: int) -> None:
        """Record a completed cycle and write the health file.

        Args:
            simulated: Number of dwellings published in the cycle.
            failed: Number of dwellings that raised during the cycle.
        """
        self._last_cycle_ts = datetime.now(tz=UTC).isoformat()
        self._dwellings_simulated = simulated
        self._dwellings_failed = failed
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_cycle_ts": self._last_cycle_ts,
            "dwellings_simulated": self._dwellings_simulated,
            "dwellings_failed": self._dwellings_failed,
        }
        self.path.write_text(json.dumps(data))
