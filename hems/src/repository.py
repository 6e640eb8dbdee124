"""
Device repository: typed read access to dwellings and devices, and atomic
batch state replacement.

The engine does not own the store; device management and control commands
write to it concurrently.  Batch updates run in a single transaction so a
dwelling's states are replaced all-or-nothing; between a control command
and a simulation cycle the last writer wins.

Records that cannot be parsed into the typed device union (unknown type tag,
invalid config/state) raise :class:`DeviceValidationError` in strict mode and
are logged and skipped otherwise.

Operations:
- list_dwellings(): All dwellings.
- get_device(device_id): One device or ``None``.
- get_devices_for_dwelling(dwelling_id): Devices in creation order.
- batch_update_state(updates): Replace the state of several devices atomically.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import JSON, DateTime, bindparam, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hems.src.db.models import DeviceRow, DwellingRow
from hems.src.models import DEVICE_ADAPTER, Device, Dwelling, StateUpdate

logger = logging.getLogger(__name__)


class RepositoryError(RuntimeError):
    """A batch write could not be applied; nothing was written."""


class DeviceValidationError(ValueError):
    """A stored record does not match any known device or dwelling shape."""


class DeviceRepository(Protocol):
    """Interface consumed by the scheduler and control commands."""

    async def list_dwellings(self) -> list[Dwelling]: ...

    async def get_device(self, device_id: str) -> Device | None: ...

    async def get_devices_for_dwelling(self, dwelling_id: str) -> list[Device]: ...

    async def batch_update_state(self, updates: Sequence[StateUpdate]) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


_BATCH_UPDATE = (
    update(DeviceRow.__table__)
    .where(DeviceRow.__table__.c.device_id == bindparam("b_device_id"))
    .values(
        state=bindparam("b_state", type_=JSON),
        updated_at=bindparam("b_updated_at", type_=DateTime(timezone=True)),
    )
)


class SqlDeviceRepository:
    """Device repository backed by SQLAlchemy async sessions.

    Args:
        session_factory: Factory producing AsyncSession instances.
        strict: Raise :class:`DeviceValidationError` on malformed records
            instead of skipping them.
        clock: Returns the current UTC time, stamped into ``updated_at``.

    Usage::

        repo = SqlDeviceRepository(create_session_factory(engine))
        devices = await repo.get_devices_for_dwelling(dwelling_id)
        await repo.batch_update_state(updates)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        strict: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._strict = strict
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_dwellings(self) -> list[Dwelling]:
        """Return every dwelling, oldest first."""
        stmt = select(DwellingRow).order_by(DwellingRow.created_at, DwellingRow.dwelling_id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        dwellings: list[Dwelling] = []
        for row in rows:
            try:
                dwellings.append(
                    Dwelling(
                        id=row.dwelling_id,
                        user_id=row.user_id,
                        time_zone=row.time_zone,
                        location=row.location,
                    )
                )
            except ValidationError as exc:
                self._reject(f"dwelling {row.dwelling_id}", exc)
        return dwellings

    async def get_device(self, device_id: str) -> Device | None:
        """Return the device with *device_id*, or ``None`` if not found."""
        async with self._session_factory() as session:
            row = await session.get(DeviceRow, device_id)
        if row is None:
            return None
        return self._to_device(row)

    async def get_devices_for_dwelling(self, dwelling_id: str) -> list[Device]:
        """Return the dwelling's devices in creation order."""
        stmt = (
            select(DeviceRow)
            .where(DeviceRow.dwelling_id == dwelling_id)
            .order_by(DeviceRow.created_at, DeviceRow.device_id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        devices = (self._to_device(row) for row in rows)
        return [device for device in devices if device is not None]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def batch_update_state(self, updates: Sequence[StateUpdate]) -> None:
        """Replace the state of every device in *updates* in one transaction.

        Raises:
            RepositoryError: If any device id is unknown or duplicated, or the
                store rejects the write. No state is changed in that case.
        """
        if not updates:
            return

        device_ids = [u.device_id for u in updates]
        if len(set(device_ids)) != len(device_ids):
            raise RepositoryError("Batch contains duplicate device ids")

        now = self._clock()
        params = [
            {
                "b_device_id": u.device_id,
                "b_state": u.state.model_dump(mode="json"),
                "b_updated_at": now,
            }
            for u in updates
        ]

        try:
            async with self._session_factory() as session, session.begin():
                found = await session.execute(
                    select(DeviceRow.device_id).where(DeviceRow.device_id.in_(device_ids))
                )
                missing = set(device_ids) - set(found.scalars())
                if missing:
                    raise RepositoryError(
                        f"Unknown device ids in batch: {', '.join(sorted(missing))}"
                    )
                await session.execute(_BATCH_UPDATE, params)
        except SQLAlchemyError as exc:
            raise RepositoryError("Batch state update failed") from exc

        logger.debug("Batch updated state of %d devices", len(updates))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _to_device(self, row: DeviceRow) -> Device | None:
        try:
            return DEVICE_ADAPTER.validate_python(
                {
                    "id": row.device_id,
                    "dwelling_id": row.dwelling_id,
                    "device_type": row.device_type,
                    "name": row.name,
                    "config": row.config,
                    "state": row.state,
                    "created_at": row.created_at,
                    "updated_at": row.updated_at,
                }
            )
        except ValidationError as exc:
            self._reject(f"device {row.device_id} ({row.device_type})", exc)
            return None

    def _reject(self, what: str, exc: ValidationError) -> None:
        if self._strict:
            raise DeviceValidationError(f"Invalid {what}: {exc}") from exc
        logger.warning("Skipping invalid %s: %s", what, exc)
