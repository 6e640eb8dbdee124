"""
SQLAlchemy ORM models for the device store.

Mirrors the ``dwellings`` and ``devices`` tables owned by device management.
Device ``config`` and ``state`` are stored as JSON documents and validated
into typed models by the repository.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all device store ORM models."""

    pass


class DwellingRow(Base):
    """A dwelling record.

    Attributes:
        dwelling_id: Primary key (UUID string).
        user_id: Owning user (UUID string).
        time_zone: IANA time zone name.
        location: JSON object ``{"lat": ..., "lng": ...}``.
    """

    __tablename__ = "dwellings"

    dwelling_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    time_zone: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"DwellingRow(dwelling_id={self.dwelling_id!r}, time_zone={self.time_zone!r})"


class DeviceRow(Base):
    """A device record with JSON config and state documents.

    Attributes:
        device_id: Primary key (UUID string).
        dwelling_id: Owning dwelling.
        device_type: Type tag (``solarInverter``, ``battery``, ...).
        name: Optional display name.
        config: Type-specific configuration document.
        state: Type-specific state document, written by the engine.
        created_at: Creation timestamp.
        updated_at: Last state/config change timestamp.
    """

    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    dwelling_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("dwellings.dwelling_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    state: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"DeviceRow(device_id={self.device_id!r}, "
            f"device_type={self.device_type!r}, dwelling_id={self.dwelling_id!r})"
        )
