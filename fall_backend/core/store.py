"""
Persistence for fall events, sensor snapshots and notifications.

`EventStore` is the interface the core talks to; `SqlEventStore` implements it
on SQLAlchemy's asyncio engine (SQLite via aiosqlite by default, any async
driver URL works). Storage failures surface as `PersistenceError`.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from fall_backend.schemas.fall_event import (
    FallEventRecord,
    NotificationRecord,
    SensorSnapshotRecord,
)

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a store read or write fails."""


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class FallEventRow(Base):
    __tablename__ = "fall_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class SensorDataRow(Base):
    __tablename__ = "sensor_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    fall_event_id: Mapped[Optional[str]] = mapped_column(ForeignKey("fall_events.id"), nullable=True)
    accelerometer_x: Mapped[float] = mapped_column(Float)
    accelerometer_y: Mapped[float] = mapped_column(Float)
    accelerometer_z: Mapped[float] = mapped_column(Float)
    gyroscope_x: Mapped[float] = mapped_column(Float)
    gyroscope_y: Mapped[float] = mapped_column(Float)
    gyroscope_z: Mapped[float] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(32))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(String(1024))
    related_event_id: Mapped[Optional[str]] = mapped_column(ForeignKey("fall_events.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class EventStore(ABC):
    """Async persistence interface used by the recorder and escalation controller."""

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def create_fall_event(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        snapshot: dict[str, float],
    ) -> FallEventRecord:
        """Insert a fall event and its sensor snapshot as one unit."""

    @abstractmethod
    async def update_fall_event(self, event_id: str, **fields: Any) -> FallEventRecord:
        ...

    @abstractmethod
    async def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        related_event_id: str | None = None,
    ) -> NotificationRecord:
        ...

    @abstractmethod
    async def list_fall_events(self, user_id: str) -> list[FallEventRecord]:
        ...

    @abstractmethod
    async def list_sensor_snapshots(self, user_id: str) -> list[SensorSnapshotRecord]:
        ...

    @abstractmethod
    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        ...


UPDATABLE_FIELDS = {"is_emergency", "resolved", "resolved_at"}


class SqlEventStore(EventStore):
    """SQLAlchemy-backed store. Tables are created on `init()`."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: AsyncEngine = self._create_engine(url, echo)
        self._sessions = async_sessionmaker(self.engine, expire_on_commit=False)

    @staticmethod
    def _create_engine(url: str, echo: bool) -> AsyncEngine:
        if url.startswith("sqlite") and ":memory:" in url:
            # single shared connection, otherwise every session sees an empty database
            return create_async_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(url, echo=echo)

    async def init(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not initialise store: {exc}") from exc
        logger.info("Store ready at %s", self.url)

    async def close(self) -> None:
        await self.engine.dispose()

    async def create_fall_event(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        snapshot: dict[str, float],
    ) -> FallEventRecord:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    event = FallEventRow(
                        user_id=user_id,
                        latitude=latitude,
                        longitude=longitude,
                        is_emergency=False,
                        resolved=False,
                    )
                    session.add(event)
                    await session.flush()
                    session.add(SensorDataRow(user_id=user_id, fall_event_id=event.id, **snapshot))
                await session.refresh(event)
                return FallEventRecord.model_validate(event)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not create fall event: {exc}") from exc

    async def update_fall_event(self, event_id: str, **fields: Any) -> FallEventRecord:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        try:
            async with self._sessions() as session:
                async with session.begin():
                    event = await session.get(FallEventRow, event_id)
                    if event is None:
                        raise PersistenceError(f"Fall event {event_id} not found")
                    for name, value in fields.items():
                        setattr(event, name, value)
                return FallEventRecord.model_validate(event)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not update fall event {event_id}: {exc}") from exc

    async def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        related_event_id: str | None = None,
    ) -> NotificationRecord:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    row = NotificationRow(
                        user_id=user_id,
                        type=type,
                        title=title,
                        message=message,
                        related_event_id=related_event_id,
                    )
                    session.add(row)
                await session.refresh(row)
                return NotificationRecord.model_validate(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not create notification: {exc}") from exc

    async def list_fall_events(self, user_id: str) -> list[FallEventRecord]:
        stmt = (
            select(FallEventRow)
            .where(FallEventRow.user_id == user_id)
            .order_by(FallEventRow.timestamp, FallEventRow.id)
        )
        return [FallEventRecord.model_validate(r) for r in await self._fetch(stmt)]

    async def list_sensor_snapshots(self, user_id: str) -> list[SensorSnapshotRecord]:
        stmt = select(SensorDataRow).where(SensorDataRow.user_id == user_id).order_by(SensorDataRow.id)
        return [SensorSnapshotRecord.model_validate(r) for r in await self._fetch(stmt)]

    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.user_id == user_id)
            .order_by(NotificationRow.created_at, NotificationRow.id)
        )
        return [NotificationRecord.model_validate(r) for r in await self._fetch(stmt)]

    async def _fetch(self, stmt) -> list:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc
