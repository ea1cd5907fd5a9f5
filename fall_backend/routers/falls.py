from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from fall_backend.core.store import EventStore, PersistenceError
from fall_backend.schemas.fall_event import FallEventRecord, FallStats, NotificationRecord

router = APIRouter(prefix="/falls", tags=["falls"])


def get_store(request: Request) -> EventStore:
    return request.app.state.store


@router.get("/{user_id}", response_model=list[FallEventRecord])
async def list_falls(user_id: str, store: EventStore = Depends(get_store)) -> list[FallEventRecord]:
    try:
        return await store.list_fall_events(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to load fall events: {exc}")


@router.get("/{user_id}/stats", response_model=FallStats)
async def fall_stats(user_id: str, store: EventStore = Depends(get_store)) -> FallStats:
    """Dashboard counters: total falls, emergencies, false alarms and last activity."""
    try:
        events = await store.list_fall_events(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to load fall events: {exc}")
    return summarize_events(events)


@router.get("/{user_id}/notifications", response_model=list[NotificationRecord])
async def list_notifications(
    user_id: str, store: EventStore = Depends(get_store)
) -> list[NotificationRecord]:
    try:
        return await store.list_notifications(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to load notifications: {exc}")


def summarize_events(events: list[FallEventRecord]) -> FallStats:
    return FallStats(
        total_falls=len(events),
        emergencies=sum(1 for e in events if e.is_emergency),
        false_alarms=sum(1 for e in events if e.resolved and not e.is_emergency),
        last_activity=max((e.timestamp for e in events), default=None),
    )
