from __future__ import annotations

import logging

import numpy as np

from fall_backend.core.geolocation import GeolocationProvider
from fall_backend.core.motion import SensorSample
from fall_backend.core.store import EventStore, PersistenceError

logger = logging.getLogger(__name__)


class EventRecordError(Exception):
    """Creating the fall event failed; the escalation must not start."""


class EventRecorder:
    """Persists a fall event plus its sensor snapshot at the current (or fallback) location."""

    def __init__(
        self,
        store: EventStore,
        geolocation: GeolocationProvider,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.store = store
        self.geolocation = geolocation
        self.rng = rng or np.random.default_rng()

    async def record_fall(self, user_id: str, sample: SensorSample) -> str:
        """Return the new fall event id. Raises EventRecordError, no retry."""
        latitude, longitude, is_fallback = self.geolocation.resolve_coordinates(self.rng)
        if is_fallback:
            logger.info("No active position for %s, using fallback location", user_id)

        try:
            event = await self.store.create_fall_event(
                user_id=user_id,
                latitude=latitude,
                longitude=longitude,
                snapshot=sample.channels(),
            )
        except PersistenceError as exc:
            logger.error("Error creating fall event for %s: %s", user_id, exc)
            raise EventRecordError("Error creating fall event") from exc

        logger.info("Fall event %s recorded at (%.4f, %.4f)", event.id, latitude, longitude)
        return event.id
