from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

import numpy as np

from fall_backend.core.capabilities import (
    LocationCapability,
    LocationErrorKind,
    PositionFix,
    WatchOptions,
)

logger = logging.getLogger(__name__)

# Reference point used when no real position is available (New Delhi)
REFERENCE_LATITUDE: float = 28.6139
REFERENCE_LONGITUDE: float = 77.2090
FALLBACK_JITTER_DEG: float = 0.1   # full width; ±0.05° around the reference

ERROR_MESSAGES: dict[LocationErrorKind, str] = {
    LocationErrorKind.PERMISSION_DENIED: (
        "Location permission denied. Please enable location access in your browser settings."
    ),
    LocationErrorKind.UNAVAILABLE: "Location information is unavailable.",
    LocationErrorKind.TIMEOUT: "The request to get your location timed out.",
}


class LocationStatus(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class Position:
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    status: LocationStatus = LocationStatus.LOADING
    error: LocationErrorKind | None = None
    message: str | None = None

    @property
    def permission_denied(self) -> bool:
        return self.error is LocationErrorKind.PERMISSION_DENIED

    @property
    def is_active(self) -> bool:
        return self.status is LocationStatus.ACTIVE and self.latitude is not None

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "status": self.status.value,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "permission_denied": self.permission_denied,
        }


def fallback_coordinates(rng: np.random.Generator | None = None) -> tuple[float, float]:
    """
    Jittered coordinate around the reference point, one fresh uniform draw per axis.
    Always inside [28.5639, 28.6639] × [77.1590, 77.2590].
    """
    rng = rng or np.random.default_rng()
    lat = REFERENCE_LATITUDE + (rng.random() - 0.5) * FALLBACK_JITTER_DEG
    lon = REFERENCE_LONGITUDE + (rng.random() - 0.5) * FALLBACK_JITTER_DEG
    return float(lat), float(lon)


class GeolocationProvider:
    """
    Keeps the latest position from a continuous platform watch.

    Usage:
        async with GeolocationProvider(capability) as geo:
            lat, lon, is_fallback = geo.resolve_coordinates()
    """

    DEFAULT_OPTIONS = WatchOptions(enable_high_accuracy=True, timeout_ms=10_000, maximum_age_ms=0)

    def __init__(
        self,
        capability: LocationCapability,
        options: WatchOptions | None = None,
    ) -> None:
        self.capability = capability
        self.options = options or self.DEFAULT_OPTIONS
        self.position = Position()
        self._watch_id: int | None = None

    @property
    def is_watching(self) -> bool:
        return self._watch_id is not None

    async def start(self) -> None:
        """Start (or restart after an error) the position watch; no-op while healthy."""
        if self.is_watching:
            if self.position.status is not LocationStatus.ERROR:
                return
            self.stop()

        self.position = replace(self.position, status=LocationStatus.LOADING, error=None, message=None)
        access = await self.capability.request_location_access()
        if not access.started:
            kind = access.error or LocationErrorKind.UNAVAILABLE
            self._on_error(kind, access.message)
            return

        self._watch_id = self.capability.watch_position(self._on_position, self._on_error, self.options)
        logger.info("Location watch %d started", self._watch_id)

    def stop(self) -> None:
        if self._watch_id is not None:
            self.capability.clear_watch(self._watch_id)
            logger.info("Location watch %d cleared", self._watch_id)
            self._watch_id = None

    async def __aenter__(self) -> GeolocationProvider:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    def resolve_coordinates(
        self, rng: np.random.Generator | None = None
    ) -> tuple[float, float, bool]:
        """Return (latitude, longitude, is_fallback)."""
        if self.position.is_active:
            return self.position.latitude, self.position.longitude, False
        lat, lon = fallback_coordinates(rng)
        return lat, lon, True

    # ── watch callbacks ──

    def _on_position(self, fix: PositionFix) -> None:
        self.position = Position(
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy=fix.accuracy,
            status=LocationStatus.ACTIVE,
        )

    def _on_error(self, kind: LocationErrorKind, message: str | None = None) -> None:
        logger.warning("Location error: %s", kind.value)
        self.position = Position(
            status=LocationStatus.ERROR,
            error=kind,
            message=message or ERROR_MESSAGES.get(kind, "Unable to retrieve location"),
        )
