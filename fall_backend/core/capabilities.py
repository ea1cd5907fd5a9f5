from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from fall_backend.core.motion import SensorSample


class MotionAccess(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class LocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permissionDenied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class LocationAccess:
    """Outcome of asking the platform for a position watch."""

    started: bool
    error: LocationErrorKind | None = None
    message: str | None = None

    @classmethod
    def ok(cls) -> LocationAccess:
        return cls(started=True)

    @classmethod
    def failed(cls, kind: LocationErrorKind, message: str | None = None) -> LocationAccess:
        return cls(started=False, error=kind, message=message)


@dataclass(frozen=True)
class WatchOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 0


@dataclass(frozen=True)
class PositionFix:
    latitude: float
    longitude: float
    accuracy: float | None = None


MotionListener = Callable[["SensorSample"], None]
PositionCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[LocationErrorKind, "str | None"], None]


class MotionCapability(ABC):
    """
    Platform source of device-motion samples.
    Adapters implement the permission request and call `_emit` for every reading;
    listener bookkeeping lives here so adapters never branch on platform identity.
    """

    def __init__(self) -> None:
        self._listeners: list[MotionListener] = []

    @abstractmethod
    async def request_motion_access(self) -> MotionAccess:
        """Ask for motion-sensor access. May suspend and may raise."""

    def subscribe(self, listener: MotionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: MotionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self, sample: SensorSample) -> None:
        for listener in list(self._listeners):
            listener(sample)

    async def close(self) -> None:
        """Release platform resources. Default: nothing to release."""


class LocationCapability(ABC):
    """
    Platform source of continuous position updates (watchPosition semantics).
    """

    def __init__(self) -> None:
        self._watches: dict[int, tuple[PositionCallback, ErrorCallback, WatchOptions]] = {}
        self._next_watch_id = 1

    @abstractmethod
    async def request_location_access(self) -> LocationAccess:
        """Ask the platform to start delivering positions."""

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions | None = None,
    ) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watches[watch_id] = (on_position, on_error, options or WatchOptions())
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watches.pop(watch_id, None)

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def _emit_position(self, fix: PositionFix) -> None:
        for on_position, _, _ in list(self._watches.values()):
            on_position(fix)

    def _emit_error(self, kind: LocationErrorKind, message: str | None = None) -> None:
        for _, on_error, _ in list(self._watches.values()):
            on_error(kind, message)

    async def close(self) -> None:
        self._watches.clear()
