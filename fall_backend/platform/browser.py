"""
Browser adapters: the phone page forwards `devicemotion` and `watchPosition`
callbacks over the monitor WebSocket; these capabilities turn those messages
into samples and position fixes.
"""

from __future__ import annotations

import logging

from fall_backend.core.capabilities import (
    LocationAccess,
    LocationCapability,
    LocationErrorKind,
    MotionAccess,
    MotionCapability,
    PositionFix,
)
from fall_backend.core.motion import SensorSample

logger = logging.getLogger(__name__)

# W3C GeolocationPositionError codes
GEOLOCATION_ERROR_CODES: dict[int, LocationErrorKind] = {
    1: LocationErrorKind.PERMISSION_DENIED,
    2: LocationErrorKind.UNAVAILABLE,
    3: LocationErrorKind.TIMEOUT,
}

UNSUPPORTED_MESSAGE = "Geolocation is not supported by your browser"


class BrowserMotionCapability(MotionCapability):
    """
    `permission` is what the page reported in its hello message:
    "granted" (no prompt needed or prompt accepted), "denied" or "unsupported".
    """

    def __init__(self, permission: str = "granted") -> None:
        super().__init__()
        self.permission = permission

    async def request_motion_access(self) -> MotionAccess:
        if self.permission == "granted":
            return MotionAccess.GRANTED
        return MotionAccess.DENIED

    def push(self, sample: SensorSample) -> None:
        if self.permission != "granted":
            return
        self._emit(sample)


class BrowserLocationCapability(LocationCapability):
    def __init__(self, supported: bool = True) -> None:
        super().__init__()
        self.supported = supported

    async def request_location_access(self) -> LocationAccess:
        if not self.supported:
            return LocationAccess.failed(LocationErrorKind.UNAVAILABLE, UNSUPPORTED_MESSAGE)
        return LocationAccess.ok()

    def push_position(self, latitude: float, longitude: float, accuracy: float | None = None) -> None:
        self._emit_position(PositionFix(latitude=latitude, longitude=longitude, accuracy=accuracy))

    def push_error(self, code: int) -> None:
        kind = GEOLOCATION_ERROR_CODES.get(code, LocationErrorKind.UNAVAILABLE)
        if code not in GEOLOCATION_ERROR_CODES:
            logger.debug("Unknown geolocation error code %s", code)
        self._emit_error(kind)
