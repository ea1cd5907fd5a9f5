from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

from fall_backend.core.capabilities import MotionAccess, MotionCapability

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SensorSample:
    """One device-motion reading: acceleration incl. gravity (m/s²) + rotation rate (deg/s)."""

    acceleration: tuple[float, float, float]   # x, y, z
    rotation: tuple[float, float, float]       # alpha, beta, gamma
    timestamp: int                             # epoch ms

    @classmethod
    def from_channels(
        cls,
        ax: float = 0.0,
        ay: float = 0.0,
        az: float = 0.0,
        alpha: float = 0.0,
        beta: float = 0.0,
        gamma: float = 0.0,
        timestamp: int | None = None,
    ) -> SensorSample:
        return cls(
            acceleration=(float(ax), float(ay), float(az)),
            rotation=(float(alpha), float(beta), float(gamma)),
            timestamp=now_ms() if timestamp is None else int(timestamp),
        )

    @property
    def acceleration_magnitude(self) -> float:
        return float(np.linalg.norm(self.acceleration))

    @property
    def rotation_magnitude(self) -> float:
        return float(np.sum(np.abs(self.rotation)))

    def channels(self) -> dict[str, float]:
        """Six raw channels keyed by their persisted column names."""
        ax, ay, az = self.acceleration
        gx, gy, gz = self.rotation
        return {
            "accelerometer_x": ax,
            "accelerometer_y": ay,
            "accelerometer_z": az,
            "gyroscope_x": gx,
            "gyroscope_y": gy,
            "gyroscope_z": gz,
        }


class MotionSampler:
    """
    Requests motion access from a platform capability and forwards every sample,
    unthrottled and in arrival order, to a single listener.
    A denied or failing permission request leaves the sampler idle.
    """

    def __init__(
        self,
        capability: MotionCapability,
        on_sample: Callable[[SensorSample], None],
    ) -> None:
        self.capability = capability
        self._on_sample = on_sample
        self._subscribed = False
        self.latest: SensorSample | None = None
        self.access: MotionAccess | None = None

    @property
    def is_active(self) -> bool:
        return self._subscribed

    async def start(self) -> bool:
        if self._subscribed:
            return True
        try:
            self.access = await self.capability.request_motion_access()
        except Exception as exc:
            logger.warning("Motion permission request failed: %s", exc)
            self.access = MotionAccess.DENIED

        if self.access is not MotionAccess.GRANTED:
            logger.info("Motion access denied; automatic fall detection disabled")
            return False

        self.capability.subscribe(self._handle)
        self._subscribed = True
        logger.info("Motion sampling started")
        return True

    def stop(self) -> None:
        if self._subscribed:
            self.capability.unsubscribe(self._handle)
            self._subscribed = False

    def _handle(self, sample: SensorSample) -> None:
        self.latest = sample
        self._on_sample(sample)
