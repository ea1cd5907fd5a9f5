from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from fall_backend.core.motion import SensorSample

logger = logging.getLogger(__name__)

# Tunable thresholds
FALL_ACCEL_THRESHOLD: float = 25.0      # m/s²
FALL_ROTATION_THRESHOLD: float = 300.0  # deg/s
FALL_COOLDOWN_MS: int = 10_000


class FallTrigger(str, Enum):
    ACCELERATION = "acceleration"
    ROTATION = "rotation"
    MANUAL = "manual"


@dataclass(frozen=True)
class FallSignal:
    trigger: FallTrigger
    magnitude: float
    timestamp: int
    sample: SensorSample


class FallClassifier:
    """
    Threshold classifier over single motion samples.
    Emits at most one FallSignal per cooldown window, measured from the previous
    accepted signal. The acceleration check short-circuits the rotation check.
    """

    def __init__(
        self,
        accel_threshold: float = FALL_ACCEL_THRESHOLD,
        rotation_threshold: float = FALL_ROTATION_THRESHOLD,
        cooldown_ms: int = FALL_COOLDOWN_MS,
    ) -> None:
        self.accel_threshold = accel_threshold
        self.rotation_threshold = rotation_threshold
        self.cooldown_ms = cooldown_ms
        self._last_fall_ms: int | None = None

    @property
    def last_fall_timestamp(self) -> int | None:
        return self._last_fall_ms

    def cooled_down(self, now: int) -> bool:
        return self._last_fall_ms is None or now - self._last_fall_ms >= self.cooldown_ms

    def classify(self, sample: SensorSample, now: int | None = None) -> FallSignal | None:
        """Return a FallSignal if this sample crosses a threshold outside the cooldown."""
        now = sample.timestamp if now is None else now

        accel = sample.acceleration_magnitude
        if accel > self.accel_threshold:
            if self.cooled_down(now):
                return self._accept(FallTrigger.ACCELERATION, accel, now, sample)
            return None

        rotation = sample.rotation_magnitude
        if rotation > self.rotation_threshold and self.cooled_down(now):
            return self._accept(FallTrigger.ROTATION, rotation, now, sample)

        return None

    def reset(self) -> None:
        self._last_fall_ms = None

    def _accept(
        self, trigger: FallTrigger, magnitude: float, now: int, sample: SensorSample
    ) -> FallSignal:
        self._last_fall_ms = now
        logger.info("Fall signal: %s spike %.1f at %d", trigger.value, magnitude, now)
        return FallSignal(trigger=trigger, magnitude=magnitude, timestamp=now, sample=sample)
