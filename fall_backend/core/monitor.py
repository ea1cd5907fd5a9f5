from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import numpy as np

from fall_backend.core.capabilities import LocationCapability, MotionCapability
from fall_backend.core.classifier import FallClassifier, FallSignal, FallTrigger
from fall_backend.core.escalation import EscalationController
from fall_backend.core.geolocation import GeolocationProvider
from fall_backend.core.motion import MotionSampler, SensorSample
from fall_backend.core.recorder import EventRecorder, EventRecordError
from fall_backend.core.store import EventStore
from fall_backend.core.tasks import TaskScope

logger = logging.getLogger(__name__)

OVERLAY_OPEN_DELAY_S: float = 0.5


class FallMonitor:
    """
    One monitoring session for a user: sampler → classifier → recorder → escalation,
    with the geolocation watch feeding the recorder. Owns the overlay open flag.

    Usage:
        async with FallMonitor(user_id, store, motion, location, send) as monitor:
            ...  # feed platform messages to the capabilities
    """

    def __init__(
        self,
        user_id: str,
        store: EventStore,
        motion: MotionCapability,
        location: LocationCapability,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        classifier: FallClassifier | None = None,
        rng: np.random.Generator | None = None,
        overlay_delay: float = OVERLAY_OPEN_DELAY_S,
        **escalation_options: Any,
    ) -> None:
        self.user_id = user_id
        self.store = store
        self._send = send
        self.overlay_delay = overlay_delay
        self.classifier = classifier or FallClassifier()
        self.geolocation = GeolocationProvider(location)
        self.sampler = MotionSampler(motion, self._on_sample)
        self.recorder = EventRecorder(store, self.geolocation, rng=rng)
        self.escalation = EscalationController(
            store, user_id, send, on_close=self.close_overlay, **escalation_options
        )
        self.overlay_open = False
        self._overlay_pending = False
        self.current_event_id: str | None = None
        self.recorded_event_ids: list[str] = []
        self._scope = TaskScope("monitor")

    async def __aenter__(self) -> FallMonitor:
        await self._scope.__aenter__()
        await self.escalation.__aenter__()
        await self.geolocation.start()
        await self.send_location()
        await self.sampler.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.sampler.stop()
        self.geolocation.stop()
        await self.escalation.__aexit__(*exc_info)
        await self._scope.__aexit__(*exc_info)
        await self.sampler.capability.close()
        await self.geolocation.capability.close()
        logger.info("Monitor for %s torn down", self.user_id)

    # ── detection ──

    def _on_sample(self, sample: SensorSample) -> None:
        signal = self.classifier.classify(sample)
        if signal is not None:
            self._scope.spawn(self.handle_fall(signal), name="handle-fall")

    def trigger_simulated_fall(self) -> None:
        self._scope.spawn(self.simulate_fall(), name="simulate-fall")

    async def simulate_fall(self) -> str | None:
        """Manual trigger: same flow as a detection, cooldown untouched."""
        sample = self.sampler.latest or SensorSample.from_channels()
        signal = FallSignal(
            trigger=FallTrigger.MANUAL,
            magnitude=sample.acceleration_magnitude,
            timestamp=sample.timestamp,
            sample=sample,
        )
        return await self.handle_fall(signal)

    async def handle_fall(self, signal: FallSignal) -> str | None:
        await self._send({
            "type": "fall_detected",
            "trigger": signal.trigger.value,
            "magnitude": round(signal.magnitude, 2),
            "timestamp": signal.timestamp,
        })
        try:
            event_id = await self.recorder.record_fall(self.user_id, signal.sample)
        except EventRecordError as exc:
            await self._send({"type": "notice", "level": "error", "message": str(exc)})
            return None

        self.recorded_event_ids.append(event_id)
        if self.overlay_open or self._overlay_pending:
            logger.info("Overlay already open; event %s recorded without re-opening", event_id)
            return event_id

        # claimed before the delay so a second fall inside it cannot retarget
        self._overlay_pending = True
        self.current_event_id = event_id
        try:
            await asyncio.sleep(self.overlay_delay)
            await self.open_overlay(event_id)
        finally:
            self._overlay_pending = False
        return event_id

    # ── overlay ──

    async def open_overlay(self, event_id: str) -> None:
        self.overlay_open = True
        await self._send({"type": "overlay", "open": True, "event_id": event_id})
        await self.escalation.open(event_id)

    async def close_overlay(self) -> None:
        if not self.overlay_open:
            return
        self.overlay_open = False
        self.escalation.cancel()
        await self._send({"type": "overlay", "open": False, "event_id": self.current_event_id})

    async def confirm_ok(self) -> bool:
        if not self.overlay_open:
            return False
        return await self.escalation.confirm_ok()

    async def confirm_emergency(self) -> bool:
        if not self.overlay_open:
            return False
        return await self.escalation.confirm_emergency()

    # ── location ──

    async def restart_location(self) -> None:
        await self.geolocation.start()
        await self.send_location()

    async def stop_location(self) -> None:
        self.geolocation.stop()
        await self.send_location()

    async def send_location(self) -> None:
        payload = self.geolocation.position.to_dict()
        payload.update(type="location", is_watching=self.geolocation.is_watching)
        await self._send(payload)
