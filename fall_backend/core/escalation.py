"""
Escalation after a detected fall.

`EscalationStateMachine` is the pure, guarded transition function:
    countdown ──tick×N──▶ emergency
    countdown ──ok──────▶ resolved
    countdown ──help────▶ emergency
Terminal states ignore every input until the next `open()`.

`EscalationController` drives it in time (1 s ticks, auto-close delays),
persists the outcome and reports state changes through an async `emit` callback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from fall_backend.core.store import EventStore, PersistenceError
from fall_backend.core.tasks import TaskScope

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS: int = 30
TICK_SECONDS: float = 1.0
RESOLVED_CLOSE_DELAY_S: float = 2.0
EMERGENCY_CLOSE_DELAY_S: float = 3.0

EMERGENCY_TITLE = "Emergency Alert Triggered"
SIMULATED_ALERT_MESSAGE = (
    "SMS alerts are simulated in demo mode and can be enabled in production "
    "with a paid SMS provider."
)
FALSE_ALARM_MESSAGE = "Marked as false alarm"


class EscalationStatus(str, Enum):
    COUNTDOWN = "countdown"
    RESOLVED = "resolved"
    EMERGENCY = "emergency"


class EscalationCause(str, Enum):
    USER_OK = "user_ok"
    USER_EMERGENCY = "user_emergency"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Transition:
    status: EscalationStatus
    cause: EscalationCause
    close_after: float


class EscalationStateMachine:
    def __init__(
        self,
        countdown_seconds: int = COUNTDOWN_SECONDS,
        resolved_close_delay: float = RESOLVED_CLOSE_DELAY_S,
        emergency_close_delay: float = EMERGENCY_CLOSE_DELAY_S,
    ) -> None:
        self.countdown_seconds = countdown_seconds
        self.resolved_close_delay = resolved_close_delay
        self.emergency_close_delay = emergency_close_delay
        self.status = EscalationStatus.COUNTDOWN
        self.remaining = countdown_seconds

    @property
    def is_terminal(self) -> bool:
        return self.status is not EscalationStatus.COUNTDOWN

    def open(self) -> None:
        """Reset to a fresh countdown, whatever the previous activation ended in."""
        self.status = EscalationStatus.COUNTDOWN
        self.remaining = self.countdown_seconds

    def tick(self) -> Transition | None:
        if self.is_terminal:
            return None
        self.remaining = max(self.remaining - 1, 0)
        if self.remaining == 0:
            return self._to_emergency(EscalationCause.TIMEOUT)
        return None

    def confirm_ok(self) -> Transition | None:
        if self.is_terminal:
            return None
        self.status = EscalationStatus.RESOLVED
        return Transition(self.status, EscalationCause.USER_OK, self.resolved_close_delay)

    def confirm_emergency(self) -> Transition | None:
        if self.is_terminal:
            return None
        return self._to_emergency(EscalationCause.USER_EMERGENCY)

    def _to_emergency(self, cause: EscalationCause) -> Transition:
        self.status = EscalationStatus.EMERGENCY
        return Transition(self.status, cause, self.emergency_close_delay)


Emit = Callable[[dict[str, Any]], Awaitable[None]]


class EscalationController:
    """
    Runs one escalation at a time for a user.

    Every timer belongs to the controller's TaskScope, so re-opening, closing
    and leaving `async with controller:` all cancel pending ticks and auto-close.
    Persistence is optimistic: the visible transition happens first and a failed
    write only sets `sync_failed`.
    """

    def __init__(
        self,
        store: EventStore,
        user_id: str,
        emit: Emit,
        on_close: Callable[[], Awaitable[None]],
        tick_seconds: float = TICK_SECONDS,
        countdown_seconds: int = COUNTDOWN_SECONDS,
        resolved_close_delay: float = RESOLVED_CLOSE_DELAY_S,
        emergency_close_delay: float = EMERGENCY_CLOSE_DELAY_S,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self._emit = emit
        self._on_close = on_close
        self.tick_seconds = tick_seconds
        self.machine = EscalationStateMachine(
            countdown_seconds, resolved_close_delay, emergency_close_delay
        )
        self.event_id: str | None = None
        self.sync_failed = False
        self.active = False
        self.ticks = 0
        self._scope = TaskScope("escalation")

    async def __aenter__(self) -> EscalationController:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.active = False
        await self._scope.__aexit__(*exc_info)

    @property
    def status(self) -> EscalationStatus:
        return self.machine.status

    @property
    def countdown(self) -> int:
        return self.machine.remaining

    def snapshot(self) -> dict[str, Any]:
        return {
            "type": "escalation",
            "event_id": self.event_id,
            "status": self.machine.status.value,
            "countdown": self.machine.remaining,
            "sync_failed": self.sync_failed,
        }

    async def open(self, event_id: str) -> None:
        self._scope.cancel_all()
        self.event_id = event_id
        self.sync_failed = False
        self.ticks = 0
        self.machine.open()
        self.active = True
        logger.info("Escalation opened for event %s (%ds)", event_id, self.machine.remaining)
        await self._emit(self.snapshot())
        self._scope.spawn(self._run_countdown(), name="countdown")

    def cancel(self) -> None:
        self._scope.cancel_all()
        self.active = False

    async def confirm_ok(self) -> bool:
        transition = self.machine.confirm_ok()
        if transition is None:
            return False
        await self._apply(transition)
        return True

    async def confirm_emergency(self) -> bool:
        transition = self.machine.confirm_emergency()
        if transition is None:
            return False
        await self._apply(transition)
        return True

    async def _run_countdown(self) -> None:
        while not self.machine.is_terminal:
            await asyncio.sleep(self.tick_seconds)
            if self.machine.is_terminal:
                return
            self.ticks += 1
            transition = self.machine.tick()
            if transition is not None:
                await self._apply(transition)
                return
            await self._emit(self.snapshot())

    async def _apply(self, transition: Transition) -> None:
        # stop ticking before any await so nothing else can advance the machine
        self._scope.cancel_all()
        event_id = self.event_id
        logger.info("Escalation %s -> %s (%s)", event_id, transition.status.value, transition.cause.value)
        await self._emit(self.snapshot())

        try:
            if transition.status is EscalationStatus.RESOLVED:
                await self.store.update_fall_event(
                    event_id,
                    is_emergency=False,
                    resolved=True,
                    resolved_at=datetime.now(timezone.utc),
                )
                await self._notice("success", FALSE_ALARM_MESSAGE)
            else:
                await self.store.update_fall_event(event_id, is_emergency=True)
                await self.store.create_notification(
                    user_id=self.user_id,
                    type="emergency",
                    title=EMERGENCY_TITLE,
                    message=SIMULATED_ALERT_MESSAGE,
                    related_event_id=event_id,
                )
                await self._notice("warning", SIMULATED_ALERT_MESSAGE)
        except PersistenceError as exc:
            logger.error("Escalation outcome for %s not saved: %s", event_id, exc)
            if self.event_id != event_id:
                return
            self.sync_failed = True
            await self._emit(self.snapshot())
            await self._notice("error", f"Could not save {transition.status.value} outcome")

        if self.event_id != event_id:
            logger.info("Escalation re-opened while saving %s; auto-close skipped", event_id)
            return
        self._scope.call_later(transition.close_after, self._close, name="auto-close")

    async def _close(self) -> None:
        self.active = False
        await self._on_close()

    async def _notice(self, level: str, message: str) -> None:
        await self._emit({"type": "notice", "level": level, "message": message})
