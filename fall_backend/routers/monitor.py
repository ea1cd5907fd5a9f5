"""
Monitor router: one WebSocket session per signed-in phone.

Endpoint:
  WS /monitor/ws/{user_id}

The page opens the socket, sends a `hello` with its permission state, then
forwards devicemotion readings, watchPosition results and overlay button
presses. The server answers with location, fall, overlay, escalation and
notice messages.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from fall_backend.core.capabilities import MotionCapability
from fall_backend.core.monitor import FallMonitor
from fall_backend.core.motion import SensorSample
from fall_backend.platform.browser import BrowserLocationCapability, BrowserMotionCapability
from fall_backend.schemas.sensor_payload import (
    ActionMessage,
    ClientHello,
    MotionMessage,
    PositionErrorMessage,
    PositionMessage,
    RequestLocationMessage,
    SimulateFallMessage,
    StopLocationMessage,
    client_message_adapter,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitor"])

MOTION_SOURCE: str = os.getenv("MOTION_SOURCE", "browser").lower()   # browser | ble


def _motion_capability(hello: ClientHello) -> MotionCapability:
    if MOTION_SOURCE == "ble":
        from fall_backend.platform.ble import BleMotionCapability  # lazy: bleak needs a BT stack

        return BleMotionCapability()
    return BrowserMotionCapability(permission=hello.motion_permission)


@router.websocket("/monitor/ws/{user_id}")
async def monitor_socket(websocket: WebSocket, user_id: str) -> None:
    await websocket.accept()

    async def send(message: dict[str, Any]) -> None:
        if websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Dropped message to %s: %s", user_id, exc)

    try:
        hello = ClientHello.model_validate_json(await websocket.receive_text())
    except ValidationError as exc:
        await send({"type": "notice", "level": "error", "message": f"Invalid hello: {exc.errors()[0]['msg']}"})
        await websocket.close(code=1003)
        return
    except WebSocketDisconnect:
        return

    motion = _motion_capability(hello)
    location = BrowserLocationCapability(supported=hello.geolocation_supported)
    store = websocket.app.state.store
    options: dict[str, Any] = dict(getattr(websocket.app.state, "monitor_options", {}))

    logger.info("Monitor session opened for %s", user_id)
    monitor = FallMonitor(user_id, store, motion, location, send, **options)
    try:
        async with monitor:
            await send({
                "type": "ready",
                "motion_active": monitor.sampler.is_active,
                "location": monitor.geolocation.position.to_dict(),
            })
            while True:
                raw = await websocket.receive_text()
                try:
                    message = client_message_adapter.validate_json(raw)
                except ValidationError as exc:
                    await send({"type": "notice", "level": "error", "message": f"Invalid message: {exc.errors()[0]['msg']}"})
                    continue
                await _dispatch(monitor, motion, location, message)
    except WebSocketDisconnect:
        logger.info("Monitor session closed for %s", user_id)


async def _dispatch(
    monitor: FallMonitor,
    motion: MotionCapability,
    location: BrowserLocationCapability,
    message: Any,
) -> None:
    if isinstance(message, MotionMessage):
        if isinstance(motion, BrowserMotionCapability):
            acc, rot = message.acceleration, message.rotation_rate
            motion.push(SensorSample.from_channels(
                acc.x, acc.y, acc.z, rot.alpha, rot.beta, rot.gamma, timestamp=message.timestamp,
            ))
    elif isinstance(message, PositionMessage):
        location.push_position(message.latitude, message.longitude, message.accuracy)
        await monitor.send_location()
    elif isinstance(message, PositionErrorMessage):
        location.push_error(message.code)
        await monitor.send_location()
    elif isinstance(message, RequestLocationMessage):
        await monitor.restart_location()
    elif isinstance(message, StopLocationMessage):
        await monitor.stop_location()
    elif isinstance(message, ActionMessage):
        if message.action == "ok":
            await monitor.confirm_ok()
        else:
            await monitor.confirm_emergency()
    elif isinstance(message, SimulateFallMessage):
        monitor.trigger_simulated_fall()
