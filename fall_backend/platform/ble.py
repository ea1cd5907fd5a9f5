from __future__ import annotations

import asyncio
import logging
import os
import struct

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from fall_backend.core.capabilities import MotionAccess, MotionCapability
from fall_backend.core.motion import SensorSample, now_ms

logger = logging.getLogger(__name__)

# Wearable IMU: notify characteristic carrying six little-endian float32
# (ax, ay, az in m/s², alpha, beta, gamma in deg/s)
BLE_IMU_ADDRESS: str = os.getenv("BLE_IMU_ADDRESS", "")
BLE_IMU_NAME: str = os.getenv("BLE_IMU_NAME", "FALL_IMU")
BLE_IMU_CHARACTERISTIC: str = os.getenv(
    "BLE_IMU_CHARACTERISTIC", "6e400003-b5a3-f393-e0a9-e50e24dcca9e"
)
BLE_CONNECT_TIMEOUT: float = float(os.getenv("BLE_CONNECT_TIMEOUT", "10"))

IMU_PACKET = struct.Struct("<6f")


def decode_imu_packet(data: bytes | bytearray, timestamp: int | None = None) -> SensorSample:
    """Unpack one notification payload into a SensorSample."""
    if len(data) < IMU_PACKET.size:
        raise ValueError(f"IMU packet too short: {len(data)} bytes, need {IMU_PACKET.size}")
    ax, ay, az, alpha, beta, gamma = IMU_PACKET.unpack_from(bytes(data))
    return SensorSample.from_channels(ax, ay, az, alpha, beta, gamma, timestamp=timestamp)


class BleMotionCapability(MotionCapability):
    """
    Motion samples from a BLE wearable. "Access" means the device was found,
    connected and notifications started; any BLE failure counts as denied.
    """

    def __init__(
        self,
        address: str = BLE_IMU_ADDRESS,
        name: str = BLE_IMU_NAME,
        characteristic: str = BLE_IMU_CHARACTERISTIC,
        timeout: float = BLE_CONNECT_TIMEOUT,
    ) -> None:
        super().__init__()
        self.address = address
        self.name = name
        self.characteristic = characteristic
        self.timeout = timeout
        self._client: BleakClient | None = None
        self.dropped_packets = 0

    async def request_motion_access(self) -> MotionAccess:
        try:
            target = self.address or await self._find_address()
            if not target:
                logger.warning("BLE IMU %s not found", self.name)
                return MotionAccess.DENIED

            self._client = BleakClient(target, timeout=self.timeout)
            await self._client.connect()
            await self._client.start_notify(self.characteristic, self._handle_notification)
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("BLE IMU unavailable: %s", exc)
            await self.close()
            return MotionAccess.DENIED

        logger.info("BLE IMU connected at %s", target)
        return MotionAccess.GRANTED

    async def _find_address(self) -> str | None:
        device = await BleakScanner.find_device_by_name(self.name, timeout=self.timeout)
        return device.address if device is not None else None

    def _handle_notification(self, _sender, data: bytearray) -> None:
        try:
            sample = decode_imu_packet(data, timestamp=now_ms())
        except ValueError as exc:
            self.dropped_packets += 1
            logger.debug("Dropped IMU packet: %s", exc)
            return
        self._emit(sample)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            if client.is_connected:
                await client.stop_notify(self.characteristic)
                await client.disconnect()
        except BleakError as exc:
            logger.debug("BLE disconnect failed: %s", exc)
