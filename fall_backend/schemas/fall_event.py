from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class FallEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    is_emergency: bool = False
    resolved: bool = False
    resolved_at: Optional[datetime] = None


class SensorSnapshotRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    fall_event_id: Optional[str] = None
    accelerometer_x: float
    accelerometer_y: float
    accelerometer_z: float
    gyroscope_x: float              # rotation alpha, deg/s
    gyroscope_y: float              # rotation beta
    gyroscope_z: float              # rotation gamma


class NotificationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str                       # "emergency"
    title: str
    message: str
    related_event_id: Optional[str] = None
    created_at: Optional[datetime] = None


class FallStats(BaseModel):
    total_falls: int
    emergencies: int
    false_alarms: int               # resolved and not escalated
    last_activity: Optional[datetime] = None
