from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class Acceleration(BaseModel):
    x: float = 0.0                            # m/s², including gravity
    y: float = 0.0
    z: float = 0.0


class RotationRate(BaseModel):
    alpha: float = 0.0                        # deg/s
    beta: float = 0.0
    gamma: float = 0.0


class ClientHello(BaseModel):
    type: Literal["hello"] = "hello"
    motion_permission: Literal["granted", "denied", "unsupported"] = "granted"
    geolocation_supported: bool = True


class MotionMessage(BaseModel):
    type: Literal["motion"]
    acceleration: Acceleration = Field(default_factory=Acceleration)
    rotation_rate: RotationRate = Field(default_factory=RotationRate)
    timestamp: Optional[int] = None           # epoch ms; server clock when missing


class PositionMessage(BaseModel):
    type: Literal["position"]
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None          # metres


class PositionErrorMessage(BaseModel):
    type: Literal["position_error"]
    code: int                                 # 1 denied | 2 unavailable | 3 timeout


class RequestLocationMessage(BaseModel):
    type: Literal["request_location"]


class StopLocationMessage(BaseModel):
    type: Literal["stop_location"]


class ActionMessage(BaseModel):
    type: Literal["action"]
    action: Literal["ok", "emergency"]


class SimulateFallMessage(BaseModel):
    type: Literal["simulate_fall"]


ClientMessage = Annotated[
    Union[
        MotionMessage,
        PositionMessage,
        PositionErrorMessage,
        RequestLocationMessage,
        StopLocationMessage,
        ActionMessage,
        SimulateFallMessage,
    ],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
