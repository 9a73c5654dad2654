"""
Pydantic models for the room WebSocket protocol.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventFrame(BaseModel):
    """Envelope for every frame in either direction."""
    event: str
    data: Any = None


class JoinRoomPayload(BaseModel):
    """Join by passcode (joiner) or by room key (creator or reload)."""
    model_config = ConfigDict(populate_by_name=True)

    passcode: Optional[str] = None
    room_key: Optional[str] = Field(default=None, alias="roomKey")
    name: Optional[str] = None

    @field_validator("passcode", mode="before")
    @classmethod
    def passcode_as_text(cls, value):
        # Clients sometimes send the passcode as a number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class SendMessagePayload(BaseModel):
    message: str = ""


class RoomCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    passcode: str
    room_key: str = Field(alias="roomKey")
    expire_at: int = Field(alias="expireAt")  # epoch ms


class JoinSuccess(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_key: str = Field(alias="roomKey")
    passcode: str
    expire_at: int = Field(alias="expireAt")


class NewMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    sender: str = Field(alias="from")
