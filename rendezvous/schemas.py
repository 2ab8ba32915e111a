from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class IceServer(BaseModel):
    urls: str
    username: Optional[str] = None
    credential: Optional[str] = None


class RTCConfig(BaseModel):
    ice_servers: list[IceServer] = Field(serialization_alias="iceServers")


class RoomCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", description="Random room identifier")


class RoomInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")
    members: int = Field(ge=0, description="Number of connected participants")
    capacity: int
