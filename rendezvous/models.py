"""Signaling message catalog shared by the relay server and the client.

Every frame is a JSON object with a ``type`` discriminator and camelCase keys.
SDP and ICE payloads are opaque: the server relays them without looking inside.
"""
import secrets
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SignalMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


# client -> server

class JoinRoom(SignalMessage):
    type: Literal["join-room"] = "join-room"
    room_id: str = Field(alias="roomId", min_length=1)


class LeaveRoom(SignalMessage):
    type: Literal["leave-room"] = "leave-room"


class OfferMessage(SignalMessage):
    type: Literal["offer"] = "offer"
    room_id: str = Field(alias="roomId", min_length=1)
    offer: Any


class AnswerMessage(SignalMessage):
    type: Literal["answer"] = "answer"
    room_id: str = Field(alias="roomId", min_length=1)
    answer: Any


class IceCandidateMessage(SignalMessage):
    type: Literal["ice-candidate"] = "ice-candidate"
    room_id: str = Field(alias="roomId", min_length=1)
    candidate: Any


ClientMessage = Annotated[
    Union[JoinRoom, LeaveRoom, OfferMessage, AnswerMessage, IceCandidateMessage],
    Field(discriminator="type"),
]
client_message = TypeAdapter(ClientMessage)


# server -> client

class Welcome(SignalMessage):
    """First frame on every connection: the id the server will stamp as ``from``."""

    type: Literal["welcome"] = "welcome"
    participant_id: str = Field(alias="participantId")


class PeerReady(SignalMessage):
    """Sent to the joiner only: you are the initiator, create the offer."""

    type: Literal["peer-ready"] = "peer-ready"
    room_id: str = Field(alias="roomId")


class UserJoined(SignalMessage):
    """Sent to existing members: a peer joined, wait for its offer."""

    type: Literal["user-joined"] = "user-joined"
    new_user_id: str = Field(alias="newUserId")


class PeerLeft(SignalMessage):
    type: Literal["peer-left"] = "peer-left"
    user_id: str = Field(alias="userId")


class RoomFull(SignalMessage):
    type: Literal["room-full"] = "room-full"
    room_id: str = Field(alias="roomId")


class RelayedOffer(SignalMessage):
    type: Literal["offer"] = "offer"
    offer: Any
    sender: str = Field(alias="from")


class RelayedAnswer(SignalMessage):
    type: Literal["answer"] = "answer"
    answer: Any
    sender: str = Field(alias="from")


class RelayedIceCandidate(SignalMessage):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any
    sender: str = Field(alias="from")


ServerMessage = Annotated[
    Union[
        Welcome,
        PeerReady,
        UserJoined,
        PeerLeft,
        RoomFull,
        RelayedOffer,
        RelayedAnswer,
        RelayedIceCandidate,
    ],
    Field(discriminator="type"),
]
server_message = TypeAdapter(ServerMessage)


RELAYED = {
    "offer": (RelayedOffer, "offer"),
    "answer": (RelayedAnswer, "answer"),
    "ice-candidate": (RelayedIceCandidate, "candidate"),
}


def relayed(message: Union[OfferMessage, AnswerMessage, IceCandidateMessage], sender: str) -> SignalMessage:
    """Build the outbound copy of a relayable message, stamped with ``sender``."""
    model, field = RELAYED[message.type]
    return model(**{field: getattr(message, field), "from": sender})


def new_room_id(nbytes: int = 16) -> str:
    """Return a URL-safe room id carrying ``nbytes`` of randomness."""
    return secrets.token_urlsafe(nbytes)
