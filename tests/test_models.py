"""Tests for the signaling message catalog."""

import pytest
from pydantic import ValidationError

from rendezvous.models import (
    IceCandidateMessage,
    JoinRoom,
    OfferMessage,
    PeerReady,
    RelayedOffer,
    UserJoined,
    client_message,
    new_room_id,
    relayed,
    server_message,
)


def test_client_messages_use_camel_case_keys():
    assert JoinRoom(room_id="R1").to_wire() == {"type": "join-room", "roomId": "R1"}
    message = client_message.validate_python({"type": "join-room", "roomId": "R1"})
    assert isinstance(message, JoinRoom)
    assert message.room_id == "R1"


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "join-room"},
        {"type": "join-room", "roomId": ""},
        {"type": "offer", "offer": {"sdp": "x"}},
        {"type": "ice-candidate", "candidate": {}},
        {"type": "peer-ready", "roomId": "R1"},
        {"roomId": "R1"},
    ],
)
def test_invalid_client_messages_are_rejected(payload):
    with pytest.raises(ValidationError):
        client_message.validate_python(payload)


def test_relayed_copy_is_stamped_with_sender():
    offer = OfferMessage(room_id="R1", offer={"type": "offer", "sdp": "v=0"})

    out = relayed(offer, "abc")

    assert isinstance(out, RelayedOffer)
    assert out.to_wire() == {"type": "offer", "offer": {"type": "offer", "sdp": "v=0"}, "from": "abc"}


def test_relayed_candidate_keeps_payload_opaque():
    candidate = {"candidate": "candidate:1 1 udp 1 10.0.0.1 5000 typ host", "extra": [1, 2]}

    out = relayed(IceCandidateMessage(room_id="R1", candidate=candidate), "abc")

    assert out.to_wire()["candidate"] == candidate


def test_server_messages_parse_by_type():
    assert isinstance(server_message.validate_python({"type": "peer-ready", "roomId": "R1"}), PeerReady)
    joined = server_message.validate_python({"type": "user-joined", "newUserId": "b"})
    assert isinstance(joined, UserJoined)
    assert joined.new_user_id == "b"
    offer = server_message.validate_python({"type": "offer", "offer": {"sdp": "x"}, "from": "b"})
    assert offer.sender == "b"


def test_new_room_id_is_random():
    ids = {new_room_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(i) >= 16 for i in ids)
