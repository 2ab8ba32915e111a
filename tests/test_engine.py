"""Tests for the aiortc-backed engine and media adapters."""

import pytest

from rendezvous.client.engine import AiortcEngine
from rendezvous.client.media import PlayerCapture
from rendezvous.exceptions import MediaError, NegotiationError


async def test_offer_without_tracks_is_receive_only():
    engine = AiortcEngine([{"urls": "stun:stun.l.google.com:19302"}])
    try:
        offer = await engine.create_offer()
    finally:
        await engine.close()

    assert offer["type"] == "offer"
    assert "m=audio" in offer["sdp"]
    assert "m=video" in offer["sdp"]
    assert "a=recvonly" in offer["sdp"]
    assert "a=sendrecv" not in offer["sdp"]


async def test_local_description_is_none_before_negotiation():
    engine = AiortcEngine([])
    try:
        assert engine.local_description is None
    finally:
        await engine.close()


async def test_malformed_remote_description_raises_negotiation_error():
    engine = AiortcEngine([])
    try:
        with pytest.raises(NegotiationError):
            await engine.set_remote_description({"type": "offer"})
    finally:
        await engine.close()


async def test_end_of_candidates_is_ignored():
    engine = AiortcEngine([])
    try:
        await engine.add_ice_candidate({"candidate": "", "sdpMid": "0", "sdpMLineIndex": 0})
    finally:
        await engine.close()


async def test_capture_without_source_raises_media_error():
    with pytest.raises(MediaError):
        await PlayerCapture(None).acquire_local_stream()


async def test_capture_with_missing_file_raises_media_error(tmp_path):
    with pytest.raises(MediaError):
        await PlayerCapture(str(tmp_path / "missing.mp4")).acquire_local_stream()
