"""Peer-connection engine seen by the session, plus the aiortc implementation.

Descriptions and candidates cross this boundary as browser-style dicts
(``{"type", "sdp"}`` and ``{"candidate", "sdpMid", "sdpMLineIndex"}``) so the
signaling layer never needs engine types.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from rendezvous.exceptions import NegotiationError

logger = logging.getLogger(__name__)


class PeerConnectionEngine(Protocol):
    on_ice_candidate: Optional[Callable[[dict], None]]
    on_track: Optional[Callable[[Any], None]]
    on_connection_state_change: Optional[Callable[[str], None]]

    @property
    def local_description(self) -> Optional[dict]: ...

    async def create_offer(self) -> dict: ...

    async def create_answer(self) -> dict: ...

    async def set_local_description(self, description: dict) -> None: ...

    async def set_remote_description(self, description: dict) -> None: ...

    async def add_ice_candidate(self, candidate: dict) -> None: ...

    def add_track(self, track) -> Any: ...

    async def close(self) -> None: ...


EngineFactory = Callable[[list], PeerConnectionEngine]


def _description(desc: Optional[RTCSessionDescription]) -> Optional[dict]:
    if desc is None:
        return None
    return {"type": desc.type, "sdp": desc.sdp}


class AiortcEngine:
    """PeerConnectionEngine backed by aiortc's RTCPeerConnection.

    aiortc gathers every candidate inside setLocalDescription and writes them
    into the SDP, so ``on_ice_candidate`` is never fired: callers should send
    ``local_description`` rather than the description they created.
    """

    def __init__(self, ice_servers: list):
        config = RTCConfiguration(iceServers=[
            RTCIceServer(
                urls=server["urls"],
                username=server.get("username"),
                credential=server.get("credential"),
            )
            for server in ice_servers
        ])
        self.pc = RTCPeerConnection(config)
        self.on_ice_candidate = None
        self.on_track = None
        self.on_connection_state_change = None

        @self.pc.on("track")
        def on_track(track):
            logger.info(f"Received remote track: {track.kind}")
            if self.on_track:
                self.on_track(track)

        @self.pc.on("connectionstatechange")
        def on_connection_state_change():
            logger.info(f"Connection state: {self.pc.connectionState}")
            if self.on_connection_state_change:
                self.on_connection_state_change(self.pc.connectionState)

        @self.pc.on("iceconnectionstatechange")
        def on_ice_connection_state_change():
            logger.debug(f"ICE connection state: {self.pc.iceConnectionState}")

    @property
    def local_description(self) -> Optional[dict]:
        return _description(self.pc.localDescription)

    async def create_offer(self) -> dict:
        # Receive audio and video even when there is nothing local to send
        kinds = {t.kind for t in self.pc.getTransceivers()}
        for kind in ("audio", "video"):
            if kind not in kinds:
                self.pc.addTransceiver(kind, direction="recvonly")
        try:
            return _description(await self.pc.createOffer())
        except Exception as e:
            raise NegotiationError(f"createOffer failed: {e}") from e

    async def create_answer(self) -> dict:
        try:
            return _description(await self.pc.createAnswer())
        except Exception as e:
            raise NegotiationError(f"createAnswer failed: {e}") from e

    async def set_local_description(self, description: dict) -> None:
        try:
            await self.pc.setLocalDescription(
                RTCSessionDescription(sdp=description["sdp"], type=description["type"])
            )
        except Exception as e:
            raise NegotiationError(f"setLocalDescription failed: {e}") from e

    async def set_remote_description(self, description: dict) -> None:
        try:
            await self.pc.setRemoteDescription(
                RTCSessionDescription(sdp=description["sdp"], type=description["type"])
            )
        except Exception as e:
            raise NegotiationError(f"setRemoteDescription failed: {e}") from e

    async def add_ice_candidate(self, candidate: dict) -> None:
        line = candidate.get("candidate") or ""
        if not line:
            # end-of-candidates marker
            return
        try:
            ice = candidate_from_sdp(line.split(":", 1)[1] if line.startswith("candidate:") else line)
            ice.sdpMid = candidate.get("sdpMid")
            ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await self.pc.addIceCandidate(ice)
        except Exception as e:
            raise NegotiationError(f"addIceCandidate failed: {e}") from e

    def add_track(self, track):
        return self.pc.addTrack(track)

    async def close(self) -> None:
        await self.pc.close()
