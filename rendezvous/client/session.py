"""Client-side negotiation state machine for one room.

A PeerSession owns everything that is only valid while the session is open:
the engine, the attached senders, the early ICE candidate queue and the
in-flight media acquisition. Its ``state`` only ever moves forward, and every
coroutine re-checks ``closed`` after each await before acting on a result.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from rendezvous.client.engine import EngineFactory, PeerConnectionEngine
from rendezvous.client.media import MediaCapture
from rendezvous.exceptions import MediaError, TransportError
from rendezvous.models import (
    AnswerMessage,
    IceCandidateMessage,
    JoinRoom,
    OfferMessage,
    SignalMessage,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    JOINED = "joined"
    ROLE_ASSIGNED = "role_assigned"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


_ORDER = list(SessionState)


class Role(str, Enum):
    UNASSIGNED = "unassigned"
    OFFERER = "offerer"
    ANSWERER = "answerer"


class PeerSession:
    def __init__(
        self,
        room_id: str,
        send: Callable[[dict], Awaitable[None]],
        engine_factory: EngineFactory,
        media: MediaCapture,
        ice_servers: list,
        on_track: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.room_id = room_id
        self.state = SessionState.IDLE
        self.role = Role.UNASSIGNED
        self._send = send
        self._engine_factory = engine_factory
        self._media = media
        self._ice_servers = ice_servers
        self._on_track = on_track
        self._on_error = on_error

        self._engine: Optional[PeerConnectionEngine] = None
        self._local_tracks: List[Any] = []
        self._senders: Dict[str, Any] = {}
        self._pending_candidates: List[dict] = []
        self._remote_description_set = False
        self._offer_outstanding = False
        self._offer_in_flight = False
        self._media_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def offer_outstanding(self) -> bool:
        return self._offer_outstanding

    @property
    def remote_description_set(self) -> bool:
        return self._remote_description_set

    @property
    def pending_candidates(self) -> List[dict]:
        return list(self._pending_candidates)

    @property
    def senders(self) -> Dict[str, Any]:
        return dict(self._senders)

    def _advance(self, state: SessionState) -> bool:
        if _ORDER.index(state) <= _ORDER.index(self.state):
            return False
        logger.info(f"Session {self.room_id}: {self.state.value} -> {state.value}")
        self.state = state
        return True

    async def _signal(self, message: SignalMessage):
        try:
            await self._send(message.to_wire())
        except TransportError as e:
            logger.warning(f"Could not send {message.type}: {e}")

    def _report(self, error: Exception):
        if self._on_error and not self.closed:
            self._on_error(error)

    # lifecycle

    def begin(self):
        """User asked to create or join the room; the transport is opening."""
        self._advance(SessionState.CONNECTING)

    async def on_transport_connected(self):
        if self.state is not SessionState.CONNECTING:
            return
        self._engine = self._engine_factory(self._ice_servers)
        self._engine.on_ice_candidate = self._on_local_candidate
        self._engine.on_track = self._on_remote_track
        self._engine.on_connection_state_change = self._on_connection_state
        self._media_task = asyncio.create_task(self._acquire_media())
        self._attach_tracks()
        self._advance(SessionState.JOINED)
        await self._signal(JoinRoom(room_id=self.room_id))

    async def rejoin(self):
        """Handle a transport reconnect under a new participant id.

        Membership is only restored while still ``joined``; once a role is
        assigned the peer has already been told we left, so the session closes.
        """
        if self.closed:
            return
        if self.state is SessionState.CONNECTING:
            await self.on_transport_connected()
            return
        if self.state is not SessionState.JOINED:
            logger.warning(f"Reconnected while {self.state.value}; membership of {self.room_id} is lost")
            await self.close()
            return
        logger.info(f"Rejoining room {self.room_id} after reconnect")
        await self._signal(JoinRoom(room_id=self.room_id))

    async def close(self):
        if self.closed:
            return
        self._advance(SessionState.CLOSED)
        self._offer_outstanding = False
        self._pending_candidates.clear()

        # media still being acquired releases its own tracks once it sees the session closed
        if self._local_tracks:
            self._media.release(self._local_tracks)
            self._local_tracks = []
        self._senders.clear()

        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                await engine.close()
            except Exception as e:
                logger.warning(f"Error closing peer connection: {e}")
        logger.info(f"Session for room {self.room_id} closed")

    # media

    async def _acquire_media(self):
        try:
            tracks = await self._media.acquire_local_stream()
        except MediaError as e:
            logger.error(f"Error accessing media devices: {e}")
            self._report(e)
            return
        except Exception as e:
            logger.error(f"Unexpected error acquiring media: {e}")
            self._report(MediaError(str(e)))
            return
        tracks = [t for t in tracks if t is not None]
        if self.closed:
            self._media.release(tracks)
            return
        for track in tracks:
            self.attach(track)

    async def _media_settled(self) -> bool:
        """Wait for in-flight media acquisition; False if the session closed meanwhile."""
        task = self._media_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return not self.closed

    def attach(self, track) -> bool:
        """Attach a local track; returns False when it already has a sender."""
        if self.closed:
            return False
        if track not in self._local_tracks:
            self._local_tracks.append(track)
        already = track.id in self._senders
        self._attach_tracks()
        return not already and track.id in self._senders

    def _attach_tracks(self) -> int:
        if self._engine is None or self.closed:
            return 0
        added = 0
        for track in self._local_tracks:
            if track.id in self._senders:
                continue
            try:
                self._senders[track.id] = self._engine.add_track(track)
            except Exception as e:
                logger.error(f"Failed to attach {track.kind} track: {e}")
                continue
            logger.info(f"Track added to peer connection: {track.kind}")
            added += 1
        return added

    # engine events

    def _on_local_candidate(self, candidate: dict):
        if self.closed:
            return
        asyncio.ensure_future(self._signal(IceCandidateMessage(room_id=self.room_id, candidate=candidate)))

    def _on_remote_track(self, track):
        if not self.closed and self._on_track:
            self._on_track(track)

    def _on_connection_state(self, state: str):
        if self.closed:
            return
        if state == "connected":
            self._advance(SessionState.CONNECTED)
        elif state in ("failed", "closed"):
            logger.warning(f"Peer connection {state} in room {self.room_id}")

    # relay events

    async def on_user_joined(self, user_id: str):
        if self.state is not SessionState.JOINED:
            logger.info(f"Ignoring user-joined from {user_id} in state {self.state.value}")
            return
        logger.info(f"New user {user_id} joined, waiting for their offer...")
        self.role = Role.ANSWERER
        self._advance(SessionState.ROLE_ASSIGNED)
        self._attach_tracks()

    async def on_peer_ready(self):
        if self.state is not SessionState.JOINED:
            logger.info(f"Ignoring peer-ready in state {self.state.value}")
            return
        self.role = Role.OFFERER
        self._advance(SessionState.ROLE_ASSIGNED)
        await self._make_offer()

    async def _make_offer(self):
        if self._offer_in_flight or self._offer_outstanding:
            logger.warning("An offer is already in flight")
            return
        self._offer_in_flight = True
        try:
            if not await self._media_settled():
                return
            self._attach_tracks()
            offer = await self._engine.create_offer()
            if self.closed:
                return
            await self._engine.set_local_description(offer)
            if self.closed:
                return
            self._offer_outstanding = True
            await self._signal(OfferMessage(room_id=self.room_id, offer=self._engine.local_description or offer))
            self._advance(SessionState.NEGOTIATING)
            logger.info("Offer created and sent")
        except Exception as e:
            logger.error(f"Error creating offer: {e}")
        finally:
            self._offer_in_flight = False

    async def on_offer(self, offer, sender: str):
        if self.closed:
            return
        if self.role is Role.OFFERER:
            logger.warning(f"Ignoring offer from {sender}: this side is the offerer")
            return
        if self.state is SessionState.JOINED:
            # offer overtook user-joined
            self.role = Role.ANSWERER
            self._advance(SessionState.ROLE_ASSIGNED)
        if self.state is not SessionState.ROLE_ASSIGNED:
            logger.warning(f"Ignoring offer from {sender} in state {self.state.value}")
            return

        logger.info(f"Received offer from {sender}")
        try:
            if not await self._media_settled():
                return
            self._attach_tracks()
            await self._engine.set_remote_description(offer)
            if self.closed:
                return
            self._advance(SessionState.NEGOTIATING)
            await self._remote_description_applied()
            answer = await self._engine.create_answer()
            if self.closed:
                return
            await self._engine.set_local_description(answer)
            if self.closed:
                return
            await self._signal(AnswerMessage(room_id=self.room_id, answer=self._engine.local_description or answer))
            logger.info(f"Answer sent to {sender}")
        except Exception as e:
            logger.error(f"Error handling offer: {e}")

    async def on_answer(self, answer, sender: str):
        if self.closed:
            return
        if not self._offer_outstanding:
            logger.warning(f"Ignoring answer from {sender}: no offer outstanding")
            return

        logger.info(f"Received answer from {sender}")
        try:
            await self._engine.set_remote_description(answer)
        except Exception as e:
            logger.error(f"Error handling answer: {e}")
            return
        if self.closed:
            return
        self._offer_outstanding = False
        await self._remote_description_applied()

    async def on_ice_candidate(self, candidate, sender: str):
        if self.closed:
            return
        if not candidate:
            return
        if self._engine is None or not self._remote_description_set:
            self._pending_candidates.append(candidate)
            logger.debug(f"Queued ICE candidate from {sender} ({len(self._pending_candidates)} pending)")
            return
        await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate):
        try:
            await self._engine.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning(f"Error adding ICE candidate: {e}")

    async def _remote_description_applied(self):
        self._remote_description_set = True
        while self._pending_candidates and not self.closed:
            await self._apply_candidate(self._pending_candidates.pop(0))
