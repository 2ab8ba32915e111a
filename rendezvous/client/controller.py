from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from rendezvous.client.engine import AiortcEngine, EngineFactory
from rendezvous.client.media import MediaCapture, PlayerCapture
from rendezvous.client.session import PeerSession, SessionState
from rendezvous.client.transport import TransportChannel
from rendezvous.config import settings
from rendezvous.exceptions import RendezvousError, TransportError
from rendezvous.models import (
    PeerLeft,
    PeerReady,
    RelayedAnswer,
    RelayedIceCandidate,
    RelayedOffer,
    RoomFull,
    UserJoined,
    Welcome,
    new_room_id,
    server_message,
)

logger = logging.getLogger(__name__)


class SessionController:
    """Entry point for one participant: create/join a room, then leave it.

    Owns the signaling transport and at most one open PeerSession, and routes
    every relay event to that session.
    """

    def __init__(
        self,
        signaling_url: Optional[str] = None,
        engine_factory: EngineFactory = AiortcEngine,
        media: Optional[MediaCapture] = None,
        ice_servers: Optional[list] = None,
        transport_factory: Callable[..., TransportChannel] = TransportChannel,
        on_track: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_peer_left: Optional[Callable[[str], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
    ):
        self.signaling_url = signaling_url or settings.SIGNALING_URL
        self.engine_factory = engine_factory
        self.media = media or PlayerCapture(settings.MEDIA_SOURCE, settings.MEDIA_FORMAT)
        self.ice_servers = settings.ice_servers() if ice_servers is None else ice_servers
        self.transport_factory = transport_factory
        self.on_track = on_track
        self.on_error = on_error
        self.on_peer_left = on_peer_left
        self.on_closed = on_closed

        self.participant_id: Optional[str] = None
        self.session: Optional[PeerSession] = None
        self.transport: Optional[TransportChannel] = None

    @property
    def state(self) -> SessionState:
        if self.session is None:
            return SessionState.IDLE
        return self.session.state

    async def create_room(self) -> str:
        """Join a freshly generated room and return its id for sharing."""
        room_id = new_room_id(settings.ROOM_ID_BYTES)
        await self.join_room(room_id)
        return room_id

    async def join_room(self, room_id: str) -> None:
        if self.session is not None and not self.session.closed:
            raise RendezvousError(f"Already in room {self.session.room_id}; leave it first")

        session = PeerSession(
            room_id,
            send=self._send,
            engine_factory=self.engine_factory,
            media=self.media,
            ice_servers=self.ice_servers,
            on_track=self.on_track,
            on_error=self.on_error,
        )
        self.session = session
        session.begin()
        logger.info(f"Connecting to signaling server: {self.signaling_url}")
        try:
            self.transport = self.transport_factory(
                self.signaling_url,
                on_connected=self._on_connected,
                on_message=self._on_message,
                on_closed=self._on_transport_closed,
            )
            await self.transport.start()
        except TransportError:
            self.transport = None
            await session.close()
            raise

    async def leave(self) -> None:
        if self.session is not None:
            await self.session.close()
        transport, self.transport = self.transport, None
        if transport is not None:
            await transport.close()

    async def _send(self, message: dict):
        if self.transport is None:
            raise TransportError("Not connected")
        await self.transport.send(message)

    async def _on_connected(self):
        session = self.session
        if session is None or session.closed:
            return
        if session.state is SessionState.CONNECTING:
            await session.on_transport_connected()
            return
        await session.rejoin()
        if session.closed:
            await self._session_lost()

    async def _on_transport_closed(self):
        logger.warning("Signaling channel lost for good; closing session")
        await self._session_lost()

    async def _session_lost(self):
        """Tear down after losing the room without the user asking to leave."""
        transport, self.transport = self.transport, None
        if self.session is not None:
            await self.session.close()
        if transport is not None:
            await transport.close()
        if self.on_closed:
            self.on_closed()

    async def _on_message(self, data: dict):
        session = self.session
        if session is None or session.closed:
            return
        try:
            message = server_message.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Ignoring unexpected signaling message: {e}")
            return

        if isinstance(message, Welcome):
            self.participant_id = message.participant_id
            logger.info(f"Signaling id: {self.participant_id}")
        elif isinstance(message, PeerReady):
            if message.room_id != session.room_id:
                logger.warning(f"Ignoring peer-ready for room {message.room_id}")
                return
            await session.on_peer_ready()
        elif isinstance(message, UserJoined):
            await session.on_user_joined(message.new_user_id)
        elif isinstance(message, RelayedOffer):
            await session.on_offer(message.offer, message.sender)
        elif isinstance(message, RelayedAnswer):
            await session.on_answer(message.answer, message.sender)
        elif isinstance(message, RelayedIceCandidate):
            await session.on_ice_candidate(message.candidate, message.sender)
        elif isinstance(message, PeerLeft):
            logger.info(f"Peer {message.user_id} left room {session.room_id}")
            if self.on_peer_left:
                self.on_peer_left(message.user_id)
        elif isinstance(message, RoomFull):
            logger.error(f"Room {message.room_id} is full")
            if self.on_error:
                self.on_error(RendezvousError(f"Room {message.room_id} is full"))
            await self._session_lost()
