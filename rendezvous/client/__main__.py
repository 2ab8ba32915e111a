"""Headless peer: ``python -m rendezvous.client [ROOM_ID]``.

Without a room id a new room is created and its id printed for the other
side. Remote media is drained into a MediaBlackhole; local media comes from
MEDIA_SOURCE / MEDIA_FORMAT.
"""
import asyncio
import logging
import sys

from aiortc.contrib.media import MediaBlackhole

from rendezvous.client.controller import SessionController
from rendezvous.config import settings
from rendezvous.exceptions import TransportError


async def main(room_id=None):
    sink = MediaBlackhole()
    closed = asyncio.Event()

    def on_track(track):
        sink.addTrack(track)
        asyncio.ensure_future(sink.start())

    def on_error(error):
        print(f"[rendezvous] {error}", file=sys.stderr)

    controller = SessionController(
        on_track=on_track,
        on_error=on_error,
        on_peer_left=lambda _: closed.set(),
        on_closed=closed.set,
    )
    try:
        if room_id:
            await controller.join_room(room_id)
        else:
            room_id = await controller.create_room()
    except TransportError as e:
        print(f"[rendezvous] could not reach {controller.signaling_url}: {e}", file=sys.stderr)
        return 1

    print(f"Room: {room_id}")
    try:
        await closed.wait()
    finally:
        await controller.leave()
        await sink.stop()
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    try:
        sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None)))
    except KeyboardInterrupt:
        pass
