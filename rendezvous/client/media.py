from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional, Protocol, Tuple

from aiortc.contrib.media import MediaPlayer

from rendezvous.exceptions import MediaError

logger = logging.getLogger(__name__)


class MediaCapture(Protocol):
    async def acquire_local_stream(self) -> Tuple[Optional[Any], Optional[Any]]:
        """Return ``(audio, video)`` tracks; either may be None."""
        ...

    def release(self, tracks: Iterable[Any]) -> None: ...


def _stop(tracks: Iterable[Any]) -> None:
    for track in tracks:
        if track is not None:
            track.stop()


class PlayerCapture:
    """Local media from a file, device or URL through aiortc's MediaPlayer.

    ``source`` and ``format`` are passed straight to MediaPlayer, e.g.
    ``("/dev/video0", "v4l2")`` or ``("default:none", "avfoundation")``.
    """

    def __init__(self, source: Optional[str], format: Optional[str] = None, options: Optional[dict] = None):
        self.source = source
        self.format = format
        self.options = options or {}

    def _open(self) -> MediaPlayer:
        return MediaPlayer(self.source, format=self.format, options=self.options)

    async def acquire_local_stream(self):
        if not self.source:
            raise MediaError("No media source configured")

        # Opening a device blocks, so it runs in a worker thread
        try:
            player = await asyncio.get_running_loop().run_in_executor(None, self._open)
        except Exception as e:
            raise MediaError(f"Could not open media source {self.source}: {e}") from e

        logger.info(f"Local media started from {self.source}")
        return player.audio, player.video

    def release(self, tracks):
        _stop(tracks)

