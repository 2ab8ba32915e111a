"""Tests for the reconnecting TransportChannel."""

from __future__ import annotations

import asyncio
import json

import pytest
from fakes import wait_until

from rendezvous.client.transport import TransportChannel
from rendezvous.exceptions import TransportError


class FakeSocket:
    def __init__(self, frames=()):
        self.queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.queue.put_nowait(frame)
        self.sent: list[str] = []
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self.closed = True
        self.queue.put_nowait(None)

    def drop(self):
        self.queue.put_nowait(None)


class Connector:
    """Hands out prepared sockets; ``None`` entries refuse the connection."""

    def __init__(self, *sockets):
        self.sockets = list(sockets)
        self.urls: list[str] = []

    async def __call__(self, url):
        self.urls.append(url)
        if not self.sockets:
            raise OSError("connection refused")
        sock = self.sockets.pop(0)
        if sock is None:
            raise OSError("connection refused")
        return sock


class Recorder:
    def __init__(self):
        self.connected = 0
        self.messages: list[dict] = []
        self.closed = 0

    async def on_connected(self):
        self.connected += 1

    async def on_message(self, message):
        self.messages.append(message)

    async def on_closed(self):
        self.closed += 1


def make_channel(connector, recorder, attempts=2):
    return TransportChannel(
        "ws://signal.test/ws",
        on_connected=recorder.on_connected,
        on_message=recorder.on_message,
        on_closed=recorder.on_closed,
        reconnect_attempts=attempts,
        reconnect_delay=0,
        connect=connector,
    )


def test_rejects_non_websocket_url() -> None:
    with pytest.raises(TransportError):
        TransportChannel("http://signal.test", on_connected=None, on_message=None)


async def test_connect_failure_is_fatal() -> None:
    recorder = Recorder()
    channel = make_channel(Connector(None), recorder)

    with pytest.raises(TransportError):
        await channel.start()

    assert recorder.connected == 0
    assert not channel.connected


async def test_messages_are_delivered_in_order() -> None:
    sock = FakeSocket([json.dumps({"type": "welcome", "participantId": "p1"}), "not json", json.dumps({"n": 2})])
    recorder = Recorder()
    channel = make_channel(Connector(sock), recorder)

    await channel.start()
    await wait_until(lambda: len(recorder.messages) == 2)

    assert recorder.connected == 1
    assert recorder.messages == [{"type": "welcome", "participantId": "p1"}, {"n": 2}]

    await channel.send({"type": "join-room", "roomId": "R1"})
    assert json.loads(sock.sent[0]) == {"type": "join-room", "roomId": "R1"}

    await channel.close()
    assert sock.closed
    assert recorder.closed == 0


async def test_handler_error_does_not_stop_receiving() -> None:
    sock = FakeSocket([json.dumps({"n": 1}), json.dumps({"n": 2})])
    recorder = Recorder()
    received: list[dict] = []

    async def on_message(message):
        received.append(message)
        if message["n"] == 1:
            raise RuntimeError("handler blew up")

    channel = TransportChannel(
        "ws://signal.test/ws",
        on_connected=recorder.on_connected,
        on_message=on_message,
        on_closed=recorder.on_closed,
        reconnect_attempts=1,
        reconnect_delay=0,
        connect=Connector(sock),
    )

    await channel.start()
    await wait_until(lambda: len(received) == 2)

    assert received == [{"n": 1}, {"n": 2}]
    assert channel.connected

    sock.drop()
    await wait_until(lambda: recorder.closed == 1)
    assert not channel.connected


async def test_reconnects_after_drop() -> None:
    first, second = FakeSocket(), FakeSocket()
    recorder = Recorder()
    connector = Connector(first, None, second)
    channel = make_channel(connector, recorder, attempts=3)

    await channel.start()
    first.drop()
    await wait_until(lambda: recorder.connected == 2)

    assert len(connector.urls) == 3
    await channel.send({"type": "leave-room"})
    assert second.sent == [json.dumps({"type": "leave-room"})]
    assert recorder.closed == 0

    await channel.close()


async def test_gives_up_and_reports_closed_once() -> None:
    sock = FakeSocket()
    recorder = Recorder()
    channel = make_channel(Connector(sock), recorder, attempts=2)

    await channel.start()
    sock.drop()
    await wait_until(lambda: recorder.closed == 1)

    assert recorder.connected == 1
    with pytest.raises(TransportError):
        await channel.send({"type": "leave-room"})

    await channel.close()
    assert recorder.closed == 1


async def test_send_after_close_raises() -> None:
    recorder = Recorder()
    channel = make_channel(Connector(FakeSocket()), recorder)
    await channel.start()

    await channel.close()
    await channel.close()

    with pytest.raises(TransportError):
        await channel.send({"type": "leave-room"})
