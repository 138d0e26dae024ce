import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosed

from ..schemas.stomp_schemas import StompFrame
from ..services.order_collection import OrderCollection
from ..services.stomp_frames import decode_frame, encode_frame
from ..services.transport import StompOrderTransport

CONNECTED = encode_frame(StompFrame("CONNECTED", {"version": "1.2", "heart-beat": "0,0"}))


class FakeWebSocket:
    """In-memory websocket; frames queued with ``push`` are received in order"""

    def __init__(self, handshake=CONNECTED):
        self.sent = []
        self.closed = False
        self.url = None
        self._incoming: asyncio.Queue = asyncio.Queue()
        if handshake is not None:
            self._incoming.put_nowait(handshake)

    def push(self, data):
        self._incoming.put_nowait(data)

    def push_order(self, order_payload, subscription="sub-0"):
        body = json.dumps(order_payload)
        self.push(
            encode_frame(
                StompFrame(
                    "MESSAGE",
                    {"destination": "/topic/orders", "subscription": subscription, "message-id": "1"},
                    body,
                )
            )
        )

    def drop(self):
        """Simulate the server going away"""
        self.push(ConnectionClosed(None, None))

    def sent_frames(self):
        return [decode_frame(data) for data in self.sent]

    async def send(self, data):
        if self.closed:
            raise ConnectionClosed(None, None)
        self.sent.append(data)

    async def recv(self):
        item = await self._incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(ConnectionClosed(None, None))


@pytest.fixture
def fake_socket():
    return FakeWebSocket()


@pytest.fixture
def connector(fake_socket):
    calls = []

    async def connect(url, **kwargs):
        calls.append(url)
        fake_socket.url = url
        return fake_socket

    connect.calls = calls
    return connect


@pytest.fixture
def transport(connector):
    return StompOrderTransport(
        "ws://pos.test/ws/websocket", token="test-token", connect_timeout=1, connector=connector
    )


@pytest.fixture
def collection():
    return OrderCollection()
