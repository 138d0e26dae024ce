# restropos/modules/realtime/services/transport.py

"""
STOMP over websocket transport for the order event channel.

The order-service exposes a SockJS endpoint; its raw websocket path
(``/ws/websocket``) speaks plain STOMP frames, which is what this
transport uses.
"""

import asyncio
import itertools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from restropos.core.exceptions import TransportError

from ..schemas.stomp_schemas import StompFrame
from .stomp_frames import (
    connect_frame,
    decode_frame,
    disconnect_frame,
    encode_frame,
    error_detail,
    send_frame,
    subscribe_frame,
    unsubscribe_frame,
)

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]

_CONNECTION_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class StompOrderTransport:
    """One STOMP session on one websocket connection"""

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        connect_timeout: float = 10.0,
        connector: Optional[Connector] = None,
    ):
        self.url = url
        self.token = token
        self.connect_timeout = connect_timeout
        self._connector = connector or websockets.connect
        self._websocket = None
        self._subscription_ids = itertools.count()
        self._subscriptions: Dict[str, str] = {}
        self.server_version: Optional[str] = None
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def connect(self) -> None:
        """Open the websocket and complete the STOMP handshake"""
        async with self._connect_lock:
            if self._websocket is not None:
                return
            await self._open()

    async def _open(self) -> None:
        host = urlparse(self.url).hostname or "localhost"

        try:
            websocket = await asyncio.wait_for(
                self._connector(self.url, ping_interval=30, ping_timeout=10, close_timeout=10),
                timeout=self.connect_timeout,
            )
        except _CONNECTION_ERRORS as e:
            logger.error(f"Websocket connection to {self.url} failed: {e}")
            raise TransportError(f"Could not connect to order updates: {e}") from e

        self._websocket = websocket
        try:
            await self._send_frame(connect_frame(host, self.token))
            frame = await asyncio.wait_for(self._next_frame(), timeout=self.connect_timeout)
        except (TransportError, asyncio.TimeoutError) as e:
            await self._abort()
            if isinstance(e, TransportError):
                raise
            raise TransportError("STOMP handshake timed out") from e

        if frame.command == "ERROR":
            await self._abort()
            raise TransportError(f"STOMP connection refused: {error_detail(frame)}")
        if frame.command != "CONNECTED":
            await self._abort()
            raise TransportError(f"Unexpected STOMP frame during handshake: {frame.command}")

        self.server_version = frame.headers.get("version")
        logger.info(f"STOMP session established with {self.url} (version {self.server_version})")

    async def subscribe(self, destination: str) -> str:
        self._ensure_connected()
        subscription_id = f"sub-{next(self._subscription_ids)}"
        await self._send_frame(subscribe_frame(destination, subscription_id))
        self._subscriptions[subscription_id] = destination
        logger.debug(f"Subscribed {subscription_id} to {destination}")
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is None or self._websocket is None:
            return
        await self._send_frame(unsubscribe_frame(subscription_id))

    async def messages(self) -> AsyncIterator[StompFrame]:
        """
        Yield MESSAGE frames until the connection ends.

        An ERROR frame or an unexpected close raises TransportError; a
        close initiated by ``close()`` ends the iteration quietly.
        """
        while self._websocket is not None:
            try:
                frame = await self._next_frame()
            except TransportError:
                if self._websocket is None:
                    return
                raise
            if frame.command == "MESSAGE":
                yield frame
            elif frame.command == "ERROR":
                raise TransportError(f"STOMP error: {error_detail(frame)}")
            else:
                logger.debug(f"Ignoring STOMP {frame.command} frame")

    async def send(self, destination: str, body: str) -> None:
        self._ensure_connected()
        await self._send_frame(send_frame(destination, body))

    async def close(self) -> None:
        """Send DISCONNECT and close the socket; safe to call repeatedly"""
        websocket = self._websocket
        if websocket is None:
            return
        try:
            for subscription_id in list(self._subscriptions):
                await self.unsubscribe(subscription_id)
            await websocket.send(encode_frame(disconnect_frame()))
        except _CONNECTION_ERRORS as e:
            logger.debug(f"DISCONNECT not delivered: {e}")
        except TransportError as e:
            logger.debug(f"DISCONNECT not delivered: {e.detail}")
        finally:
            self._websocket = None
            self._subscriptions.clear()
            await self._close_socket(websocket)

    async def _abort(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await self._close_socket(websocket)

    @staticmethod
    async def _close_socket(websocket) -> None:
        try:
            await websocket.close()
        except _CONNECTION_ERRORS as e:
            logger.debug(f"Websocket close failed: {e}")

    def _ensure_connected(self) -> None:
        if self._websocket is None:
            raise TransportError("Order updates channel is not connected")

    async def _send_frame(self, frame: StompFrame) -> None:
        websocket = self._websocket
        if websocket is None:
            raise TransportError("Order updates channel is not connected")
        try:
            await websocket.send(encode_frame(frame))
        except ConnectionClosed as e:
            raise TransportError("Connection to order updates lost") from e

    async def _next_frame(self) -> StompFrame:
        """Receive the next non heart-beat frame"""
        while True:
            websocket = self._websocket
            if websocket is None:
                raise TransportError("Order updates channel is closed")
            try:
                data = await websocket.recv()
            except ConnectionClosed as e:
                raise TransportError("Connection to order updates lost") from e
            frame = decode_frame(data)
            if frame is not None:
                return frame
