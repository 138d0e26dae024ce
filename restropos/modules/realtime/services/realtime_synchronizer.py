# restropos/modules/realtime/services/realtime_synchronizer.py

"""
Push channel for order updates.

Every message on the order topic carries a complete Order. Each one is
upserted into the shared ``OrderCollection``. Messages are not ordered
relative to explicit refreshes; whichever write lands last wins until
the next push or refresh.
"""

import asyncio
import logging
from typing import Callable, Optional

from restropos.core.config import Settings, get_settings
from restropos.core.exceptions import PayloadError, RestroPOSError, TransportError
from restropos.core.normalization import parse_model
from restropos.core.session import SessionContext
from restropos.modules.orders.schemas.order_schemas import Order

from ..schemas.stomp_schemas import ORDER_PUBLISH_DESTINATION, ORDER_TOPIC, StompFrame
from .order_collection import OrderCollection
from .transport import Connector, StompOrderTransport

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[RestroPOSError], None]


class RealtimeSynchronizer:
    """Keeps an OrderCollection in step with pushed order events"""

    def __init__(
        self,
        collection: OrderCollection,
        transport: StompOrderTransport,
        topic: str = ORDER_TOPIC,
    ):
        self.collection = collection
        self.transport = transport
        self.topic = topic
        self.received_count = 0
        self.malformed_count = 0
        self._on_error: Optional[ErrorCallback] = None
        self._listener: Optional[asyncio.Task] = None
        self._subscription_id: Optional[str] = None
        self._connect_lock = asyncio.Lock()

    @classmethod
    def from_session(
        cls,
        collection: OrderCollection,
        session: SessionContext,
        settings: Optional[Settings] = None,
        connector: Optional[Connector] = None,
    ) -> "RealtimeSynchronizer":
        settings = settings or get_settings()
        transport = StompOrderTransport(
            settings.websocket_url,
            token=session.token,
            connect_timeout=settings.ws_connect_timeout_seconds,
            connector=connector,
        )
        return cls(collection, transport)

    @property
    def connected(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def connect(self, on_error: Optional[ErrorCallback] = None) -> None:
        """
        Connect, subscribe to the order topic and start listening.

        Calling it while already listening does nothing, and overlapping
        calls share one connection. A failed connection raises
        TransportError and leaves nothing running.
        """
        async with self._connect_lock:
            if self.connected:
                return
            self._on_error = on_error

            await self.transport.connect()
            try:
                self._subscription_id = await self.transport.subscribe(self.topic)
            except TransportError:
                await self.transport.close()
                raise
            self._listener = asyncio.create_task(self._listen())
            logger.info(f"Listening for order updates on {self.topic}")

    async def _listen(self) -> None:
        try:
            async for frame in self.transport.messages():
                self.handle_message(frame)
        except TransportError as e:
            logger.warning(f"Order updates channel lost: {e.detail}")
            await self.transport.close()
            self._report(e)
        except asyncio.CancelledError:
            logger.info("Order updates listener cancelled")
            raise

    def handle_message(self, frame: StompFrame) -> Optional[Order]:
        """Upsert the order carried by one MESSAGE frame"""
        self.received_count += 1
        try:
            order = parse_model(frame.body, Order)
        except PayloadError as e:
            self.malformed_count += 1
            logger.warning(f"Ignoring malformed order update: {e.detail}")
            self._report(e)
            return None

        position = self.collection.upsert(order)
        logger.debug(f"Order {order.id} updated to {order.status.value} at index {position}")
        return order

    def _report(self, error: RestroPOSError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Order updates error callback failed: {e}", exc_info=True)

    async def publish(self, order: Order) -> bool:
        """Send an order to the publish destination; False when not connected"""
        if not self.connected:
            logger.warning("Order updates channel not connected, cannot publish order update")
            return False
        await self.transport.send(
            ORDER_PUBLISH_DESTINATION, order.model_dump_json(by_alias=True)
        )
        return True

    async def disconnect(self) -> None:
        """Stop listening and close the subscription and the socket"""
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass
        subscription_id, self._subscription_id = self._subscription_id, None
        if subscription_id is not None:
            try:
                await self.transport.unsubscribe(subscription_id)
            except TransportError as e:
                logger.debug(f"Unsubscribe not delivered: {e.detail}")
        await self.transport.close()
        logger.info("Disconnected from order updates")
