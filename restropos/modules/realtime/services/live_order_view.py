# restropos/modules/realtime/services/live_order_view.py

"""
Live order list for the orders and kitchen screens.

The view loads a snapshot, then keeps it current through the push
channel and a timed refresh running side by side. Losing the push
channel is not fatal: the view keeps refreshing on its timer.
"""

import logging
from typing import List, Optional

from restropos.core.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    RestroPOSError,
    TransportError,
)
from restropos.core.notifications import NotificationBus
from restropos.modules.orders.schemas.order_schemas import Order
from restropos.modules.orders.services.order_service import OrderService

from .lifecycle import ViewLifecycle
from .polling import PeriodicRefresher
from .realtime_synchronizer import RealtimeSynchronizer

logger = logging.getLogger(__name__)

SOURCE = "realtime"


class LiveOrderView:
    def __init__(
        self,
        order_service: OrderService,
        synchronizer: RealtimeSynchronizer,
        notifications: Optional[NotificationBus] = None,
        poll_interval: Optional[float] = None,
        name: str = "orders",
    ):
        self.order_service = order_service
        self.synchronizer = synchronizer
        self.collection = synchronizer.collection
        self.notifications = notifications or order_service.notifications
        self.lifecycle = ViewLifecycle(name)
        self.refresher = PeriodicRefresher(
            lambda: self.refresh(silent=True),
            poll_interval or order_service.api.settings.dashboard_poll_seconds,
            name=name,
        )
        self.push_available = False

    @property
    def orders(self) -> List[Order]:
        return self.collection.orders

    async def open(self) -> None:
        """Initial snapshot, then timed refresh and push together"""
        try:
            await self.refresh()
        except (AuthenticationError, PermissionDeniedError):
            raise
        except RestroPOSError as e:
            logger.warning(f"Initial load of {self.lifecycle.name} failed: {e.detail}")

        self.lifecycle.add_closer(self.refresher.stop)
        self.refresher.start()

        self.lifecycle.add_closer(self.synchronizer.disconnect)
        try:
            await self.synchronizer.connect(on_error=self._on_channel_error)
        except TransportError as e:
            self._degrade(e)
        else:
            self.push_available = True

    async def refresh(self, silent: bool = False) -> Optional[List[Order]]:
        """Replace the collection with a fresh snapshot unless the view is closed"""
        orders = await self.order_service.list_orders(silent=silent)
        if not self.lifecycle.is_open:
            logger.debug(f"Dropping {self.lifecycle.name} snapshot after teardown")
            return None
        self.collection.replace_all(orders)
        return orders

    def _on_channel_error(self, error: RestroPOSError) -> None:
        if not self.lifecycle.is_open:
            return
        if isinstance(error, TransportError):
            self._degrade(error)
            return
        self.notifications.warning(
            "Received an invalid order update", source=SOURCE, reason=error.detail
        )

    def _degrade(self, error: TransportError) -> None:
        self.push_available = False
        if not self.lifecycle.is_open:
            return
        logger.warning(f"{self.lifecycle.name}: live updates unavailable, polling only")
        self.notifications.warning(
            "Connection lost. Live updates paused, orders will refresh periodically.",
            source=SOURCE,
            reason=error.detail,
        )

    async def close(self) -> None:
        await self.lifecycle.close()
