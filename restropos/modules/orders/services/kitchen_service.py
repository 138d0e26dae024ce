import logging
from datetime import datetime
from typing import List

from restropos.core.exceptions import NotFoundError
from restropos.modules.realtime.services.order_collection import OrderCollection

from ..schemas.order_schemas import Order, OrderStatus
from .order_service import OrderService

logger = logging.getLogger(__name__)


class KitchenDisplay:
    """Kitchen order tickets over the shared live order collection"""

    def __init__(self, collection: OrderCollection, order_service: OrderService):
        self.collection = collection
        self.order_service = order_service

    @property
    def pending(self) -> List[Order]:
        """Tickets still to be cooked, oldest first; undated tickets go last"""
        tickets = [
            o
            for o in self.collection
            if o.status in (OrderStatus.CREATED, OrderStatus.IN_PROGRESS)
        ]
        return sorted(tickets, key=lambda o: (o.created_at is None, o.created_at or datetime.min))

    @property
    def completed(self) -> List[Order]:
        return [o for o in self.collection if o.status == OrderStatus.COMPLETED]

    async def advance(self, order_id: str) -> Order:
        """
        Move a ticket to its next status.

        The collection is left alone; the server pushes the updated order
        back and the push (or the next refresh) updates the display.
        """
        order = self.collection.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} is not on the kitchen display")
        logger.debug(f"Advancing kitchen ticket {order_id} from {order.status.value}")
        return await self.order_service.advance_status(order)
