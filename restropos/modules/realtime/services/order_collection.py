# restropos/modules/realtime/services/order_collection.py

"""
Local order collection shared by the views of one client session.

Pushed events and manual refreshes both write through ``_replace``; no
other code path mutates the list. A pushed order is the complete latest
truth for its id: it replaces the local entry wholesale, in place.
"""

import logging
from typing import Callable, Iterator, List, Optional, Sequence

from restropos.modules.orders.schemas.order_schemas import Order

logger = logging.getLogger(__name__)

CollectionListener = Callable[[List[Order]], None]


class OrderCollection:
    def __init__(self, orders: Optional[Sequence[Order]] = None):
        self._orders: List[Order] = list(orders or [])
        self._listeners: List[CollectionListener] = []
        self.version = 0

    def __len__(self) -> int:
        return len(self._orders)

    def __iter__(self) -> Iterator[Order]:
        return iter(list(self._orders))

    @property
    def orders(self) -> List[Order]:
        return list(self._orders)

    def get(self, order_id: str) -> Optional[Order]:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    def index_of(self, order_id: str) -> int:
        for position, order in enumerate(self._orders):
            if order.id == order_id:
                return position
        return -1

    def subscribe(self, listener: CollectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def upsert(self, order: Order) -> int:
        """Replace the entry with the same id in place, or append; returns its index"""
        updated = list(self._orders)
        position = self.index_of(order.id)
        if position >= 0:
            updated[position] = order
        else:
            updated.append(order)
            position = len(updated) - 1
        self._replace(updated)
        return position

    def replace_all(self, orders: Sequence[Order]) -> None:
        """Install a full snapshot from an explicit refresh"""
        self._replace(list(orders))

    def _replace(self, orders: List[Order]) -> None:
        self._orders = orders
        self.version += 1
        snapshot = list(orders)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Order collection listener failed: {e}", exc_info=True)
