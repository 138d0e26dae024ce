# restropos/modules/orders/services/order_service.py

"""
Staff-side order operations: listing, cashier order entry and kitchen
status transitions.
"""

import logging
from typing import List, Optional

from restropos.core.api_client import ApiClient
from restropos.core.exceptions import PermissionDeniedError, RestroPOSError, ValidationError
from restropos.core.normalization import parse_model, parse_models
from restropos.core.notifications import NotificationBus
from restropos.core.permissions import Permission, check_permission

from ..schemas.order_schemas import Order
from .cart import Cart

logger = logging.getLogger(__name__)

SOURCE = "orders"


class OrderService:
    """Order endpoints used by cashier, kitchen and dashboard views"""

    def __init__(self, api: ApiClient, notifications: Optional[NotificationBus] = None):
        self.api = api
        self.notifications = notifications or NotificationBus()

    def _require(self, permission: Permission) -> None:
        try:
            check_permission(self.api.session, permission)
        except PermissionDeniedError as e:
            self.notifications.error(e.detail, source=SOURCE, permission=permission.value)
            raise

    async def list_orders(self, silent: bool = False) -> List[Order]:
        self._require(Permission.ORDER_VIEW)
        try:
            payload = await self.api.get_json("/orders")
            return parse_models(payload, Order)
        except RestroPOSError as e:
            if not silent:
                self.notifications.error("Failed to load orders", source=SOURCE, reason=e.detail)
            raise

    async def orders_for_table(self, table_id: str) -> List[Order]:
        return [o for o in await self.list_orders() if o.table_id == table_id]

    async def create_order(
        self, table_id: str, cart: Cart, outlet_id: Optional[str] = None
    ) -> Order:
        """
        Create a new order for a table from the cashier's cart.

        The cart is cleared only once the server accepted the order. The
        resulting order reaches live views through the push channel.
        """
        if not table_id or cart.is_empty:
            error = ValidationError("Please select a table and add items to the cart")
            self.notifications.error(error.detail, source=SOURCE)
            raise error
        self._require(Permission.ORDER_CREATE)

        request = {"tableId": table_id, "items": cart.request_items()}
        if outlet_id:
            request["outletId"] = outlet_id

        try:
            payload = await self.api.post_json("/orders/create", request)
            order = parse_model(payload, Order)
        except RestroPOSError as e:
            self.notifications.error(e.detail, source=SOURCE, table_id=table_id)
            raise

        cart.clear()
        logger.info(f"Created order {order.id} for table {table_id}")
        self.notifications.success("Order Created!", source=SOURCE, order_id=order.id)
        return order

    async def advance_status(self, order: Order) -> Order:
        """Request the single legal next status for an order"""
        target = order.status.next_status()
        if target is None:
            error = ValidationError(
                f"Order {order.id} is {order.status.value} and cannot move forward"
            )
            self.notifications.error(error.detail, source=SOURCE, order_id=order.id)
            raise error
        self._require(Permission.ORDER_UPDATE_STATUS)

        try:
            payload = await self.api.put_json(
                f"/orders/{order.id}/status", params={"status": target.value}
            )
        except RestroPOSError as e:
            self.notifications.error(e.detail, source=SOURCE, order_id=order.id)
            raise

        self.notifications.success(
            f"Order status updated to {target.value}", source=SOURCE, order_id=order.id
        )
        if payload:
            return parse_model(payload, Order)
        return order.model_copy(update={"status": target})
