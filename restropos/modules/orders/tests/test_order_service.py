# restropos/modules/orders/tests/test_order_service.py

import json
from unittest.mock import AsyncMock, Mock

import pytest

from restropos.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationError,
)
from restropos.modules.realtime.services.order_collection import OrderCollection

from ..schemas.order_schemas import MenuItem, Order, OrderStatus
from ..services.cart import Cart
from ..services.kitchen_service import KitchenDisplay
from ..services.order_service import OrderService
from .factories import OrderPayloadFactory


@pytest.fixture
def order_service(api, notifications):
    return OrderService(api, notifications)


class TestOrderService:
    """Test staff order operations"""

    @pytest.mark.asyncio
    async def test_list_orders_accepts_wrapped_payload(self, order_service, router):
        router.add(
            "GET",
            "/orders",
            json_body={"data": [OrderPayloadFactory(id="o1"), OrderPayloadFactory(id="o2")]},
        )

        orders = await order_service.list_orders()

        assert [o.id for o in orders] == ["o1", "o2"]
        assert orders[0].table_id == "T1"

    @pytest.mark.asyncio
    async def test_list_orders_failure_notifies(self, order_service, router, notices):
        router.add("GET", "/orders", status_code=500)

        with pytest.raises(ServiceError):
            await order_service.list_orders()

        assert notices[-1].message == "Failed to load orders"

    @pytest.mark.asyncio
    async def test_create_order_clears_cart(self, order_service, router, notices):
        router.add("POST", "/orders/create", json_body=OrderPayloadFactory(id="o9"))
        cart = Cart()
        cart.add_item(MenuItem(id="A", name="Item A", price=100), quantity=2)

        order = await order_service.create_order("T1", cart, outlet_id="outlet-1")

        assert order.id == "o9"
        assert cart.is_empty
        body = json.loads(router.calls("POST", "/orders/create")[0].content)
        assert body == {
            "tableId": "T1",
            "items": [{"menuItemId": "A", "quantity": 2}],
            "outletId": "outlet-1",
        }
        assert notices[-1].message == "Order Created!"

    @pytest.mark.asyncio
    async def test_create_order_requires_items(self, order_service, router):
        with pytest.raises(ValidationError):
            await order_service.create_order("T1", Cart())

        assert router.requests == []

    @pytest.mark.asyncio
    async def test_advance_status_requests_next_transition(self, order_service, router):
        router.add("PUT", "/orders/o1/status", json_body=None)
        order = Order(id="o1", status=OrderStatus.CREATED)

        updated = await order_service.advance_status(order)

        assert updated.status == OrderStatus.IN_PROGRESS
        request = router.calls("PUT", "/orders/o1/status")[0]
        assert request.url.params["status"] == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_terminal_order_rejected_locally(self, order_service, router):
        with pytest.raises(ValidationError):
            await order_service.advance_status(Order(id="o1", status=OrderStatus.COMPLETED))

        assert router.requests == []

    @pytest.mark.asyncio
    async def test_role_without_permission_makes_no_request(
        self, order_service, router, session, notices
    ):
        session.login("test-token", "MANAGER")

        with pytest.raises(PermissionDeniedError):
            await order_service.advance_status(Order(id="o1", status=OrderStatus.CREATED))

        assert router.requests == []
        assert notices[-1].message == "You don't have permission to access this resource"


class TestKitchenDisplay:
    def make_display(self, order_service):
        collection = OrderCollection(
            [
                Order(id="o1", status=OrderStatus.CREATED),
                Order(id="o2", status=OrderStatus.IN_PROGRESS),
                Order(id="o3", status=OrderStatus.COMPLETED),
                Order(id="o4", status=OrderStatus.CANCELLED),
            ]
        )
        return KitchenDisplay(collection, order_service)

    @pytest.mark.asyncio
    async def test_pending_and_completed(self, order_service):
        display = self.make_display(order_service)

        assert [o.id for o in display.pending] == ["o1", "o2"]
        assert [o.id for o in display.completed] == ["o3"]

    @pytest.mark.asyncio
    async def test_pending_oldest_first(self, order_service):
        collection = OrderCollection(
            [
                Order(id="late", status=OrderStatus.CREATED, createdAt="2024-05-01T12:30:00"),
                Order(id="undated", status=OrderStatus.CREATED),
                Order(id="early", status=OrderStatus.IN_PROGRESS, createdAt="2024-05-01T12:00:00"),
            ]
        )

        display = KitchenDisplay(collection, order_service)

        assert [o.id for o in display.pending] == ["early", "late", "undated"]

    @pytest.mark.asyncio
    async def test_advance_moves_ticket_forward(self, order_service, router):
        router.add(
            "PUT",
            "/orders/o2/status",
            json_body=OrderPayloadFactory(id="o2", status="COMPLETED"),
        )
        display = self.make_display(order_service)

        updated = await display.advance("o2")

        assert updated.status == OrderStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_advance_delegates_to_order_service(self):
        service = Mock()
        service.advance_status = AsyncMock(
            return_value=Order(id="o1", status=OrderStatus.IN_PROGRESS)
        )
        display = KitchenDisplay(
            OrderCollection([Order(id="o1", status=OrderStatus.CREATED)]), service
        )

        updated = await display.advance("o1")

        service.advance_status.assert_awaited_once()
        assert service.advance_status.await_args.args[0].id == "o1"
        assert updated.status == OrderStatus.IN_PROGRESS
        assert display.collection.get("o1").status == OrderStatus.CREATED

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, order_service):
        with pytest.raises(NotFoundError):
            await self.make_display(order_service).advance("missing")
