# restropos/modules/billing/tests/test_bill_aggregator.py

import json
from decimal import Decimal

import pytest

from restropos.core.exceptions import (
    ConflictError,
    DuplicateBillError,
    PermissionDeniedError,
    ValidationError,
)
from restropos.modules.orders.schemas.order_schemas import Order, OrderStatus
from restropos.modules.orders.tests.factories import BillPayloadFactory, OrderPayloadFactory
from restropos.modules.tax.services.tax_engine import compute_gst_split

from ..schemas.billing_schemas import Bill, BillItemsView
from ..services.bill_aggregator import BillAggregator, OrderBillLinks, aggregate_items


@pytest.fixture
def aggregator(api, notifications):
    return BillAggregator(api, notifications)


def order(order_id, status, total, table_id="T1", outlet_id="outlet-1", items=None):
    return Order.model_validate(
        OrderPayloadFactory(
            id=order_id,
            status=status,
            totalAmount=total,
            table={"id": table_id, "tableNumber": table_id, "outlet": {"id": outlet_id}},
            **({"items": items} if items is not None else {}),
        )
    )


class TestOrderBillLinks:
    def test_record_bill_links_every_covered_order(self):
        links = OrderBillLinks()
        bill = BillPayloadFactory(id="b1", orderId="o1", orderIds=["o1", "o2"])

        links.record_bill(Bill.model_validate(bill), ["o3"])

        assert links.bill_for("o1") == "b1"
        assert links.is_billed("o2")
        assert links.is_billed("o3")
        assert not links.is_billed("o4")


class TestSelection:
    """Test selection of orders for a combined table bill"""

    @pytest.mark.asyncio
    async def test_only_completed_orders_of_the_table(self, aggregator):
        orders = [
            order("o1", "COMPLETED", 250),
            order("o2", "CREATED", 400),
            order("o3", "COMPLETED", 100, table_id="T2"),
        ]

        selected = aggregator.select_unbilled_completed(orders, "T1")

        assert [o.id for o in selected] == ["o1"]
        assert orders[1].status == OrderStatus.CREATED

    @pytest.mark.asyncio
    async def test_linked_orders_excluded(self, aggregator):
        aggregator.links.record("o1", "b1")
        orders = [order("o1", "COMPLETED", 250), order("o2", "COMPLETED", 100)]

        assert [o.id for o in aggregator.select_unbilled_completed(orders, "T1")] == ["o2"]

    @pytest.mark.asyncio
    async def test_multiple_outlets_flagged(self, aggregator):
        orders = [
            order("o1", "COMPLETED", 250, outlet_id="outlet-1"),
            order("o2", "COMPLETED", 100, outlet_id="outlet-2"),
        ]

        with pytest.raises(ValidationError):
            aggregator.select_unbilled_completed(orders, "T1")

        selected = aggregator.select_unbilled_completed(orders, "T1", outlet_id="outlet-2")
        assert [o.id for o in selected] == ["o2"]


class TestCombinedPreview:
    """Test combined bill estimates"""

    @pytest.mark.asyncio
    async def test_tax_computed_once_on_combined_subtotal(self, aggregator):
        totals = [Decimal("33.33"), Decimal("33.33"), Decimal("33.35")]
        orders = [order(f"o{i}", "COMPLETED", str(t)) for i, t in enumerate(totals)]

        preview = aggregator.preview_combined(orders, "T1", rate_percent=Decimal("5"))

        assert preview.subtotal == sum(totals)
        assert preview.tax_amount == Decimal("5.00")
        per_order = sum(
            compute_gst_split(t, Decimal("5"), "29").total_tax for t in totals
        )
        assert abs(per_order - preview.tax_amount) <= Decimal("1")
        assert preview.is_combined_bill
        assert preview.order_count == 3

    @pytest.mark.asyncio
    async def test_intra_state_preview_splits_cgst_and_sgst(self, aggregator):
        preview = aggregator.preview_combined(
            [order("o1", "COMPLETED", 600), order("o2", "COMPLETED", 400)], "T1"
        )

        assert preview.cgst == Decimal("25.00")
        assert preview.sgst == Decimal("25.00")
        assert preview.igst == Decimal("0.00")
        assert preview.grand_total == Decimal("1050.00")

    @pytest.mark.asyncio
    async def test_inter_state_preview_uses_igst(self, aggregator):
        preview = aggregator.preview_combined(
            [order("o1", "COMPLETED", 1000)], "T1", place_of_supply="27"
        )

        assert preview.igst == Decimal("50.00")
        assert preview.cgst == Decimal("0.00")

    def test_items_aggregated_by_menu_item(self):
        orders = [
            order("o1", "COMPLETED", 200, items=[
                {"menuItemId": "A", "name": "Item A", "quantity": 2, "price": 200},
            ]),
            order("o2", "COMPLETED", 150, items=[
                {"menuItemId": "A", "name": "Item A", "quantity": 1, "price": 100},
                {"menuItemId": "B", "name": "Item B", "quantity": 1, "price": 50},
            ]),
        ]

        items = aggregate_items(orders)

        assert [(i.menu_item_id, i.quantity, i.price) for i in items] == [
            ("A", 3, Decimal("300")),
            ("B", 1, Decimal("50")),
        ]

    @pytest.mark.asyncio
    async def test_nothing_to_bill(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.preview_combined([order("o1", "CREATED", 100)], "T1")


class TestGenerateForOrder:
    """Test per-order bill generation"""

    @pytest.mark.asyncio
    async def test_second_generation_short_circuits(self, aggregator, router, notices):
        router.add(
            "POST", "/billing/generate/o1", json_body=BillPayloadFactory(id="b1", orderId="o1")
        )

        bill = await aggregator.generate_for_order("o1")
        assert bill.id == "b1"
        assert not aggregator.can_generate("o1")

        with pytest.raises(DuplicateBillError) as exc_info:
            await aggregator.generate_for_order("o1")

        assert exc_info.value.bill_id == "b1"
        assert len(router.calls("POST", "/billing/generate/o1")) == 1

    @pytest.mark.asyncio
    async def test_customer_reference_sent(self, aggregator, router):
        router.add("POST", "/billing/generate/o1", json_body=BillPayloadFactory(orderId="o1"))

        await aggregator.generate_for_order("o1", customer_id="c-42")

        request = router.calls("POST", "/billing/generate/o1")[0]
        assert json.loads(request.content) == {"customerId": "c-42"}

    @pytest.mark.asyncio
    async def test_conflict_reconciles_with_server(self, aggregator, router, notices):
        router.add(
            "POST",
            "/billing/generate/o1",
            status_code=400,
            json_body={"message": "Bill already exists for this order"},
        )
        router.add("GET", "/billing/order/o1", json_body=BillPayloadFactory(id="b7", orderId="o1"))

        with pytest.raises(ConflictError):
            await aggregator.generate_for_order("o1")

        assert aggregator.links.bill_for("o1") == "b7"
        assert notices[-1].message == "Bill already exists for this order"

    @pytest.mark.asyncio
    async def test_permission_checked_before_request(self, aggregator, router, session):
        session.login("test-token", "KITCHEN")

        with pytest.raises(PermissionDeniedError):
            await aggregator.generate_for_order("o1")

        assert router.requests == []


class TestGenerateForTable:
    @pytest.mark.asyncio
    async def test_table_bill_covers_only_completed_orders(self, aggregator, router, notices):
        orders = [order("o1", "COMPLETED", 250), order("o2", "CREATED", 400)]
        router.add(
            "POST",
            "/billing/generate/table/T1",
            json_body=BillPayloadFactory(id="b1", subtotal=250, isCombinedBill=False),
        )

        bill = await aggregator.generate_for_table("T1", orders=orders)

        assert bill.subtotal == Decimal("250")
        assert aggregator.links.bill_for("o1") == "b1"
        assert aggregator.can_generate("o2")
        assert orders[1].status == OrderStatus.CREATED

    @pytest.mark.asyncio
    async def test_combined_bill_message(self, aggregator, router, notices):
        router.add(
            "POST",
            "/billing/generate/table/T1",
            json_body=BillPayloadFactory(
                id="b2", isCombinedBill=True, orderCount=2, orderIds=["o1", "o2"]
            ),
        )

        bill = await aggregator.generate_for_table("T1")

        assert bill.is_combined_bill
        assert aggregator.links.is_billed("o2")
        assert notices[-1].message == "Combined bill generated for 2 orders"

    @pytest.mark.asyncio
    async def test_no_completed_orders_makes_no_request(self, aggregator, router):
        with pytest.raises(ValidationError):
            await aggregator.generate_for_table("T1", orders=[order("o2", "CREATED", 400)])

        assert router.requests == []


class TestReadingBills:
    @pytest.mark.asyncio
    async def test_load_billable_orders_reconciles_links(self, aggregator, router):
        router.add(
            "GET",
            "/orders",
            json_body=[
                OrderPayloadFactory(id="o1", status="COMPLETED"),
                OrderPayloadFactory(id="o2", status="COMPLETED"),
                OrderPayloadFactory(id="o3", status="IN_PROGRESS"),
            ],
        )
        router.add("GET", "/billing/order/o1", json_body=BillPayloadFactory(id="b1"))
        router.add("GET", "/billing/order/o2", status_code=404)

        orders = await aggregator.load_billable_orders()

        assert [o.id for o in orders] == ["o1", "o2"]
        assert not aggregator.can_generate("o1")
        assert aggregator.can_generate("o2")
        assert router.calls("GET", "/billing/order/o3") == []

    @pytest.mark.asyncio
    async def test_items_label_from_server_flags(self, aggregator, router):
        router.add(
            "GET",
            "/billing/b1/items",
            json_body={
                "items": [{"name": "Item A", "quantity": 1, "price": 100}],
                "isCombinedBill": True,
                "orderCount": 3,
            },
        )

        view = await aggregator.get_bill_items("b1")

        assert view.order_label == "3 orders combined"
        assert len(view.items) == 1

    def test_single_order_label(self):
        view = BillItemsView.model_validate({"items": [], "isCombinedBill": False})

        assert view.order_label == "Order ID"
