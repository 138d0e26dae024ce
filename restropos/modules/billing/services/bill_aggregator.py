# restropos/modules/billing/services/bill_aggregator.py

"""
Bill generation for completed orders.

Bills are generated either per order or once per table, combining every
COMPLETED order of that table that is not yet billed. Combined tax is
computed once on the combined subtotal. The order-service owns the
authoritative bill state; ``OrderBillLinks`` is only the local record
that keeps the "Generate" action from being offered twice.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from restropos.core.api_client import ApiClient
from restropos.core.exceptions import (
    ConflictError,
    DuplicateBillError,
    NotFoundError,
    PermissionDeniedError,
    RestroPOSError,
    ValidationError,
)
from restropos.core.normalization import parse_model, parse_models
from restropos.core.notifications import NotificationBus
from restropos.core.permissions import Permission, check_permission
from restropos.modules.orders.schemas.order_schemas import Order, OrderStatus
from restropos.modules.tax.services.tax_engine import compute_gst_split, quantize_money

from ..schemas.billing_schemas import Bill, BillItem, BillItemsView, CombinedBillPreview

logger = logging.getLogger(__name__)

SOURCE = "billing"


class OrderBillLinks:
    """Local order id -> bill id record"""

    def __init__(self):
        self._links: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._links)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._links

    def record(self, order_id: str, bill_id: str) -> None:
        previous = self._links.get(order_id)
        if previous and previous != bill_id:
            logger.warning(
                f"Order {order_id} relinked from bill {previous} to bill {bill_id}"
            )
        self._links[order_id] = bill_id

    def record_bill(self, bill: Bill, order_ids: Iterable[str] = ()) -> None:
        """Link every order a bill covers, as reported or as requested"""
        for order_id in [*bill.covered_order_ids, *order_ids]:
            self.record(order_id, bill.id)

    def bill_for(self, order_id: str) -> Optional[str]:
        return self._links.get(order_id)

    def is_billed(self, order_id: str) -> bool:
        return order_id in self._links


class BillAggregator:
    """Generates and reads bills for the cashier billing view"""

    def __init__(
        self,
        api: ApiClient,
        notifications: Optional[NotificationBus] = None,
        links: Optional[OrderBillLinks] = None,
    ):
        self.api = api
        self.notifications = notifications or NotificationBus()
        self.links = links or OrderBillLinks()
        self._in_flight: Set[str] = set()

    def _require(self, permission: Permission) -> None:
        try:
            check_permission(self.api.session, permission)
        except PermissionDeniedError as e:
            self.notifications.error(e.detail, source=SOURCE, permission=permission.value)
            raise

    async def list_bills(self) -> List[Bill]:
        self._require(Permission.BILL_VIEW)
        payload = await self.api.get_json("/billing")
        return parse_models(payload, Bill)

    async def get_bill(self, bill_id: str) -> Bill:
        self._require(Permission.BILL_VIEW)
        try:
            payload = await self.api.get_json(f"/billing/{bill_id}")
            return parse_model(payload, Bill)
        except RestroPOSError as e:
            self.notifications.error(
                "Failed to load bill details", source=SOURCE, bill_id=bill_id, reason=e.detail
            )
            raise

    async def find_bill_for_order(self, order_id: str) -> Optional[Bill]:
        """Ask the server whether an order is billed; None when it is not"""
        try:
            payload = await self.api.get_json(f"/billing/order/{order_id}")
        except NotFoundError:
            return None
        if not payload:
            return None
        bill = parse_model(payload, Bill)
        self.links.record_bill(bill, [order_id])
        return bill

    async def load_billable_orders(self) -> List[Order]:
        """
        Load completed orders and reconcile their bill links.

        Returns every COMPLETED order; which of them are already billed is
        answered by ``can_generate`` afterwards.
        """
        self._require(Permission.BILL_VIEW)
        try:
            payload = await self.api.get_json("/orders")
            orders = parse_models(payload, Order)
        except RestroPOSError as e:
            self.notifications.error("Failed to load orders", source=SOURCE, reason=e.detail)
            raise

        completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
        for order in completed:
            if self.links.is_billed(order.id):
                continue
            await self.find_bill_for_order(order.id)

        logger.info(
            f"Loaded {len(completed)} completed orders, {len(self.links)} linked to bills"
        )
        return completed

    def can_generate(self, order_id: str) -> bool:
        """Whether the Generate action should be offered for an order"""
        return not self.links.is_billed(order_id) and order_id not in self._in_flight

    def select_unbilled_completed(
        self,
        orders: Iterable[Order],
        table_id: str,
        outlet_id: Optional[str] = None,
    ) -> List[Order]:
        """
        The orders a combined table bill covers.

        Only COMPLETED orders of the table that are not linked to a bill
        qualify. Tables are matched by identity; when the matching orders
        belong to more than one outlet and no outlet was given the
        selection is refused instead of guessed.
        """
        selected = [
            o
            for o in orders
            if o.table_id == table_id
            and o.status == OrderStatus.COMPLETED
            and not o.has_bill
            and not self.links.is_billed(o.id)
        ]
        if outlet_id is not None:
            return [o for o in selected if o.outlet_id in (None, outlet_id)]

        outlets = {o.outlet_id for o in selected if o.outlet_id is not None}
        if len(outlets) > 1:
            raise ValidationError(
                f"Table {table_id} has completed orders from {len(outlets)} outlets; "
                "select an outlet before billing"
            )
        return selected

    def preview_combined(
        self,
        orders: Iterable[Order],
        table_id: str,
        place_of_supply: Optional[str] = None,
        rate_percent: Optional[Decimal] = None,
        outlet_id: Optional[str] = None,
    ) -> CombinedBillPreview:
        """Estimate the combined bill of a table, taxing the combined subtotal once"""
        selected = self.select_unbilled_completed(orders, table_id, outlet_id)
        if not selected:
            raise ValidationError(f"Table {table_id} has no completed orders to bill")

        subtotal = quantize_money(sum((o.total_amount for o in selected), Decimal("0")))
        split = compute_gst_split(
            subtotal,
            rate_percent if rate_percent is not None else self.api.settings.default_gst_rate_percent,
            self.api.settings.seller_state_code,
            place_of_supply,
        )
        return CombinedBillPreview(
            table_id=table_id,
            order_ids=[o.id for o in selected],
            items=aggregate_items(selected),
            subtotal=split.taxable_amount,
            cgst=split.cgst,
            sgst=split.sgst,
            igst=split.igst,
            is_inter_state=split.is_inter_state,
            place_of_supply=split.place_of_supply,
            grand_total=split.grand_total,
        )

    async def generate_for_order(self, order_id: str, customer_id: Optional[str] = None) -> Bill:
        """
        Generate the bill of a single order.

        A linked or in-flight order is short-circuited without a request.
        The link is recorded as soon as the server answers. When the server
        rejects the request the order is looked up again so a bill that
        already exists is linked instead of reported as a failure.
        """
        self._require(Permission.BILL_GENERATE)
        existing = self.links.bill_for(order_id)
        if existing:
            error = DuplicateBillError(order_id, bill_id=existing)
            self.notifications.warning(error.detail, source=SOURCE, order_id=order_id)
            raise error
        if order_id in self._in_flight:
            raise DuplicateBillError(
                order_id, detail="Bill generation already in progress for this order"
            )

        self._in_flight.add(order_id)
        try:
            payload = await self.api.post_json(
                f"/billing/generate/{order_id}", _customer_body(customer_id)
            )
            bill = parse_model(payload, Bill)
            self.links.record_bill(bill, [order_id])
        except ConflictError as e:
            self.notifications.error(e.detail, source=SOURCE, order_id=order_id)
            await self._reconcile(order_id)
            raise
        except RestroPOSError as e:
            self.notifications.error(e.detail, source=SOURCE, order_id=order_id)
            raise
        finally:
            self._in_flight.discard(order_id)

        logger.info(f"Generated bill {bill.id} for order {order_id}")
        self.notifications.success(
            "Bill generated successfully!", source=SOURCE, order_id=order_id, bill_id=bill.id
        )
        return bill

    async def generate_for_table(
        self,
        table_id: str,
        customer_id: Optional[str] = None,
        orders: Optional[Iterable[Order]] = None,
        outlet_id: Optional[str] = None,
    ) -> Bill:
        """
        Generate one combined bill for the completed orders of a table.

        When the caller passes the orders it currently displays, the
        selection is checked locally first and every covered order is
        linked to the resulting bill.
        """
        self._require(Permission.BILL_GENERATE)
        covered: List[str] = []
        if orders is not None:
            selected = self.select_unbilled_completed(orders, table_id, outlet_id)
            if not selected:
                error = ValidationError(f"Table {table_id} has no completed orders to bill")
                self.notifications.error(error.detail, source=SOURCE, table_id=table_id)
                raise error
            covered = [o.id for o in selected]
            pending = [order_id for order_id in covered if order_id in self._in_flight]
            if pending:
                raise DuplicateBillError(
                    pending[0], detail="Bill generation already in progress for this table"
                )

        key = f"table:{table_id}"
        if key in self._in_flight:
            raise DuplicateBillError(
                key, detail="Bill generation already in progress for this table"
            )

        self._in_flight.update([key, *covered])
        try:
            payload = await self.api.post_json(
                f"/billing/generate/table/{table_id}", _customer_body(customer_id)
            )
            bill = parse_model(payload, Bill)
            self.links.record_bill(bill, covered)
        except RestroPOSError as e:
            self.notifications.error(e.detail, source=SOURCE, table_id=table_id)
            raise
        finally:
            self._in_flight.difference_update([key, *covered])

        if bill.is_combined_bill:
            message = f"Combined bill generated for {bill.order_count} orders"
        else:
            message = "Bill generated successfully!"
        logger.info(f"Generated bill {bill.id} for table {table_id} ({bill.order_count} orders)")
        self.notifications.success(message, source=SOURCE, table_id=table_id, bill_id=bill.id)
        return bill

    async def get_bill_items(self, bill_id: str) -> BillItemsView:
        self._require(Permission.BILL_VIEW)
        try:
            payload = await self.api.get_json(f"/billing/{bill_id}/items")
            return parse_model(payload, BillItemsView)
        except RestroPOSError as e:
            self.notifications.error(
                "Failed to load bill items", source=SOURCE, bill_id=bill_id, reason=e.detail
            )
            raise

    async def _reconcile(self, order_id: str) -> None:
        try:
            bill = await self.find_bill_for_order(order_id)
        except RestroPOSError as e:
            logger.warning(f"Could not reconcile bill state of order {order_id}: {e.detail}")
            return
        if bill is not None:
            logger.info(f"Order {order_id} already billed as {bill.id}")


def _customer_body(customer_id: Optional[str]) -> Optional[Dict[str, str]]:
    return {"customerId": customer_id} if customer_id else None


def aggregate_items(orders: Iterable[Order]) -> List[BillItem]:
    """Merge the items of several orders by menu item, keeping first-seen order"""
    merged: "OrderedDict[str, BillItem]" = OrderedDict()
    for order in orders:
        for item in order.items:
            current = merged.get(item.menu_item_id)
            if current is None:
                merged[item.menu_item_id] = BillItem(
                    menu_item_id=item.menu_item_id,
                    name=item.name or item.menu_item_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price or Decimal("0"),
                    price=item.price,
                )
            else:
                merged[item.menu_item_id] = current.model_copy(
                    update={
                        "quantity": current.quantity + item.quantity,
                        "price": current.price + item.price,
                    }
                )
    return list(merged.values())
