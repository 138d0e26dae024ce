# restropos/modules/orders/services/cart_merger.py

"""
Cart to order reconciliation for a single table.

Three sources describe a table at any moment: the server's active order,
the completed-but-unbilled orders, and the customer's local cart. The
cart only ever holds *new* items. When an active order exists the
server merges the submitted items into it; otherwise it creates a new
order. Local state is assumed stale after any rejected submission and is
re-fetched rather than retried.

The same session generates and downloads the bill of the table's order.
"""

import logging
from typing import Any, Dict, Optional

from restropos.core.api_client import ApiClient, error_message
from restropos.core.exceptions import (
    APIError,
    AuthenticationError,
    DuplicateBillError,
    PayloadError,
    RestroPOSError,
    TransportError,
    ValidationError,
)
from restropos.core.normalization import parse_model
from restropos.core.notifications import NotificationBus
from restropos.modules.billing.schemas.billing_schemas import Bill, InvoiceDocument
from restropos.modules.billing.services.bill_aggregator import OrderBillLinks
from restropos.modules.billing.services.invoice_service import InvoiceService
from restropos.modules.realtime.services.lifecycle import ViewLifecycle
from restropos.modules.realtime.services.polling import PeriodicRefresher

from ..schemas.order_schemas import Order, PlaceOrderResult, RunningTotal, TableSnapshot
from .cart import Cart

logger = logging.getLogger(__name__)

SOURCE = "orders.cart"
BILL_FAILED = "Failed to generate bill"


class OrderCartMerger:
    """Customer self-ordering session for one table"""

    def __init__(
        self,
        api: ApiClient,
        table_id: str,
        notifications: Optional[NotificationBus] = None,
        lifecycle: Optional[ViewLifecycle] = None,
        links: Optional[OrderBillLinks] = None,
    ):
        self.api = api
        self.table_id = table_id
        self.notifications = notifications or NotificationBus()
        self.lifecycle = lifecycle or ViewLifecycle(f"table-{table_id}")
        self.cart = Cart()
        self.snapshot: Optional[TableSnapshot] = None
        self.submitting = False
        self.links = links or OrderBillLinks()
        self.bill: Optional[Bill] = None
        self._billing_order_id: Optional[str] = None

    @property
    def active_order(self) -> Optional[Order]:
        return self.snapshot.active_order if self.snapshot else None

    @property
    def completed_order(self) -> Optional[Order]:
        if self.snapshot is None or self.snapshot.active_order is not None:
            return None
        return self.snapshot.completed_order

    @property
    def has_unbilled_orders(self) -> bool:
        if self.snapshot is None:
            return False
        return self.snapshot.has_completed_orders or self.completed_order is not None

    @property
    def running_total(self) -> RunningTotal:
        """Active order total and cart total as two separate numbers"""
        existing = self.active_order.total_amount if self.active_order else 0
        return RunningTotal(existing_total=existing, pending_total=self.cart.subtotal)

    async def open(self, poll_interval: Optional[float] = None) -> Optional[TableSnapshot]:
        """Load the table and keep it fresh with a silent timed refresh"""
        snapshot = await self.refresh()
        refresher = PeriodicRefresher(
            lambda: self.refresh(silent=True),
            poll_interval or self.api.settings.customer_poll_seconds,
            name=f"table-{self.table_id}",
        )
        self.lifecycle.add_closer(refresher.stop)
        refresher.start()
        return snapshot

    async def refresh(self, silent: bool = False) -> Optional[TableSnapshot]:
        """
        Re-fetch the table snapshot from the server.

        Returns None when the view was torn down while the request was in
        flight; the late result is not applied.
        """
        try:
            payload = await self.api.get_json(f"/customer/table/{self.table_id}")
            snapshot = parse_model(payload, TableSnapshot)
        except RestroPOSError as e:
            if not silent:
                self.notifications.error(e.detail, source=SOURCE, table_id=self.table_id)
            logger.warning(f"Table {self.table_id} refresh failed: {e.detail}")
            raise

        if not self.lifecycle.is_open:
            logger.debug(f"Dropping table {self.table_id} snapshot after teardown")
            return None

        self._apply_snapshot(snapshot, silent)
        return snapshot

    def _apply_snapshot(self, snapshot: TableSnapshot, silent: bool) -> None:
        previous = self.snapshot
        self.snapshot = snapshot

        had_unbilled = previous is not None and (
            previous.has_completed_orders or previous.completed_order is not None
        )
        if (
            had_unbilled
            and not self.has_unbilled_orders
            and snapshot.active_order is None
        ):
            # Bills were generated elsewhere; the table starts over
            self.cart.clear()
            if not silent:
                self.notifications.success(
                    "Table is now available for new orders!",
                    source=SOURCE,
                    table_id=self.table_id,
                )

    def build_request(self) -> Dict[str, Any]:
        if self.cart.is_empty:
            raise ValidationError("Your cart is empty")
        return {"tableId": self.table_id, "items": self.cart.request_items()}

    async def submit(self) -> PlaceOrderResult:
        """
        Send the cart to the order-service.

        An empty cart is rejected without a request. On success the cart
        is cleared and the snapshot re-fetched. On any rejection, server
        failure or transport failure the snapshot is re-fetched and the
        error is re-raised; the submission is never repeated automatically. A 401 ends the
        session and is re-raised without a re-fetch.
        """
        try:
            request = self.build_request()
        except ValidationError as e:
            self.notifications.error(e.detail, source=SOURCE, table_id=self.table_id)
            raise
        if self.submitting:
            raise ValidationError("An order is already being placed")

        merging = self.active_order is not None
        self.submitting = True
        try:
            payload = await self.api.post_json("/customer/order", request)
            result = parse_model(payload, PlaceOrderResult)
        except APIError as e:
            self.notifications.error(
                e.detail, source=SOURCE, table_id=self.table_id, status=e.status_code
            )
            if not isinstance(e, AuthenticationError):
                await self._resync()
            raise
        except (TransportError, PayloadError):
            self.notifications.error(
                "Could not confirm the order. Checking the order status...",
                source=SOURCE,
                table_id=self.table_id,
            )
            await self._resync()
            raise
        finally:
            self.submitting = False

        if not self.lifecycle.is_open:
            return result

        self.cart.clear()
        if result.is_new_order:
            message = result.message or "Order placed successfully!"
        else:
            message = result.message or "Items added to your order!"
        if merging and result.is_new_order:
            logger.info(
                f"Table {self.table_id}: expected a merge but server created order {result.order_id}"
            )
        self.notifications.success(
            message,
            source=SOURCE,
            table_id=self.table_id,
            order_id=result.order_id,
            is_new_order=result.is_new_order,
        )
        await self._resync()
        return result

    @property
    def billable_order(self) -> Optional[Order]:
        """The order a customer bill is generated from"""
        return self.completed_order or self.active_order

    async def generate_bill(self) -> Bill:
        """
        Generate the bill of the table's order from the self-service session.

        An order already linked to a bill, or one whose bill is still
        being generated, is refused without a request. The table is
        re-fetched afterwards whatever the outcome, except after a 401.
        """
        order = self.billable_order
        if order is None:
            error = ValidationError("No order found")
            self.notifications.error(error.detail, source=SOURCE, table_id=self.table_id)
            raise error
        existing = self.links.bill_for(order.id)
        if existing:
            error = DuplicateBillError(order.id, bill_id=existing)
            self.notifications.warning(error.detail, source=SOURCE, order_id=order.id)
            raise error
        if self._billing_order_id is not None:
            raise DuplicateBillError(
                self._billing_order_id, detail="Bill generation already in progress for this order"
            )

        self._billing_order_id = order.id
        try:
            payload = await self.api.post_json(
                f"/customer/order/{order.id}/generate-bill", params={"tableId": self.table_id}
            )
            bill = parse_model(payload, Bill)
        except AuthenticationError:
            raise
        except APIError as e:
            message = error_message(e.payload) or BILL_FAILED
            self.notifications.error(message, source=SOURCE, order_id=order.id)
            await self._resync()
            raise
        except (TransportError, PayloadError):
            self.notifications.error(BILL_FAILED, source=SOURCE, order_id=order.id)
            await self._resync()
            raise
        finally:
            self._billing_order_id = None

        self.links.record_bill(bill, [order.id])
        if not self.lifecycle.is_open:
            return bill

        self.bill = bill
        logger.info(f"Table {self.table_id}: generated bill {bill.id} for order {order.id}")
        self.notifications.success(
            "Bill generated successfully!", source=SOURCE, order_id=order.id, bill_id=bill.id
        )
        await self._resync()
        return bill

    async def download_bill(self, bill_id: Optional[str] = None) -> InvoiceDocument:
        """Download the PDF of a bill generated for this table, the latest one by default"""
        bill_id = bill_id or (self.bill.id if self.bill else None)
        if bill_id is None:
            error = ValidationError("No bill to download")
            self.notifications.error(error.detail, source=SOURCE, table_id=self.table_id)
            raise error
        invoices = InvoiceService(self.api, self.notifications)
        return await invoices.download_customer_bill(bill_id, self.table_id)

    async def _resync(self) -> None:
        try:
            await self.refresh(silent=True)
        except RestroPOSError as e:
            logger.warning(f"Table {self.table_id} resync failed: {e.detail}")

    async def close(self) -> None:
        await self.lifecycle.close()
