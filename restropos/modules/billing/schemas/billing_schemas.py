# restropos/modules/billing/schemas/billing_schemas.py

"""
Bill schemas.

A Bill is immutable once the order-service has generated it. The client
only reads it, renders it and links it to the orders it covers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator

from restropos.core.schemas import ServerModel


class BillItem(ServerModel):
    menu_item_id: Optional[str] = None
    name: str
    hsn_code: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Decimal("0")
    price: Decimal = Decimal("0")

    @model_validator(mode="before")
    @classmethod
    def flatten_menu_item(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("menuItem"), dict):
            return data
        menu_item = data["menuItem"]
        flat = {k: v for k, v in data.items() if k != "menuItem"}
        flat.setdefault("menuItemId", menu_item.get("id"))
        flat.setdefault("name", menu_item.get("name"))
        flat.setdefault("hsnCode", menu_item.get("hsnCode"))
        flat.setdefault("unitPrice", menu_item.get("price"))
        return flat


class Bill(ServerModel):
    id: str = Field(validation_alias=AliasChoices("billId", "id"))
    order_id: Optional[str] = None
    is_combined_bill: bool = False
    order_count: int = 1
    order_ids: List[str] = Field(default_factory=list)
    subtotal: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("subtotal", "totalAmount")
    )
    discount_amount: Decimal = Decimal("0")
    cgst: Decimal = Decimal("0")
    sgst: Decimal = Decimal("0")
    igst: Decimal = Decimal("0")
    tax_amount: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("taxAmount", "tax")
    )
    grand_total: Decimal = Decimal("0")
    customer_id: Optional[str] = None
    is_inter_state: bool = False
    place_of_supply: Optional[str] = None
    generated_at: Optional[datetime] = None
    items: List[BillItem] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def flatten_references(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        order = flat.pop("order", None)
        if isinstance(order, dict):
            flat.setdefault("orderId", order.get("id"))
        customer = flat.pop("customer", None)
        if isinstance(customer, dict):
            flat.setdefault("customerId", customer.get("id"))
        return flat

    @property
    def covered_order_ids(self) -> List[str]:
        """Every order id this bill is known to cover"""
        ids = list(self.order_ids)
        if self.order_id and self.order_id not in ids:
            ids.insert(0, self.order_id)
        return ids


class BillItemsView(ServerModel):
    """Response of the bill items endpoint"""

    items: List[BillItem] = Field(default_factory=list)
    is_combined_bill: bool = False
    order_count: int = 1

    @property
    def order_label(self) -> str:
        if self.is_combined_bill:
            return f"{self.order_count} orders combined"
        return "Order ID"


class CombinedBillPreview(BaseModel):
    """Client-side estimate for a combined bill before it is generated"""

    table_id: str
    order_ids: List[str]
    items: List[BillItem] = Field(default_factory=list)
    subtotal: Decimal
    cgst: Decimal = Decimal("0.00")
    sgst: Decimal = Decimal("0.00")
    igst: Decimal = Decimal("0.00")
    is_inter_state: bool = False
    place_of_supply: Optional[str] = None
    grand_total: Decimal

    @property
    def is_combined_bill(self) -> bool:
        return len(self.order_ids) > 1

    @property
    def order_count(self) -> int:
        return len(self.order_ids)

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


class InvoiceDocument(BaseModel):
    bill_id: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def filename(self) -> str:
        return f"invoice-{self.bill_id}.pdf"
