# restropos/modules/orders/schemas/order_schemas.py

"""
Order, table and cart schemas.

Server payloads nest related objects (``table``, ``menuItem``); they are
flattened at validation time so the rest of the core works with plain
identifiers.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, model_validator

from restropos.core.schemas import ServerModel
from restropos.modules.modifiers.schemas.modifier_schemas import SelectedModifier


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def next_status(self) -> Optional["OrderStatus"]:
        """The single forward transition the client may request"""
        return _NEXT_STATUS.get(self)


_NEXT_STATUS = {
    OrderStatus.CREATED: OrderStatus.IN_PROGRESS,
    OrderStatus.IN_PROGRESS: OrderStatus.COMPLETED,
}


class MenuItem(ServerModel):
    id: str
    name: str
    category: Optional[str] = None
    price: Decimal
    available: bool = True
    tax_rate: Optional[Decimal] = None
    hsn_code: Optional[str] = None


class OrderItem(ServerModel):
    menu_item_id: str
    name: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = None
    price: Decimal = Field(default=Decimal("0"), description="Line price")

    @model_validator(mode="before")
    @classmethod
    def flatten_menu_item(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("menuItem"), dict):
            return data
        menu_item = data["menuItem"]
        flat = {k: v for k, v in data.items() if k != "menuItem"}
        flat.setdefault("menuItemId", menu_item.get("id"))
        flat.setdefault("name", menu_item.get("name"))
        flat.setdefault("unitPrice", menu_item.get("price"))
        if "price" not in flat and menu_item.get("price") is not None:
            flat["price"] = Decimal(str(menu_item["price"])) * int(flat.get("quantity", 1))
        return flat


class Order(ServerModel):
    id: str = Field(validation_alias=AliasChoices("id", "orderId"))
    table_id: Optional[str] = None
    table_number: Optional[str] = None
    outlet_id: Optional[str] = None
    status: OrderStatus
    items: List[OrderItem] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    has_bill: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_table(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("table"), dict):
            return data
        table = data["table"]
        flat = {k: v for k, v in data.items() if k != "table"}
        flat.setdefault("tableId", table.get("id"))
        flat.setdefault("tableNumber", table.get("tableNumber"))
        outlet = table.get("outlet")
        if isinstance(outlet, dict):
            flat.setdefault("outletId", outlet.get("id"))
        elif table.get("outletId") is not None:
            flat.setdefault("outletId", table.get("outletId"))
        return flat


class Table(ServerModel):
    id: str
    table_number: str
    occupied: bool = False
    capacity: Optional[int] = None
    location: Optional[str] = None
    outlet_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_outlet(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("outlet"), dict):
            data = dict(data)
            data.setdefault("outletId", data.pop("outlet").get("id"))
        return data


class TableSnapshot(ServerModel):
    """What the customer-facing table endpoint reports"""

    table_id: str = Field(validation_alias=AliasChoices("tableId", "id", "table_id"))
    table_number: Optional[str] = None
    location: Optional[str] = None
    active_order: Optional[Order] = None
    completed_order: Optional[Order] = None
    has_completed_orders: bool = False
    completed_orders_count: int = 0


class PlaceOrderResult(ServerModel):
    order_id: str
    is_new_order: bool = True
    message: Optional[str] = None


class CartLine(BaseModel):
    """Client-owned line; discarded once submitted"""

    menu_item_id: str
    name: str
    base_price: Decimal
    quantity: int = Field(..., gt=0)
    modifiers: List[SelectedModifier] = Field(default_factory=list)

    @property
    def key(self) -> Tuple[str, Tuple[str, ...]]:
        return (self.menu_item_id, tuple(sorted(m.modifier_id for m in self.modifiers)))

    @property
    def unit_price(self) -> Decimal:
        """Base price plus the modifier surcharge, applied once"""
        return self.base_price + sum((m.price for m in self.modifiers), Decimal("0"))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_request_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {"menuItemId": self.menu_item_id, "quantity": self.quantity}
        if self.modifiers:
            item["modifierIds"] = [m.modifier_id for m in self.modifiers]
        return item


class RunningTotal(BaseModel):
    """Existing order total and pending cart total, kept apart"""

    existing_total: Decimal = Decimal("0")
    pending_total: Decimal = Decimal("0")

    @property
    def display_total(self) -> Decimal:
        return self.existing_total + self.pending_total
