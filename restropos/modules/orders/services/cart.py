from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from restropos.core.exceptions import ValidationError
from restropos.modules.modifiers.schemas.modifier_schemas import SelectedModifier

from ..schemas.order_schemas import CartLine, MenuItem

LineKey = Tuple[str, Tuple[str, ...]]


class Cart:
    """
    Items being added for one table.

    Lines are keyed by menu item and modifier set, so the same dish with
    different add-ons stays on separate lines.
    """

    def __init__(self):
        self._lines: Dict[LineKey, CartLine] = {}

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    def __len__(self) -> int:
        return len(self._lines)

    def add_item(
        self,
        menu_item: MenuItem,
        quantity: int = 1,
        modifiers: Optional[Sequence[SelectedModifier]] = None,
    ) -> CartLine:
        if not menu_item.available:
            raise ValidationError(f"{menu_item.name} is unavailable")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")

        line = CartLine(
            menu_item_id=menu_item.id,
            name=menu_item.name,
            base_price=menu_item.price,
            quantity=quantity,
            modifiers=list(modifiers or []),
        )
        existing = self._lines.get(line.key)
        if existing:
            line = existing.model_copy(update={"quantity": existing.quantity + quantity})
        self._lines[line.key] = line
        return line

    def update_quantity(self, key: LineKey, delta: int) -> Optional[CartLine]:
        """Change a line's quantity; the line is dropped when it reaches zero"""
        line = self._lines.get(key)
        if line is None:
            return None
        quantity = line.quantity + delta
        if quantity <= 0:
            del self._lines[key]
            return None
        line = line.model_copy(update={"quantity": quantity})
        self._lines[key] = line
        return line

    def remove(self, key: LineKey) -> None:
        self._lines.pop(key, None)

    def clear(self) -> None:
        self._lines.clear()

    def request_items(self) -> List[Dict[str, Any]]:
        return [line.to_request_item() for line in self._lines.values()]
