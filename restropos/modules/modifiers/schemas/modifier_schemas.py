"""
Modifier (add-on) schemas.

Groups arrive from the catalog service either bare or wrapped in a
menu-item link object (``{"modifierGroup": {...}}``); the wrapper is
removed before validation.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, Field, model_validator

from restropos.core.schemas import ServerModel


class Modifier(ServerModel):
    id: str
    name: str
    price: Decimal = Field(default=Decimal("0"), description="Price delta")
    is_active: bool = True


class ModifierGroup(ServerModel):
    id: str
    name: str
    description: Optional[str] = None
    is_required: bool = Field(
        default=False,
        validation_alias=AliasChoices("isRequired", "required", "is_required"),
    )
    allow_multiple: bool = False
    min_selection: Optional[int] = Field(default=None, ge=0)
    max_selection: Optional[int] = Field(default=None, ge=0)
    is_active: bool = True
    modifiers: List[Modifier] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def unwrap_link(cls, data):
        if isinstance(data, dict) and isinstance(data.get("modifierGroup"), dict):
            return data["modifierGroup"]
        return data

    @property
    def active_modifiers(self) -> List[Modifier]:
        return [m for m in self.modifiers if m.is_active]

    @property
    def is_selectable(self) -> bool:
        """Inactive groups and groups without active modifiers are skipped"""
        return self.is_active and bool(self.active_modifiers)

    @property
    def effective_min(self) -> int:
        return self.min_selection or 1

    @property
    def effective_max(self) -> Optional[int]:
        return self.max_selection or None

    def contains(self, modifier_id: str) -> bool:
        return any(m.id == modifier_id for m in self.modifiers)


class SelectedModifier(ServerModel):
    modifier_id: str
    name: str
    price: Decimal = Decimal("0")


class ModifierValidationResult(ServerModel):
    """Outcome of validating a selection; rejections name one group"""

    accepted: bool
    selections: List[SelectedModifier] = Field(default_factory=list)
    surcharge: Decimal = Decimal("0")
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    reason: Optional[str] = None
