# restropos/modules/modifiers/services/modifier_validator.py

"""
Modifier selection rules.

Constraints per group:

* required groups need between ``min_selection`` (1 when unset) and
  ``max_selection`` (unbounded when unset) selections;
* single-select groups hold at most one selection. Picking another
  modifier in such a group replaces the previous pick instead of
  raising an error.

Validation stops at the first offending group so the caller can show a
single message.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from restropos.core.exceptions import ValidationError

from ..schemas.modifier_schemas import (
    Modifier,
    ModifierGroup,
    ModifierValidationResult,
    SelectedModifier,
)

logger = logging.getLogger(__name__)


def _index_modifiers(
    groups: Sequence[ModifierGroup],
) -> Dict[str, Tuple[ModifierGroup, Modifier]]:
    index = {}
    for group in groups:
        for modifier in group.modifiers:
            index[modifier.id] = (group, modifier)
    return index


def apply_exclusive_choice(
    groups: Sequence[ModifierGroup], selections: Sequence[SelectedModifier]
) -> List[SelectedModifier]:
    """Keep only the latest selection of every single-select group"""
    index = _index_modifiers(groups)
    latest_in_group: Dict[str, int] = {}
    for position, selection in enumerate(selections):
        entry = index.get(selection.modifier_id)
        if entry and not entry[0].allow_multiple:
            latest_in_group[entry[0].id] = position

    kept = []
    for position, selection in enumerate(selections):
        entry = index.get(selection.modifier_id)
        if entry and not entry[0].allow_multiple:
            if latest_in_group[entry[0].id] != position:
                continue
        kept.append(selection)
    return kept


def modifier_surcharge(selections: Sequence[SelectedModifier]) -> Decimal:
    return sum((s.price for s in selections), Decimal("0"))


def _reject(group: ModifierGroup, reason: str) -> ModifierValidationResult:
    return ModifierValidationResult(
        accepted=False, group_id=group.id, group_name=group.name, reason=reason
    )


def validate_modifier_selection(
    groups: Sequence[ModifierGroup], selections: Sequence[SelectedModifier]
) -> ModifierValidationResult:
    """
    Check a tentative selection against the groups of one menu item.

    Returns an accepted result carrying the selections and their total
    surcharge, or a rejection naming the first offending group.
    """
    index = _index_modifiers(groups)

    for selection in selections:
        entry = index.get(selection.modifier_id)
        if entry is None:
            return ModifierValidationResult(
                accepted=False,
                reason=f"{selection.name} is not available for this item",
            )
        group, modifier = entry
        if not (group.is_active and modifier.is_active):
            return _reject(group, f"{modifier.name} is currently unavailable")

    selections = apply_exclusive_choice(groups, selections)

    for group in groups:
        if not group.is_selectable:
            continue

        selected_count = sum(1 for s in selections if group.contains(s.modifier_id))

        if group.is_required:
            minimum = group.effective_min
            maximum = group.effective_max
            if selected_count < minimum:
                return _reject(
                    group, f"{group.name} requires at least {minimum} selection(s)"
                )
            if maximum is not None and selected_count > maximum:
                return _reject(
                    group, f"{group.name} allows maximum {maximum} selection(s)"
                )

    return ModifierValidationResult(
        accepted=True,
        selections=list(selections),
        surcharge=modifier_surcharge(selections),
    )


class ModifierSelection:
    """Tentative modifier selection for one menu item"""

    def __init__(self, groups: Sequence[ModifierGroup]):
        self.groups = list(groups)
        self._index = _index_modifiers(self.groups)
        self._selected: List[SelectedModifier] = []

    @property
    def selected(self) -> List[SelectedModifier]:
        return list(self._selected)

    @property
    def surcharge(self) -> Decimal:
        return modifier_surcharge(self._selected)

    def group_of(self, modifier_id: str) -> Optional[ModifierGroup]:
        entry = self._index.get(modifier_id)
        return entry[0] if entry else None

    def is_selected(self, modifier_id: str) -> bool:
        return any(s.modifier_id == modifier_id for s in self._selected)

    def toggle(self, modifier_id: str) -> List[SelectedModifier]:
        """
        Select or deselect a modifier.

        In multi-select groups this toggles. In single-select groups the
        new pick replaces any other pick of the same group in one step.
        """
        entry = self._index.get(modifier_id)
        if entry is None:
            raise ValidationError(f"Unknown modifier {modifier_id}")
        group, modifier = entry
        if not (group.is_active and modifier.is_active):
            raise ValidationError(f"{modifier.name} is currently unavailable")

        picked = SelectedModifier(
            modifier_id=modifier.id, name=modifier.name, price=modifier.price
        )

        if group.allow_multiple:
            if self.is_selected(modifier_id):
                self._selected = [
                    s for s in self._selected if s.modifier_id != modifier_id
                ]
            else:
                self._selected = self._selected + [picked]
        else:
            others = [s for s in self._selected if not group.contains(s.modifier_id)]
            self._selected = others + [picked]

        return self.selected

    def clear(self) -> None:
        self._selected = []

    def validate(self) -> ModifierValidationResult:
        return validate_modifier_selection(self.groups, self._selected)
