# restropos/modules/modifiers/tests/test_modifier_validator.py

from decimal import Decimal

import pytest

from restropos.core.exceptions import PayloadError, ValidationError

from ..schemas.modifier_schemas import ModifierGroup, SelectedModifier
from ..services.modifier_service import ModifierCatalogService
from ..services.modifier_validator import ModifierSelection, validate_modifier_selection


def make_group(group_id, name, modifiers, **fields):
    return ModifierGroup.model_validate(
        {
            "id": group_id,
            "name": name,
            "modifiers": [
                {"id": mid, "name": mname, "price": price, "isActive": active}
                for mid, mname, price, active in modifiers
            ],
            **fields,
        }
    )


@pytest.fixture
def size_group():
    return make_group(
        "size",
        "Size",
        [("small", "Small", 0, True), ("large", "Large", 40, True)],
        isRequired=True,
        allowMultiple=False,
    )


@pytest.fixture
def toppings_group():
    return make_group(
        "toppings",
        "Toppings",
        [
            ("cheese", "Extra Cheese", 30, True),
            ("olives", "Olives", 20, True),
            ("jalapeno", "Jalapeno", 15, True),
            ("truffle", "Truffle", 200, False),
        ],
        required=True,
        allowMultiple=True,
        minSelection=1,
        maxSelection=2,
    )


def pick(modifier_id, name="", price=0):
    return SelectedModifier(modifier_id=modifier_id, name=name or modifier_id, price=price)


@pytest.mark.unit
class TestValidateModifierSelection:
    """Test group constraints on modifier selections"""

    def test_accepts_selection_within_bounds(self, size_group, toppings_group):
        result = validate_modifier_selection(
            [size_group, toppings_group],
            [pick("large", price=40), pick("cheese", price=30)],
        )

        assert result.accepted is True
        assert result.surcharge == Decimal("70")
        assert [s.modifier_id for s in result.selections] == ["large", "cheese"]

    def test_required_group_below_minimum(self, size_group, toppings_group):
        result = validate_modifier_selection([size_group, toppings_group], [pick("large")])

        assert result.accepted is False
        assert result.group_id == "toppings"
        assert result.reason == "Toppings requires at least 1 selection(s)"

    def test_required_group_above_maximum(self, size_group, toppings_group):
        result = validate_modifier_selection(
            [size_group, toppings_group],
            [pick("small"), pick("cheese"), pick("olives"), pick("jalapeno")],
        )

        assert result.accepted is False
        assert result.reason == "Toppings allows maximum 2 selection(s)"

    def test_first_offending_group_reported(self, size_group, toppings_group):
        result = validate_modifier_selection([size_group, toppings_group], [])

        assert result.group_name == "Size"

    def test_unset_max_is_unbounded(self):
        group = make_group(
            "sauces",
            "Sauces",
            [(f"s{i}", f"Sauce {i}", 5, True) for i in range(5)],
            isRequired=True,
            allowMultiple=True,
            maxSelection=None,
        )

        result = validate_modifier_selection([group], [pick(f"s{i}") for i in range(5)])

        assert result.accepted is True

    def test_single_select_keeps_latest_pick(self, size_group):
        result = validate_modifier_selection([size_group], [pick("small"), pick("large", price=40)])

        assert result.accepted is True
        assert [s.modifier_id for s in result.selections] == ["large"]
        assert result.surcharge == Decimal("40")

    def test_inactive_group_is_skipped(self):
        group = make_group(
            "sides", "Sides", [("fries", "Fries", 50, True)], isRequired=True, isActive=False
        )

        assert validate_modifier_selection([group], []).accepted is True

    def test_group_without_active_modifiers_is_skipped(self):
        group = make_group("sides", "Sides", [("fries", "Fries", 50, False)], isRequired=True)

        assert validate_modifier_selection([group], []).accepted is True

    def test_inactive_modifier_rejected(self, toppings_group):
        result = validate_modifier_selection([toppings_group], [pick("truffle")])

        assert result.accepted is False
        assert result.reason == "Truffle is currently unavailable"

    def test_unknown_modifier_rejected(self, size_group):
        result = validate_modifier_selection([size_group], [pick("ghost", name="Ghost")])

        assert result.accepted is False
        assert result.reason == "Ghost is not available for this item"

    def test_wrapped_group_payload(self):
        group = ModifierGroup.model_validate(
            {"modifierGroup": {"id": "g", "name": "G", "required": True, "modifiers": []}}
        )

        assert group.is_required is True
        assert group.effective_min == 1


class TestModifierSelection:
    """Test interactive modifier toggling"""

    def test_single_select_replaces_previous_pick(self, size_group, toppings_group):
        selection = ModifierSelection([size_group, toppings_group])

        selection.toggle("small")
        selection.toggle("cheese")
        selection.toggle("large")

        assert [s.modifier_id for s in selection.selected] == ["cheese", "large"]
        assert selection.surcharge == Decimal("70")

    def test_multi_select_toggles(self, toppings_group):
        selection = ModifierSelection([toppings_group])

        selection.toggle("cheese")
        selection.toggle("olives")
        selection.toggle("cheese")

        assert [s.modifier_id for s in selection.selected] == ["olives"]

    def test_inactive_modifier_cannot_be_picked(self, toppings_group):
        selection = ModifierSelection([toppings_group])

        with pytest.raises(ValidationError):
            selection.toggle("truffle")

    def test_surcharge_counted_once_across_validations(self, size_group, toppings_group):
        selection = ModifierSelection([size_group, toppings_group])
        selection.toggle("large")
        selection.toggle("olives")

        first = selection.validate()
        second = selection.validate()

        assert first.surcharge == second.surcharge == Decimal("60")


class TestModifierCatalogService:
    @pytest.mark.asyncio
    async def test_loads_groups(self, api, router, notifications):
        router.add(
            "GET",
            "/modifiers/menu-items/item-1/modifier-groups",
            json_body=[
                {"modifierGroup": {"id": "size", "name": "Size", "isRequired": True, "modifiers": [
                    {"id": "small", "name": "Small", "price": 0}
                ]}}
            ],
        )
        service = ModifierCatalogService(api, notifications)

        selection = await service.start_selection("item-1")

        assert [g.id for g in selection.groups] == ["size"]

    @pytest.mark.asyncio
    async def test_missing_item_has_no_groups(self, api, router, notifications):
        router.add("GET", "/modifiers/menu-items/item-9/modifier-groups", status_code=404)

        assert await ModifierCatalogService(api, notifications).get_modifier_groups("item-9") == []

    @pytest.mark.asyncio
    async def test_malformed_groups_notify(self, api, router, notifications, notices):
        router.add(
            "GET", "/modifiers/menu-items/item-1/modifier-groups", json_body=[{"name": "No id"}]
        )

        with pytest.raises(PayloadError):
            await ModifierCatalogService(api, notifications).get_modifier_groups("item-1")

        assert notices[-1].message == "Failed to load add-ons"

    @pytest.mark.asyncio
    async def test_confirm_reports_single_reason(self, api, notifications, notices, size_group):
        service = ModifierCatalogService(api, notifications)

        result = service.confirm(ModifierSelection([size_group]))

        assert result.accepted is False
        assert [n.message for n in notices] == ["Size requires at least 1 selection(s)"]
