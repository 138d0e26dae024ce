import logging
from typing import List, Optional

from restropos.core.api_client import ApiClient
from restropos.core.exceptions import NotFoundError, PayloadError
from restropos.core.normalization import parse_models
from restropos.core.notifications import NotificationBus

from ..schemas.modifier_schemas import ModifierGroup, ModifierValidationResult
from .modifier_validator import ModifierSelection

logger = logging.getLogger(__name__)


class ModifierCatalogService:
    """Loads modifier groups for menu items from the catalog service"""

    def __init__(self, api: ApiClient, notifications: Optional[NotificationBus] = None):
        self.api = api
        self.notifications = notifications or NotificationBus()

    async def get_modifier_groups(self, menu_item_id: str) -> List[ModifierGroup]:
        """Ordered modifier groups for an item; an item without any yields []"""
        try:
            payload = await self.api.get_json(
                f"/modifiers/menu-items/{menu_item_id}/modifier-groups"
            )
        except NotFoundError:
            logger.info(f"Menu item {menu_item_id} has no modifier groups")
            return []

        try:
            return parse_models(payload, ModifierGroup)
        except PayloadError as e:
            logger.error(f"Bad modifier groups for item {menu_item_id}: {e}")
            self.notifications.error("Failed to load add-ons", source="modifiers")
            raise

    async def start_selection(self, menu_item_id: str) -> ModifierSelection:
        groups = await self.get_modifier_groups(menu_item_id)
        return ModifierSelection(groups)

    def confirm(self, selection: ModifierSelection) -> ModifierValidationResult:
        """Validate before checkout; a rejection is surfaced as one message"""
        result = selection.validate()
        if not result.accepted:
            self.notifications.error(
                result.reason or "Invalid add-on selection",
                source="modifiers",
                group_id=result.group_id,
            )
        return result
