import logging
from typing import List, Optional

from restropos.core.api_client import ApiClient
from restropos.core.exceptions import RestroPOSError
from restropos.core.normalization import parse_models
from restropos.core.notifications import NotificationBus
from restropos.core.permissions import Permission, check_permission
from restropos.modules.orders.schemas.order_schemas import Table

from .lifecycle import ViewLifecycle
from .polling import PeriodicRefresher

logger = logging.getLogger(__name__)

SOURCE = "tables"


class TableOccupancyMonitor:
    """Table occupancy kept current by timed refresh only"""

    def __init__(
        self,
        api: ApiClient,
        notifications: Optional[NotificationBus] = None,
        poll_interval: Optional[float] = None,
    ):
        self.api = api
        self.notifications = notifications or NotificationBus()
        self.lifecycle = ViewLifecycle("tables")
        self.poll_interval = poll_interval or api.settings.table_poll_seconds
        self.tables: List[Table] = []

    @property
    def occupied(self) -> List[Table]:
        return [t for t in self.tables if t.occupied]

    @property
    def available(self) -> List[Table]:
        return [t for t in self.tables if not t.occupied]

    async def open(self) -> List[Table]:
        check_permission(self.api.session, Permission.TABLE_MANAGE)
        tables = await self.refresh()
        refresher = PeriodicRefresher(
            lambda: self.refresh(silent=True), self.poll_interval, name="tables"
        )
        self.lifecycle.add_closer(refresher.stop)
        refresher.start()
        return tables

    async def refresh(self, silent: bool = False) -> List[Table]:
        try:
            payload = await self.api.get_json("/tables")
            tables = parse_models(payload, Table)
        except RestroPOSError as e:
            if not silent:
                self.notifications.error("Failed to load tables", source=SOURCE, reason=e.detail)
            raise
        if self.lifecycle.is_open:
            self.tables = tables
        return self.tables

    async def close(self) -> None:
        await self.lifecycle.close()
