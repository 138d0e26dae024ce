# restropos/core/notifications.py

"""
User-facing notifications emitted by the core.

Services never talk to a toast or a dialog directly. They publish a
``Notification`` on the bus and whatever presentation layer is attached
subscribes to it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Notification severity levels"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """Standard notification message structure"""

    level: NotificationLevel
    message: str
    source: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


NotificationHandler = Callable[[Notification], None]


class NotificationBus:
    """Synchronous fan-out of notifications to subscribed handlers"""

    def __init__(self):
        self._handlers: List[NotificationHandler] = []

    def subscribe(self, handler: NotificationHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it"""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        logger.debug(
            f"Notification [{notification.level.value}] from {notification.source}: "
            f"{notification.message}"
        )
        for handler in list(self._handlers):
            try:
                handler(notification)
            except Exception as e:
                logger.error(f"Notification handler failed: {e}", exc_info=True)

    def info(self, message: str, source: str, **metadata: Any) -> Notification:
        return self._emit(NotificationLevel.INFO, message, source, metadata)

    def success(self, message: str, source: str, **metadata: Any) -> Notification:
        return self._emit(NotificationLevel.SUCCESS, message, source, metadata)

    def warning(self, message: str, source: str, **metadata: Any) -> Notification:
        return self._emit(NotificationLevel.WARNING, message, source, metadata)

    def error(self, message: str, source: str, **metadata: Any) -> Notification:
        return self._emit(NotificationLevel.ERROR, message, source, metadata)

    def _emit(
        self,
        level: NotificationLevel,
        message: str,
        source: str,
        metadata: Optional[Dict[str, Any]],
    ) -> Notification:
        notification = Notification(
            level=level, message=message, source=source, metadata=metadata or {}
        )
        self.publish(notification)
        return notification
