from dataclasses import dataclass, field
from typing import Dict

# Fixed destinations of the order event channel
ORDER_TOPIC = "/topic/orders"
ORDER_PUBLISH_DESTINATION = "/app/order-updates"


@dataclass
class StompFrame:
    """A single STOMP frame"""

    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
