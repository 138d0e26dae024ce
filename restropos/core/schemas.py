from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ServerModel(BaseModel):
    """Base for payloads exchanged with the order-service (camelCase JSON)"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )
