"""
Boundary normalization for loosely typed server payloads.

The order-service sometimes returns JSON encoded as a string, sometimes a
bare list and sometimes a list wrapped in ``data`` or ``items``. All of
that is resolved here so business logic only ever sees typed lists.
"""

import json
import logging
from typing import Any, Dict, List, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .exceptions import PayloadError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

COLLECTION_KEYS: Sequence[str] = ("data", "items", "content")


def _decode_string(payload: str) -> Any:
    text = payload.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise PayloadError(f"Malformed JSON payload: {e}") from e


def normalize_collection(payload: Any) -> List[Any]:
    """Return the payload as a list, whatever envelope it arrived in"""
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        payload = _decode_string(payload)

    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in COLLECTION_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
        logger.warning(
            f"Object payload without a collection field: keys={sorted(payload)}"
        )
        return []

    raise PayloadError(f"Expected a collection, got {type(payload).__name__}")


def normalize_object(payload: Any) -> Dict[str, Any]:
    """Return the payload as a dict, decoding string-encoded JSON"""
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        payload = _decode_string(payload)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise PayloadError(f"Expected an object, got {type(payload).__name__}")
    return payload


def parse_model(payload: Any, model: Type[ModelT]) -> ModelT:
    try:
        return model.model_validate(normalize_object(payload))
    except PydanticValidationError as e:
        raise PayloadError(f"Invalid {model.__name__} payload: {e}") from e


def parse_models(payload: Any, model: Type[ModelT]) -> List[ModelT]:
    """Normalize a collection payload and validate every entry"""
    try:
        return [model.model_validate(entry) for entry in normalize_collection(payload)]
    except PydanticValidationError as e:
        raise PayloadError(f"Invalid {model.__name__} payload: {e}") from e
