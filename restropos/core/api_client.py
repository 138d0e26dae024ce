# restropos/core/api_client.py

"""
HTTP boundary to the remote order-service.

Wraps an ``httpx.AsyncClient`` with bearer authentication from the
session context and maps every failure onto the core's exception
taxonomy. Mutating calls are never retried here; callers re-fetch
authoritative state instead.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .config import Settings, get_settings
from .exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    TransportError,
)
from .session import SessionContext

logger = logging.getLogger(__name__)


def decode_error_body(content: bytes) -> Dict[str, Any]:
    """
    Recover an error payload from a response body.

    Bodies arrive as JSON, as plain text, or as text inside a binary
    envelope; all of them end up as a dict with a ``message`` when any
    text could be recovered.
    """
    if not content:
        return {}
    text = content.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"message": text}
    if isinstance(data, dict):
        return data
    if isinstance(data, str):
        return {"message": data}
    return {"message": text}


def error_message(payload: Dict[str, Any]) -> Optional[str]:
    for key in ("error", "message", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ApiClient:
    """Async client for the order-service REST API"""

    def __init__(
        self,
        session: SessionContext,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.http_client = httpx.AsyncClient(
            base_url=self.settings.api_url,
            timeout=self.settings.http_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """Issue a request and raise the matching APIError on failure"""
        headers = {"Accept": "application/json, */*"}
        headers.update(self.session.auth_headers())

        try:
            response = await self.http_client.request(
                method, path, params=params, json=json_body, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise TransportError("Request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransportError(f"Network error: {e}") from e

        self._raise_for_status(method, path, response)
        return response

    def _raise_for_status(
        self, method: str, path: str, response: httpx.Response
    ) -> None:
        status_code = response.status_code
        if status_code < 400:
            return

        payload = decode_error_body(response.content)
        message = error_message(payload)

        if status_code == 401:
            logger.warning(f"{method} {path} rejected with 401, invalidating session")
            self.session.invalidate("unauthorized")
            raise AuthenticationError(payload=payload)

        if status_code == 403:
            logger.warning(
                f"Access denied: role {self.session.role} cannot {method} {path}"
            )
            raise PermissionDeniedError(payload=payload)

        if status_code == 404:
            raise NotFoundError(detail=message, payload=payload)

        if status_code < 500:
            logger.info(f"{method} {path} rejected with {status_code}: {message}")
            raise ConflictError(
                status_code=status_code,
                detail=message or response.reason_phrase or None,
                payload=payload,
            )

        logger.error(f"{method} {path} failed with {status_code}: {message}")
        raise ServiceError(status_code=status_code, detail=message, payload=payload)

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            # Left for the normalization step to interpret
            return response.text

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.request("GET", path, params=params)
        return self._decode_json(response)

    async def post_json(
        self,
        path: str,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self.request("POST", path, params=params, json_body=json_body)
        return self._decode_json(response)

    async def put_json(
        self,
        path: str,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self.request("PUT", path, params=params, json_body=json_body)
        return self._decode_json(response)

    async def get_binary(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Fetch a binary payload; the caller inspects content and type."""
        return await self.request("GET", path, params=params)
