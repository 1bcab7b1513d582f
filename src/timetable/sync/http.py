"""HTTP client for the status endpoints of the timetable API.

Used as the StatusStore behind a ResilientMutationController on the client
side. Failure mapping:

- transport errors, 408, 429 and 5xx responses -> ``TransientNetworkError``
- other 4xx responses -> ``StatusRejectedError``
- 404 on read -> ``None`` (field never written)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from timetable.errors import StatusRejectedError, TransientNetworkError
from timetable.sync.store import StatusStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Client-side statuses that say "try again later" rather than "never".
_TRANSIENT_STATUS_CODES = frozenset({408, 429})


def _error_message(response: httpx.Response) -> str:
    """Pull the message out of an ``{"error": {...}}`` envelope if present."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        detail = payload.get("detail")
        if detail:
            return str(detail)
    return response.reason_phrase


class HttpStatusStore(StatusStore):
    """StatusStore that talks to ``/api/status/{entity_id}/{field_key}``."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if client is None and base_url is None:
            raise ValueError("HttpStatusStore needs a base_url or a client")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or "", timeout=timeout)

    @staticmethod
    def _path(entity_id: str, field_key: str) -> str:
        return f"/api/status/{quote(entity_id, safe='')}/{quote(field_key, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Status request %s %s failed: %s", method, path, exc)
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS_CODES:
            raise TransientNetworkError(
                f"{method} {path} returned {response.status_code}: {_error_message(response)}"
            )
        return response

    async def read_status(self, entity_id: str, field_key: str) -> str | None:
        response = await self._request("GET", self._path(entity_id, field_key))
        if response.status_code == 404:
            return None
        if response.is_client_error:
            raise StatusRejectedError(field_key, None, _error_message(response))
        return response.json()["data"]["value"]

    async def write_status(self, entity_id: str, field_key: str, value: str) -> str:
        response = await self._request(
            "PUT", self._path(entity_id, field_key), json={"value": value}
        )
        if response.is_client_error:
            raise StatusRejectedError(field_key, value, _error_message(response))
        return response.json()["data"]["value"]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
