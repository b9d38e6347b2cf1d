"""HTTP client for the Matrix client-server API, limited to room state."""

from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import quote

import httpx

from modpolicy.store.policy_store import PolicyStoreError, StateEventNotFound
from modpolicy.util.logger import get_logger

logger = get_logger("matrix_store")

CLIENT_API_PREFIX = "/_matrix/client/v3"
_DEFAULT_TIMEOUT_SECONDS = 30.0


def _segment(value: str) -> str:
    # room ids, event types and state keys may contain '/', '#', ':' and '!'
    return quote(value, safe="")


class MatrixPolicyStore:
    """
    :class:`~modpolicy.store.policy_store.PolicyStore` backed by a Matrix homeserver.

    Args:
        homeserver_url: Base URL of the homeserver, e.g. ``https://matrix.org``.
        access_token: Access token of the account used to read and write policy rooms.
        timeout_seconds: Per-request timeout handed to httpx.
        client: Optional preconfigured ``httpx.AsyncClient`` (used by tests).
    """

    def __init__(
        self,
        homeserver_url: str,
        access_token: str,
        *,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=homeserver_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._client.headers["Authorization"] = f"Bearer {access_token}"

    async def __aenter__(self) -> MatrixPolicyStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # PolicyStore
    # ------------------------------------------------------------------

    async def get_room_state(self, room_id: str) -> List[Dict[str, Any]]:
        path = f"{CLIENT_API_PREFIX}/rooms/{_segment(room_id)}/state"
        payload = await self._request("GET", path)
        if not isinstance(payload, list):
            raise PolicyStoreError(f"Unexpected room state payload for {room_id}")
        return [event for event in payload if isinstance(event, dict)]

    async def get_state_event(self, room_id: str, event_type: str, state_key: str) -> Dict[str, Any]:
        payload = await self._request("GET", self._state_path(room_id, event_type, state_key))
        if not isinstance(payload, dict):
            raise PolicyStoreError(f"Unexpected state event payload for {event_type}/{state_key} in {room_id}")
        return payload

    async def send_state_event(
        self, room_id: str, event_type: str, state_key: str, content: Dict[str, Any]
    ) -> str:
        payload = await self._request("PUT", self._state_path(room_id, event_type, state_key), json=content)
        event_id = payload.get("event_id") if isinstance(payload, dict) else None
        if not isinstance(event_id, str):
            raise PolicyStoreError(f"Homeserver did not return an event_id for {event_type}/{state_key}")
        logger.debug("[MATRIX STORE] Sent %s/%s to %s as %s", event_type, state_key, room_id, event_id)
        return event_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _state_path(room_id: str, event_type: str, state_key: str) -> str:
        return (
            f"{CLIENT_API_PREFIX}/rooms/{_segment(room_id)}/state/"
            f"{_segment(event_type)}/{_segment(state_key)}"
        )

    async def _request(self, method: str, path: str, *, json: Dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise PolicyStoreError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            errcode, error = self._error_details(response)
            raise StateEventNotFound(error or f"{path} not found", errcode=errcode or "M_NOT_FOUND")

        if response.is_error:
            errcode, error = self._error_details(response)
            logger.error("[MATRIX STORE] %s %s returned %d %s: %s", method, path, response.status_code, errcode, error)
            raise PolicyStoreError(
                error or f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                errcode=errcode,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise PolicyStoreError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from exc

    @staticmethod
    def _error_details(response: httpx.Response) -> tuple[str | None, str | None]:
        try:
            body = response.json()
        except ValueError:
            return None, None
        if not isinstance(body, dict):
            return None, None
        return body.get("errcode"), body.get("error")
