"""
Interface to the remote state store that holds policy lists.

A policy list is a room; each rule is one state event in it. The engine only
needs three operations: read the whole room state, read one state event, and
write one state event. :class:`modpolicy.store.matrix_store.MatrixPolicyStore`
implements them against a Matrix homeserver.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol


class PolicyStoreError(RuntimeError):
    """Raised when the state store rejects a request or cannot be reached.

    Attributes:
        status_code: HTTP status returned by the store, if there was a response.
        errcode: Store specific error code, e.g. ``M_FORBIDDEN``.
    """

    def __init__(self, message: str, *, status_code: int | None = None, errcode: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errcode = errcode


class StateEventNotFound(PolicyStoreError):
    """Raised by a point lookup when no state event exists for the type and state key."""

    def __init__(self, message: str, *, errcode: str | None = "M_NOT_FOUND") -> None:
        super().__init__(message, status_code=404, errcode=errcode)


class PolicyStore(Protocol):
    async def get_room_state(self, room_id: str) -> List[Dict[str, Any]]:
        """Return every current state event of the room, including empty and redacted ones."""
        ...

    async def get_state_event(self, room_id: str, event_type: str, state_key: str) -> Dict[str, Any]:
        """Return the content of one state event; raise StateEventNotFound if there is none."""
        ...

    async def send_state_event(
        self, room_id: str, event_type: str, state_key: str, content: Dict[str, Any]
    ) -> str:
        """Write one state event and return its event ID."""
        ...
