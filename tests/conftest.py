"""
Pytest configuration and fixtures for modpolicy tests.
"""

import copy
import itertools
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modpolicy.store.policy_store import StateEventNotFound  # noqa: E402

ROOM_ID = "!policies:example.org"
ROOM_REF = "https://matrix.to/#/#bans:example.org"
MODERATOR = "@mod:example.org"


class FakePolicyStore:
    """In-memory stand-in for a homeserver holding policy rooms.

    ``room_state`` maps room IDs to the list of state events returned by
    ``get_room_state``. Point lookups search that same list, so tests only
    have to describe the room once.
    """

    def __init__(self) -> None:
        self.room_state: Dict[str, List[Dict[str, Any]]] = {}
        self.sent: List[tuple] = []
        self.lookups: List[tuple] = []
        self.state_error: Exception | None = None
        self.lookup_errors: Dict[str, Exception] = {}
        self.send_hook: Callable[[str, str, str, Dict[str, Any]], None] | None = None
        self.fetch_count = 0
        self._ids = itertools.count(1)

    def set_state(self, events: List[Dict[str, Any]], room_id: str = ROOM_ID) -> None:
        self.room_state[room_id] = events

    async def get_room_state(self, room_id: str) -> List[Dict[str, Any]]:
        self.fetch_count += 1
        if self.state_error is not None:
            raise self.state_error
        return copy.deepcopy(self.room_state.get(room_id, []))

    async def get_state_event(self, room_id: str, event_type: str, state_key: str) -> Dict[str, Any]:
        self.lookups.append((room_id, event_type, state_key))
        if event_type in self.lookup_errors:
            raise self.lookup_errors[event_type]
        for event in self.room_state.get(room_id, []):
            if event["type"] == event_type and event["state_key"] == state_key:
                return copy.deepcopy(event.get("content", {}))
        raise StateEventNotFound(f"No {event_type}/{state_key} in {room_id}")

    async def send_state_event(
        self, room_id: str, event_type: str, state_key: str, content: Dict[str, Any]
    ) -> str:
        if self.send_hook is not None:
            self.send_hook(room_id, event_type, state_key, content)
        self.sent.append((room_id, event_type, state_key, content))
        return f"$sent{next(self._ids)}"


def make_event(
    event_type: str,
    entity: str | None,
    event_id: str,
    *,
    recommendation: str | None = "m.ban",
    reason: str | None = "spam",
    sender: str = MODERATOR,
    state_key: str | None = None,
    content: Dict[str, Any] | None = None,
    redacted_by: str | None = None,
) -> Dict[str, Any]:
    """Build a raw state event for a policy rule.

    Passing ``content={}`` builds a soft-deleted rule; ``redacted_by`` builds
    the redacted form of the event, with empty content.
    """
    if content is None:
        content = {}
        if entity is not None:
            content["entity"] = entity
        if recommendation is not None:
            content["recommendation"] = recommendation
        if reason is not None:
            content["reason"] = reason

    unsigned: Dict[str, Any] = {}
    if redacted_by is not None:
        content = {}
        unsigned["redacted_because"] = {
            "sender": redacted_by,
            "event_id": f"$redaction-of-{event_id}",
            "type": "m.room.redaction",
            "content": {"reason": "rule retracted"},
        }

    return {
        "type": event_type,
        "state_key": state_key if state_key is not None else f"rule:{entity}",
        "content": content,
        "sender": sender,
        "event_id": event_id,
        "unsigned": unsigned,
    }


@pytest.fixture()
def store() -> FakePolicyStore:
    return FakePolicyStore()


@pytest.fixture()
def event_factory():
    return make_event
