"""
Policy rule kinds and the state event types that carry them.

Each kind has been published under several event types over time. The alias
tuples below are ordered by authority: the current standard type comes first
and older, deprecated types follow. A rule stored under a newer type must never
be replaced by one of an older type, even if the older event is more recent,
since that is usually a stale client still writing the legacy type.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class RuleKind(Enum):
    """The three kinds of entity a policy rule can target.

    The value of each member is the current standard state event type, which
    is also the type rules are normalised to when they are cached.
    """

    USER = "m.policy.rule.user"
    ROOM = "m.policy.rule.room"
    SERVER = "m.policy.rule.server"

    def __str__(self) -> str:
        return self.value


USER_RULE_TYPES: Tuple[str, ...] = (RuleKind.USER.value, "m.room.rule.user", "org.matrix.mjolnir.rule.user")
ROOM_RULE_TYPES: Tuple[str, ...] = (RuleKind.ROOM.value, "m.room.rule.room", "org.matrix.mjolnir.rule.room")
SERVER_RULE_TYPES: Tuple[str, ...] = (RuleKind.SERVER.value, "m.room.rule.server", "org.matrix.mjolnir.rule.server")

RULE_TYPES_BY_KIND: Dict[RuleKind, Tuple[str, ...]] = {
    RuleKind.USER: USER_RULE_TYPES,
    RuleKind.ROOM: ROOM_RULE_TYPES,
    RuleKind.SERVER: SERVER_RULE_TYPES,
}

ALL_RULE_TYPES: Tuple[str, ...] = USER_RULE_TYPES + ROOM_RULE_TYPES + SERVER_RULE_TYPES

SHORTCODE_EVENT_TYPE = "org.matrix.mjolnir.shortcode"

_KIND_BY_TYPE: Dict[str, RuleKind] = {
    event_type: kind for kind, event_types in RULE_TYPES_BY_KIND.items() for event_type in event_types
}


def kind_for_type(event_type: str) -> RuleKind | None:
    """Return the rule kind an event type belongs to, or None for non-rule types."""
    return _KIND_BY_TYPE.get(event_type)


def stable_type_for(event_type: str, unstable: bool = False) -> str | None:
    """
    Map any alias of a rule type to the canonical type of its kind.

    With ``unstable=True`` the ``org.matrix.mjolnir.*`` type is returned
    instead of the standard one. Non-rule types give None.
    """
    kind = kind_for_type(event_type)
    if kind is None:
        return None
    event_types = RULE_TYPES_BY_KIND[kind]
    return event_types[-1] if unstable else event_types[0]


def types_for_kind(kind: RuleKind) -> Tuple[str, ...]:
    """Return every event type used for `kind`, most authoritative first."""
    return RULE_TYPES_BY_KIND[kind]


def type_authority(kind: RuleKind, event_type: str) -> int:
    """
    Return the position of `event_type` in the alias table of `kind`.

    Lower is more authoritative: 0 is the current standard type.

    Raises:
        ValueError: If `event_type` is not an alias of `kind`.
    """
    try:
        return RULE_TYPES_BY_KIND[kind].index(event_type)
    except ValueError:
        raise ValueError(f"{event_type!r} is not a {kind.name.lower()} rule type") from None

