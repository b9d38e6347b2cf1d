"""
Data structures for policy rules, the state events that carry them, and the
changes produced when a policy list is reconciled.

Raw state events are arbitrary JSON from the homeserver. They are validated
once, at the point where they enter the engine, by :meth:`PolicyRecord.from_event`;
everything downstream works with the typed records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Mapping

from modpolicy.policy.rule_types import RuleKind, kind_for_type

RECOMMENDATION_BAN = "m.ban"
RECOMMENDATION_BAN_TYPES = (RECOMMENDATION_BAN, "org.matrix.mjolnir.ban")

DEFAULT_REASON = "<no reason>"


def normalise_recommendation(recommendation: str) -> str:
    """Collapse the known aliases of a recommendation onto its stable name."""
    if recommendation in RECOMMENDATION_BAN_TYPES:
        return RECOMMENDATION_BAN
    return recommendation


def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Compile a glob using ``*`` and ``?`` wildcards into an anchored pattern."""
    parts = []
    for char in glob:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


class InvalidPolicyRecord(ValueError):
    """Raised when a raw state event is missing the fields every record needs."""


class ChangeType(Enum):
    """How a rule changed during a reconciliation pass."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    REMOVED = "REMOVED"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class PolicyRule:
    """A single rule from a policy list.

    Attributes:
        entity: The user, room or server the rule targets. May be a glob.
        recommendation: What the list recommends doing, e.g. ``m.ban``.
        reason: Human readable reason, ``<no reason>`` when none was given.
        kind: Which kind of entity the rule targets.
    """

    entity: str
    recommendation: str
    reason: str
    kind: RuleKind

    @classmethod
    def from_content(cls, content: Mapping[str, Any], kind: RuleKind) -> PolicyRule | None:
        """
        Parse a rule from state event content.

        Returns None when `entity` or `recommendation` is missing or not a
        string; such content is how a rule is marked as deleted.
        """
        entity = content.get("entity")
        recommendation = content.get("recommendation")
        if not entity or not isinstance(entity, str):
            return None
        if not recommendation or not isinstance(recommendation, str):
            return None

        reason = content.get("reason")
        if not reason or not isinstance(reason, str):
            reason = DEFAULT_REASON

        return cls(
            entity=entity,
            recommendation=normalise_recommendation(recommendation),
            reason=reason,
            kind=kind,
        )

    @property
    def is_ban(self) -> bool:
        return self.recommendation == RECOMMENDATION_BAN

    def matches(self, entity: str) -> bool:
        """Return True if `entity` is covered by this rule's (possibly glob) entity."""
        return _compiled_glob(self.entity).fullmatch(entity) is not None


GLOB_CACHE_SIZE = 4096


@lru_cache(maxsize=GLOB_CACHE_SIZE)
def _compiled_glob(glob: str) -> re.Pattern[str]:
    return glob_to_regex(glob)


@dataclass(slots=True, frozen=True)
class RedactionInfo:
    """Who redacted a record and why.

    Attributes:
        sender: The user that issued the redaction.
        event_id: ID of the redaction event itself.
        reason: Reason given for the redaction, if any.
    """

    sender: str
    event_id: str | None = None
    reason: str | None = None

    @classmethod
    def from_unsigned(cls, unsigned: Mapping[str, Any]) -> RedactionInfo | None:
        redacted_because = unsigned.get("redacted_because")
        if not isinstance(redacted_because, dict):
            return None
        content = redacted_because.get("content")
        reason = content.get("reason") if isinstance(content, dict) else None
        return cls(
            sender=str(redacted_because.get("sender") or ""),
            event_id=redacted_because.get("event_id"),
            reason=reason if isinstance(reason, str) else None,
        )


@dataclass(slots=True)
class PolicyRecord:
    """A state event from a policy room, as last observed.

    Attributes:
        event_type: The state event type exactly as it was sent (not normalised).
        state_key: The state key, ``rule:<entity>`` for rules.
        content: Raw event content. Empty when the rule was soft deleted or redacted.
        sender: The user that sent the event.
        event_id: Unique ID of this version of the state.
        redaction: Set when the event has been redacted.
        unsigned: Raw unsigned extras from the homeserver.
        rule: The rule parsed from this record during reconciliation, if it was valid.
    """

    event_type: str
    state_key: str
    content: Dict[str, Any]
    sender: str
    event_id: str
    redaction: RedactionInfo | None = None
    unsigned: Dict[str, Any] = field(default_factory=dict)
    rule: PolicyRule | None = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> PolicyRecord:
        """
        Build a record from a raw state event.

        Raises:
            InvalidPolicyRecord: If type, state_key or event_id is missing or
                the content is not a mapping.
        """
        event_type = event.get("type")
        state_key = event.get("state_key")
        event_id = event.get("event_id")
        if not isinstance(event_type, str) or not isinstance(state_key, str) or not isinstance(event_id, str):
            raise InvalidPolicyRecord(f"State event is missing type, state_key or event_id: {dict(event)!r}")

        content = event.get("content")
        if content is None:
            content = {}
        if not isinstance(content, dict):
            raise InvalidPolicyRecord(f"Content of {event_id} is not an object")

        unsigned = event.get("unsigned")
        if not isinstance(unsigned, dict):
            unsigned = {}

        return cls(
            event_type=event_type,
            state_key=state_key,
            content=dict(content),
            sender=str(event.get("sender") or ""),
            event_id=event_id,
            redaction=RedactionInfo.from_unsigned(unsigned),
            unsigned=dict(unsigned),
        )

    @property
    def kind(self) -> RuleKind | None:
        return kind_for_type(self.event_type)

    @property
    def is_empty(self) -> bool:
        return not self.content

    @property
    def is_redacted(self) -> bool:
        return self.redaction is not None


@dataclass(slots=True, frozen=True)
class ListRuleChange:
    """A single rule change produced by reconciling a policy list.

    Attributes:
        change_type: Whether the rule was added, modified or removed.
        record: The record that caused the change. For a redaction this is the
            redacted version of the record.
        sender: Who caused the change. The record's sender, unless the change
            is a redaction, in which case it is the user who redacted it.
        rule: The current rule, or for a removal what the rule used to be.
        previous_record: The record that was replaced. Always set for
            MODIFIED and REMOVED, never for ADDED.
    """

    change_type: ChangeType
    record: PolicyRecord
    sender: str
    rule: PolicyRule
    previous_record: PolicyRecord | None = None
