"""
PolicyList: a cached, deduplicated model of one policy room.

The list keeps the last accepted state event for every (rule kind, state key)
pair and, each time :meth:`PolicyList.update_list` is called, reconciles that
cache with the room state fetched from the store. The result of a pass is the
ordered list of rule changes, which is also handed to every update listener.

Usage:
    policy_list = PolicyList(room_id, room_ref, store)
    policy_list.add_update_listener(on_update)
    changes = await policy_list.update_list()
    banned_users = policy_list.user_rules
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Hashable, List, Set

from modpolicy.configuration.batching_settings import BatchingSettings
from modpolicy.datatypes.policy_datatypes import (
    RECOMMENDATION_BAN,
    ChangeType,
    InvalidPolicyRecord,
    ListRuleChange,
    PolicyRecord,
    PolicyRule,
)
from modpolicy.policy.rule_types import (
    SHORTCODE_EVENT_TYPE,
    RuleKind,
    kind_for_type,
    stable_type_for,
    type_authority,
    types_for_kind,
)
from modpolicy.policy.update_batcher import UpdateBatcher
from modpolicy.store.policy_store import PolicyStore, StateEventNotFound
from modpolicy.util.logger import get_logger

logger = get_logger("policy_list")

UpdateListener = Callable[["PolicyList", List[ListRuleChange]], None]
BatchListener = Callable[["PolicyList"], None]


def rule_state_key(entity: str) -> str:
    return f"rule:{entity}"


class PolicyList:
    """
    Read model of a policy room.

    Rules are cached under their normalised kind, so the same rule published
    under ``m.policy.rule.user`` and ``org.matrix.mjolnir.rule.user`` occupies
    a single slot. Records are never dropped from the cache: a removed rule is
    kept as its empty or redacted record so that a later event of an older
    type can still be recognised as obsolete.

    ``update_list`` must not run concurrently with itself on the same
    instance; :class:`~modpolicy.policy.list_manager.PolicyListManager`
    serialises passes per list.

    Args:
        room_id: ID of the policy room.
        room_ref: Shareable reference to the room, used in log lines.
        store: State store used to read and write the room.
        batching: Settings for the update batcher.
    """

    def __init__(
        self,
        room_id: str,
        room_ref: str,
        store: PolicyStore,
        batching: BatchingSettings | None = None,
    ) -> None:
        self.room_id = room_id
        self.room_ref = room_ref
        self._store = store
        self._shortcode: str | None = None
        self._state: Dict[RuleKind, Dict[str, PolicyRecord]] = {}
        self._update_listeners: List[UpdateListener] = []
        self._batch_listeners: List[BatchListener] = []
        self._shortcode_writes: Set[asyncio.Task[None]] = set()
        self._batcher = UpdateBatcher(self._emit_batch, batching)

    def __repr__(self) -> str:
        return f"PolicyList({self.room_id!r}, shortcode={self._shortcode!r})"

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_update_listener(self, listener: UpdateListener) -> None:
        """Register a callback receiving ``(policy_list, changes)`` after every pass."""
        self._update_listeners.append(listener)

    def add_batch_listener(self, listener: BatchListener) -> None:
        """Register a callback receiving ``(policy_list)`` when a batch of notifications is ready."""
        self._batch_listeners.append(listener)

    def _emit_update(self, changes: List[ListRuleChange]) -> None:
        for listener in list(self._update_listeners):
            try:
                listener(self, changes)
            except Exception:
                logger.exception("[POLICY LIST] Update listener failed for %s", self.room_ref)

    def _emit_batch(self) -> None:
        for listener in list(self._batch_listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("[POLICY LIST] Batch listener failed for %s", self.room_ref)

    # ------------------------------------------------------------------
    # Shortcode
    # ------------------------------------------------------------------

    @property
    def list_shortcode(self) -> str:
        """The code used to refer to this list in moderator commands, or an empty string."""
        return self._shortcode or ""

    @list_shortcode.setter
    def list_shortcode(self, new_shortcode: str) -> None:
        """
        Set the shortcode locally and persist it in the background.

        If the write fails the local value is restored, unless another
        shortcode was set in the meantime. Must be called from within a
        running event loop.
        """
        previous = self._shortcode
        self._shortcode = new_shortcode
        task = asyncio.get_running_loop().create_task(self._write_shortcode(new_shortcode, previous))
        self._shortcode_writes.add(task)
        task.add_done_callback(self._shortcode_writes.discard)

    async def _write_shortcode(self, new_shortcode: str, previous: str | None) -> None:
        try:
            await self._store.send_state_event(self.room_id, SHORTCODE_EVENT_TYPE, "", {"shortcode": new_shortcode})
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[POLICY LIST] Failed to save shortcode %r for %s: %s", new_shortcode, self.room_ref, exc)
            if self._shortcode == new_shortcode:
                self._shortcode = previous

    # ------------------------------------------------------------------
    # Rule accessors
    # ------------------------------------------------------------------

    def rules_of_kind(self, kind: RuleKind) -> List[PolicyRule]:
        """
        Return the active ban rules of one kind.

        Only rules recommending a ban are returned, never rules with any other
        recommendation, so callers enforcing the list cannot act on an
        advisory rule by mistake. Add a separate accessor if other
        recommendations are ever needed.
        """
        rules: List[PolicyRule] = []
        for record in self._state.get(kind, {}).values():
            rule = record.rule
            if rule is not None and rule.kind is kind and rule.is_ban:
                rules.append(rule)
        return rules

    @property
    def server_rules(self) -> List[PolicyRule]:
        return self.rules_of_kind(RuleKind.SERVER)

    @property
    def user_rules(self) -> List[PolicyRule]:
        return self.rules_of_kind(RuleKind.USER)

    @property
    def room_rules(self) -> List[PolicyRule]:
        return self.rules_of_kind(RuleKind.ROOM)

    @property
    def all_rules(self) -> List[PolicyRule]:
        return [*self.server_rules, *self.user_rules, *self.room_rules]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def ban_entity(self, kind: RuleKind, entity: str, reason: str) -> str:
        """
        Publish a ban rule for `entity` under the current standard type of `kind`.

        The cache is not touched; the rule shows up after the next pass.

        Returns:
            The event ID of the new rule.
        """
        content: Dict[str, Any] = {"entity": entity, "recommendation": RECOMMENDATION_BAN, "reason": reason}
        event_type = stable_type_for(kind.value)
        event_id = await self._store.send_state_event(self.room_id, event_type, rule_state_key(entity), content)
        logger.info("[POLICY LIST] Banned %s (%s) in %s: %s", entity, kind.name.lower(), self.room_ref, reason)
        return event_id

    async def unban_entity(self, kind: RuleKind, entity: str) -> bool:
        """
        Remove every rule for `entity` under any of the types used for `kind`.

        The store is queried directly since the cache only knows the
        normalised kind of each record, not the type it was published under.
        Each type that currently holds a record is cleared with empty content.

        Returns:
            True if at least one rule was cleared, False if there were none.

        Raises:
            PolicyStoreError: If a lookup fails for any reason other than the
                record not existing, or if a clearing write fails.
        """
        state_key = rule_state_key(entity)

        async def holds_record(event_type: str) -> str | None:
            try:
                await self._store.get_state_event(self.room_id, event_type, state_key)
            except StateEventNotFound:
                return None
            return event_type

        found = await asyncio.gather(*(holds_record(event_type) for event_type in types_for_kind(kind)))
        types_to_clear = [event_type for event_type in found if event_type is not None]
        if not types_to_clear:
            return False

        await asyncio.gather(
            *(self._store.send_state_event(self.room_id, event_type, state_key, {}) for event_type in types_to_clear)
        )
        logger.info("[POLICY LIST] Unbanned %s from %s (cleared %s)", entity, self.room_ref, ", ".join(types_to_clear))
        return True

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def notify_of_record_change(self, marker: Hashable) -> None:
        """Tell the list that a new state event arrived; a batch will follow."""
        self._batcher.add_to_batch(marker)

    def _get_record(self, kind: RuleKind, state_key: str) -> PolicyRecord | None:
        return self._state.get(kind, {}).get(state_key)

    def _set_record(self, kind: RuleKind, state_key: str, record: PolicyRecord) -> None:
        self._state.setdefault(kind, {})[state_key] = record

    async def update_list(self) -> List[ListRuleChange]:
        """
        Synchronise the model with the room state.

        Fetches the full room state and applies it event by event. If the
        fetch fails the error propagates and nothing is applied. Passes are
        idempotent: a second pass over unchanged state reports no changes.

        Returns:
            The rules that were added, modified or removed, in room state order.
        """
        changes: List[ListRuleChange] = []

        state = await self._store.get_room_state(self.room_id)
        for event in state:
            if event.get("state_key") == "" and event.get("type") == SHORTCODE_EVENT_TYPE:
                content = event.get("content")
                shortcode = content.get("shortcode") if isinstance(content, dict) else None
                self._shortcode = shortcode if isinstance(shortcode, str) and shortcode else None
                continue

            event_type = event.get("type")
            if not event.get("state_key") or not isinstance(event_type, str) or kind_for_type(event_type) is None:
                continue

            try:
                record = PolicyRecord.from_event(event)
            except InvalidPolicyRecord as exc:
                logger.warning("[POLICY LIST] Skipping malformed state event in %s: %s", self.room_ref, exc)
                continue

            change = self._apply_record(record)
            if change is not None:
                changes.append(change)

        if changes:
            logger.debug("[POLICY LIST] %d rule change(s) in %s", len(changes), self.room_ref)
        self._emit_update(changes)
        return changes

    def _apply_record(self, record: PolicyRecord) -> ListRuleChange | None:
        kind = record.kind
        if kind is None:
            return None

        previous = self._get_record(kind, record.state_key)

        # A record of an older type never replaces one of a newer type, even
        # when it is the more recent event.
        if previous is not None and type_authority(kind, record.event_type) > type_authority(kind, previous.event_type):
            logger.info(
                "[POLICY LIST] In %s, conflict between rules %s (with obsolete type %s) and %s "
                "(with standard type %s). Ignoring rule with obsolete type.",
                self.room_ref,
                record.event_id,
                record.event_type,
                previous.event_id,
                previous.event_type,
            )
            return None

        # Stored even when it is not a valid rule, since empty content is how
        # rules are removed.
        self._set_record(kind, record.state_key, record)

        change_type = self._classify(record, previous)

        if change_type is ChangeType.REMOVED:
            # A record that never held a valid rule was never in effect, so
            # removing it changes nothing.
            if previous is None or previous.rule is None:
                return None
            sender = record.redaction.sender if record.redaction and record.redaction.sender else record.sender
            return ListRuleChange(
                change_type=change_type,
                record=record,
                sender=sender,
                rule=previous.rule,
                previous_record=previous,
            )

        rule = PolicyRule.from_content(record.content, kind)
        if rule is None:
            return None
        record.rule = rule

        if change_type is None:
            return None
        return ListRuleChange(
            change_type=change_type,
            record=record,
            sender=record.sender,
            rule=rule,
            previous_record=previous,
        )

    @staticmethod
    def _classify(record: PolicyRecord, previous: PolicyRecord | None) -> ChangeType | None:
        if previous is None:
            return ChangeType.ADDED
        if previous.event_id == record.event_id:
            if record.is_redacted and not previous.is_redacted:
                return ChangeType.REMOVED
            return None
        if record.is_empty:
            return ChangeType.REMOVED
        return ChangeType.MODIFIED

    async def shutdown(self) -> None:
        """Cancel a pending batch and any shortcode writes still in flight."""
        await self._batcher.shutdown()
        for task in list(self._shortcode_writes):
            task.cancel()
        if self._shortcode_writes:
            await asyncio.gather(*self._shortcode_writes, return_exceptions=True)
        self._shortcode_writes.clear()
