"""
Owns the set of watched policy lists and keeps them in sync.

The manager is the single caller of :meth:`PolicyList.update_list` for the
lists it owns. Passes on one list are serialised with a per-list lock, so a
batch that becomes ready while a pass is running waits for it instead of
interleaving with it.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Hashable, List, Set

from modpolicy.configuration.batching_settings import BatchingSettings
from modpolicy.datatypes.policy_datatypes import ListRuleChange
from modpolicy.policy.policy_list import PolicyList
from modpolicy.store.policy_store import PolicyStore
from modpolicy.util.logger import get_logger

logger = get_logger("list_manager")

UpdateListener = Callable[[PolicyList, List[ListRuleChange]], None]


class PolicyListManager:
    """
    Registry of watched policy lists.

    Args:
        store: State store shared by every list.
        batching: Batching settings handed to each new list.
    """

    def __init__(self, store: PolicyStore, batching: BatchingSettings | None = None) -> None:
        self._store = store
        self._batching = batching
        self._lists: Dict[str, PolicyList] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._update_listeners: List[UpdateListener] = []
        self._pending: Set[asyncio.Task[None]] = set()

    @property
    def lists(self) -> List[PolicyList]:
        return list(self._lists.values())

    def get_list(self, room_id: str) -> PolicyList | None:
        return self._lists.get(room_id)

    def add_update_listener(self, listener: UpdateListener) -> None:
        """Register a callback receiving ``(policy_list, changes)`` for every watched list."""
        self._update_listeners.append(listener)

    def _forward_update(self, policy_list: PolicyList, changes: List[ListRuleChange]) -> None:
        for listener in list(self._update_listeners):
            try:
                listener(policy_list, changes)
            except Exception:
                logger.exception("[LIST MANAGER] Update listener failed for %s", policy_list.room_ref)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def watch_list(self, room_id: str, room_ref: str) -> PolicyList:
        """Start watching a policy room. Watching the same room twice returns the existing list."""
        existing = self._lists.get(room_id)
        if existing is not None:
            return existing

        policy_list = PolicyList(room_id, room_ref, self._store, self._batching)
        policy_list.add_update_listener(self._forward_update)
        policy_list.add_batch_listener(self._schedule_sync)
        self._lists[room_id] = policy_list
        self._locks[room_id] = asyncio.Lock()
        logger.info("[LIST MANAGER] Watching policy list %s", room_ref)
        return policy_list

    async def unwatch_list(self, room_id: str) -> bool:
        """Stop watching a policy room. Returns False if it was not being watched."""
        policy_list = self._lists.pop(room_id, None)
        self._locks.pop(room_id, None)
        if policy_list is None:
            return False
        await policy_list.shutdown()
        logger.info("[LIST MANAGER] Stopped watching policy list %s", policy_list.room_ref)
        return True

    def notify_record_change(self, room_id: str, marker: Hashable) -> None:
        """Route a new state event notification to the list modelling `room_id`."""
        policy_list = self._lists.get(room_id)
        if policy_list is None:
            logger.debug("[LIST MANAGER] Ignoring event %s for unwatched room %s", marker, room_id)
            return
        policy_list.notify_of_record_change(marker)

    # ------------------------------------------------------------------
    # Syncing
    # ------------------------------------------------------------------

    def _schedule_sync(self, policy_list: PolicyList) -> None:
        task = asyncio.get_running_loop().create_task(self._run_scheduled_sync(policy_list.room_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_scheduled_sync(self, room_id: str) -> None:
        try:
            await self.sync_list(room_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[LIST MANAGER] Batched sync of %s failed: %s", room_id, exc)

    async def sync_list(self, room_id: str) -> List[ListRuleChange]:
        """
        Reconcile one list with its room, waiting for any pass already running on it.

        Raises:
            KeyError: If the room is not being watched.
            PolicyStoreError: If the room state could not be fetched.
        """
        policy_list = self._lists.get(room_id)
        lock = self._locks.get(room_id)
        if policy_list is None or lock is None:
            raise KeyError(f"Policy list {room_id} is not being watched")

        async with lock:
            return await policy_list.update_list()

    async def sync_all(self) -> Dict[str, List[ListRuleChange]]:
        """
        Reconcile every watched list, one after another.

        A list that fails to sync is logged and skipped so the others still
        update.

        Returns:
            Changes per room ID, for the lists that synced successfully.
        """
        results: Dict[str, List[ListRuleChange]] = {}
        for room_id in list(self._lists):
            try:
                results[room_id] = await self.sync_list(room_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[LIST MANAGER] Failed to sync policy list %s: %s", room_id, exc)
        return results

    async def shutdown(self) -> None:
        """Cancel scheduled passes and shut every list down."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()

        for policy_list in self._lists.values():
            await policy_list.shutdown()
        logger.info("[LIST MANAGER] Shutdown complete")
