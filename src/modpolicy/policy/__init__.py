"""
Policy list reconciliation.

- **rule_types.py**: Rule kinds and the ordered event type aliases for each.
- **policy_list.py**: ``PolicyList``, the cached model of one policy room.
  Reconciles the cache with the room state, resolving type alias conflicts and
  detecting soft (empty content) and hard (redaction) deletions, and reports
  the resulting rule changes to listeners.
- **update_batcher.py**: Coalesces bursts of change notifications into one
  "batch ready" signal with a bounded maximum delay.
- **list_manager.py**: ``PolicyListManager``, which owns the watched lists and
  serialises reconciliation passes per list.
"""
