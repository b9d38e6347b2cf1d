"""
Background scheduling.

- **list_sync_scheduler.py**: Periodic full resync of every watched policy
  list, as a backstop for missed notifications.
"""
