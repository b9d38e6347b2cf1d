"""
Typed data structures shared across modpolicy.

- **policy_datatypes.py**: ``PolicyRule``, ``PolicyRecord``, ``RedactionInfo``,
  ``ChangeType`` and ``ListRuleChange``.
"""
