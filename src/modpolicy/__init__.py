"""
modpolicy - Matrix policy list reconciliation

modpolicy keeps a cached, deduplicated model of the moderation rules published
in Matrix policy rooms (``m.policy.rule.user``, ``m.policy.rule.room`` and
``m.policy.rule.server`` state events, plus their legacy aliases) and reports
precisely which rules were added, modified or removed every time the model is
resynchronised.

Core Components:

- **Policy Lists**: Reconcile room state with the cached model, resolving
  conflicts between current and legacy rule types and telling soft deletions
  (empty content) apart from redactions
- **Update Batching**: Coalesces bursts of new-event notifications into a
  single resync with a bounded maximum delay
- **List Manager**: Owns the watched lists and serialises resyncs per list
- **Matrix Store**: httpx client for the homeserver's room state endpoints

Usage:
    from modpolicy.main import main
    main()
"""
