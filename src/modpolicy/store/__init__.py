"""
Access to the remote state store holding policy lists.

- **policy_store.py**: The ``PolicyStore`` protocol the engine depends on and
  the errors it raises (``PolicyStoreError``, ``StateEventNotFound``).
- **matrix_store.py**: ``MatrixPolicyStore``, an httpx implementation talking
  to a Matrix homeserver's room state endpoints.
"""
