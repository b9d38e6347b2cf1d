"""
Shared utilities.

- **logger.py**: Logger factory with a prompt_toolkit console handler and a
  per-session log file under ``logs/``.
"""
