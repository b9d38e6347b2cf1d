"""
Application configuration.

- **app_configuration.py**: YAML-backed ``AppConfig`` with typed shortcuts for
  the homeserver, the watched policy lists and the resync interval.
- **batching_settings.py**: Poll interval and max wait for the update batcher.
"""
