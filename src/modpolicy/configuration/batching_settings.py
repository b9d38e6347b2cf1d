from typing import Any, Dict

DEFAULT_POLL_INTERVAL_SECONDS = 0.2
DEFAULT_MAX_WAIT_SECONDS = 3.0


class BatchingSettings:
    """Typed accessors for the ``batching`` section of the app configuration.

    The poll interval is how long the update batcher waits between checks for
    new notifications; the max wait bounds how long a batch may keep growing
    under continuous traffic.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    @property
    def poll_interval_seconds(self) -> float:
        value = float(self.data.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS))
        return value if value > 0 else DEFAULT_POLL_INTERVAL_SECONDS

    @property
    def max_wait_seconds(self) -> float:
        value = float(self.data.get("max_wait_seconds", DEFAULT_MAX_WAIT_SECONDS))
        # a batch must be allowed at least one poll
        return max(value, self.poll_interval_seconds)
