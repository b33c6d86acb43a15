"""
Sliding-window rate limiting.

Per-key timestamp lists live in a RateLimitStore so that several limiters
(e.g. one per audit bucket) can share memory accounting and the periodic
cleanup sweep. Timestamps are whole seconds from ``time.time()``.
"""

import re
import threading
import time
from typing import Any, Dict, List, Optional

import structlog

from ..config import get_settings
from .exceptions import InvalidRateLimitConfigurationError

logger = structlog.get_logger(__name__)

MAX_REQUESTS_LIMIT = 1_000_000
MAX_WINDOW_SECONDS = 86_400
MIN_CLEANUP_INTERVAL = 60
MAX_CLEANUP_INTERVAL = 604_800
DEFAULT_CLEANUP_INTERVAL = 300
MAX_KEY_LENGTH = 250

# Rough per-entry sizes used for memory estimates
KEY_OVERHEAD_BYTES = 50
TIMESTAMP_BYTES = 8

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _now() -> int:
    return int(time.time())


class RateLimitStore:
    """Thread-safe storage for per-key request timestamps."""

    _shared: Optional["RateLimitStore"] = None
    _shared_lock = threading.Lock()

    def __init__(self, cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL) -> None:
        self.lock = threading.RLock()
        self.requests: Dict[str, List[int]] = {}
        self.windows: Dict[str, int] = {}
        self.last_cleanup = 0
        self.cleanup_interval = DEFAULT_CLEANUP_INTERVAL
        self.set_cleanup_interval(cleanup_interval)

    @classmethod
    def shared(cls) -> "RateLimitStore":
        """Get the process-wide default store."""
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls(cleanup_interval=get_settings().rate_limit_cleanup_interval)
            return cls._shared

    def set_cleanup_interval(self, seconds: int) -> None:
        """
        Change how often the global sweep runs.

        Raises:
            InvalidRateLimitConfigurationError: If seconds is outside 60..604800
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            raise InvalidRateLimitConfigurationError.for_parameter(
                "cleanup_interval", seconds, "must be an integer"
            )
        if seconds < MIN_CLEANUP_INTERVAL or seconds > MAX_CLEANUP_INTERVAL:
            raise InvalidRateLimitConfigurationError.for_parameter(
                "cleanup_interval",
                seconds,
                f"must be between {MIN_CLEANUP_INTERVAL} and {MAX_CLEANUP_INTERVAL} seconds",
            )
        with self.lock:
            self.cleanup_interval = seconds

    def record(self, key: str, timestamps: List[int], window_seconds: int) -> None:
        """Store timestamps for key along with the window they are valid for."""
        with self.lock:
            self.requests[key] = timestamps
            self.windows[key] = max(window_seconds, self.windows.get(key, 0))

    def forget(self, key: str) -> None:
        with self.lock:
            self.requests.pop(key, None)
            self.windows.pop(key, None)

    def maybe_cleanup(self, now: int, window_seconds: int) -> None:
        """
        Run the global sweep if the cleanup interval has elapsed.

        Each key is pruned by the window it was recorded with; ``window_seconds``
        only applies to keys with no recorded window.
        """
        with self.lock:
            if now - self.last_cleanup < self.cleanup_interval:
                return

            removed = 0
            for key in list(self.requests):
                cutoff = now - self.windows.get(key, window_seconds)
                kept = [ts for ts in self.requests[key] if ts > cutoff]
                if kept:
                    self.requests[key] = kept
                else:
                    self.forget(key)
                    removed += 1

            self.last_cleanup = now
            if removed:
                logger.debug("Rate limiter cleanup removed idle keys", removed_keys=removed)

    def clear_all(self) -> None:
        with self.lock:
            self.requests.clear()
            self.windows.clear()
            self.last_cleanup = 0

    def clear_key(self, key: str) -> None:
        self.forget(key)

    def memory_stats(self) -> Dict[str, int]:
        with self.lock:
            total_keys = len(self.requests)
            total_timestamps = sum(len(v) for v in self.requests.values())
            return {
                "total_keys": total_keys,
                "total_timestamps": total_timestamps,
                "estimated_memory_bytes": total_keys * KEY_OVERHEAD_BYTES + total_timestamps * TIMESTAMP_BYTES,
                "last_cleanup": self.last_cleanup,
                "cleanup_interval": self.cleanup_interval,
            }


class RateLimiter:
    """
    Sliding-window rate limiter.

    A request for ``key`` is allowed when fewer than ``max_requests``
    timestamps for that key fall inside the trailing window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        store: Optional[RateLimitStore] = None,
    ) -> None:
        if isinstance(max_requests, bool) or not isinstance(max_requests, int):
            raise InvalidRateLimitConfigurationError.for_parameter("max_requests", max_requests, "must be an integer")
        if max_requests < 1 or max_requests > MAX_REQUESTS_LIMIT:
            raise InvalidRateLimitConfigurationError.for_parameter(
                "max_requests", max_requests, f"must be between 1 and {MAX_REQUESTS_LIMIT}"
            )
        if isinstance(window_seconds, bool) or not isinstance(window_seconds, int):
            raise InvalidRateLimitConfigurationError.for_parameter(
                "window_seconds", window_seconds, "must be an integer"
            )
        if window_seconds < 1 or window_seconds > MAX_WINDOW_SECONDS:
            raise InvalidRateLimitConfigurationError.for_parameter(
                "window_seconds", window_seconds, f"must be between 1 and {MAX_WINDOW_SECONDS} seconds"
            )

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.store = store if store is not None else RateLimitStore.shared()

    @staticmethod
    def validate_key(key: str) -> None:
        """
        Reject keys that are empty, too long or contain control characters.

        Raises:
            InvalidRateLimitConfigurationError: If the key is unusable
        """
        if not isinstance(key, str) or key.strip() == "":
            raise InvalidRateLimitConfigurationError.for_parameter("key", key, "must be a non-empty string")
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidRateLimitConfigurationError.for_parameter(
                "key", key[:20] + "...", f"must not exceed {MAX_KEY_LENGTH} characters"
            )
        if _CONTROL_CHARS.search(key):
            raise InvalidRateLimitConfigurationError.for_parameter(
                "key", key[:20], "must not contain control characters"
            )

    def _window(self, key: str, now: int) -> List[int]:
        cutoff = now - self.window_seconds
        timestamps = [ts for ts in self.store.requests.get(key, []) if ts > cutoff]
        if timestamps:
            self.store.requests[key] = timestamps
        else:
            self.store.forget(key)
        return timestamps

    def is_allowed(self, key: str) -> bool:
        """Record a request for key and report whether it is within the limit."""
        self.validate_key(key)
        now = _now()

        with self.store.lock:
            self.store.maybe_cleanup(now, self.window_seconds)
            timestamps = self._window(key, now)

            if len(timestamps) < self.max_requests:
                timestamps.append(now)
                self.store.record(key, timestamps, self.window_seconds)
                return True

        logger.debug("Rate limit reached", key_length=len(key), max_requests=self.max_requests)
        return False

    def get_remaining_requests(self, key: str) -> int:
        self.validate_key(key)
        now = _now()
        with self.store.lock:
            return max(0, self.max_requests - len(self._window(key, now)))

    def get_time_until_reset(self, key: str) -> int:
        """Seconds until the oldest request in the window expires (0 when empty)."""
        self.validate_key(key)
        now = _now()
        with self.store.lock:
            timestamps = self._window(key, now)
            if not timestamps:
                return 0
            return max(0, min(timestamps) + self.window_seconds - now)

    def get_stats(self, key: str) -> Dict[str, Any]:
        """
        Get usage statistics for a key.

        Returns:
            Dict with current_requests, remaining_requests and time_until_reset
        """
        self.validate_key(key)
        now = _now()
        with self.store.lock:
            timestamps = self._window(key, now)
            current = len(timestamps)
            reset = max(0, min(timestamps) + self.window_seconds - now) if timestamps else 0
        return {
            "current_requests": current,
            "remaining_requests": max(0, self.max_requests - current),
            "time_until_reset": reset,
        }

    def clear_key(self, key: str) -> None:
        self.validate_key(key)
        self.store.clear_key(key)

    def clear_all(self) -> None:
        self.store.clear_all()

    def get_memory_stats(self) -> Dict[str, int]:
        return self.store.memory_stats()

    def set_cleanup_interval(self, seconds: int) -> None:
        self.store.set_cleanup_interval(seconds)
