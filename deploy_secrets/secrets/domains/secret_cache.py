"""Explicitly owned cache of pulled secret maps.

The owner injects the clock and decides when to call ``evict_expired``;
nothing runs in the background.
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class SecretCache:
    """TTL cache of ``environment -> {key: value}`` maps."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, str]]] = {}

    def get(self, environment: str) -> Optional[Dict[str, str]]:
        entry = self._entries.get(environment)
        if entry is None:
            return None
        stored_at, values = entry
        if self._clock() - stored_at > self.ttl_seconds:
            return None
        return dict(values)

    def put(self, environment: str, values: Dict[str, str]) -> None:
        self._entries[environment] = (self._clock(), dict(values))

    def invalidate(self, environment: str) -> None:
        self._entries.pop(environment, None)

    def clear(self) -> None:
        self._entries.clear()

    def evict_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [
            env for env, (stored_at, _) in self._entries.items()
            if now - stored_at > self.ttl_seconds
        ]
        for env in expired:
            del self._entries[env]
        if expired:
            logger.debug(f"Evicted {len(expired)} cached environment(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
