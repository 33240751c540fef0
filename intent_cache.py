import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

from call_tokens import CallIntent

DEFAULT_MAX_ENTRIES = 500
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class IntentCache:
    """
    Process-local record of recently generated intents.

    Only the admin listing reads it; tokens are redeemed without it.
    Entries expire after ``ttl_seconds`` and the oldest is evicted once
    ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, CallIntent]]" = OrderedDict()
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        while self._entries:
            token, (stored_at, _) = next(iter(self._entries.items()))
            if now - stored_at < self.ttl_seconds:
                break
            del self._entries[token]

    def put(self, token: str, intent: CallIntent) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(token, None)
            self._entries[token] = (now, intent)
            self._purge(now)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def get(self, token: str) -> Optional[CallIntent]:
        with self._lock:
            self._purge(self._clock())
            entry = self._entries.get(token)
            return entry[1] if entry else None

    def items(self) -> List[Tuple[str, CallIntent]]:
        with self._lock:
            self._purge(self._clock())
            return [(token, intent) for token, (_, intent) in self._entries.items()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)
