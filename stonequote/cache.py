"""
Calculation cache and in-flight de-duplication.

One CalculationCache per process, created at app startup and handed to the
PricingEngine. Expiry is lazy: an entry is checked when it is read, and an
entry whose age has reached the TTL is a miss.

Every quote id carries a generation that `invalidate` (and `clear`) moves on.
A result computed from data read under an older generation is never stored,
so an invalidation that lands while a calculation is running still wins.
"""

import logging
import threading
import time
from typing import Callable, Dict, Hashable, Optional, Tuple

from .calculators.types import QuoteCalculationResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

Generation = Tuple[int, int]


class CalculationCache:

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, QuoteCalculationResult]] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def _current(self, quote_id: str) -> Generation:
        return (self._epoch, self._generations.get(quote_id, 0))

    def generation(self, quote_id: str) -> Generation:
        """Capture before loading; pass the value back to `set`."""
        with self._lock:
            return self._current(quote_id)

    def get(self, quote_id: str) -> Optional[QuoteCalculationResult]:
        with self._lock:
            entry = self._entries.get(quote_id)
            if entry is None:
                return None
            stored_at, result = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[quote_id]
                logger.debug("Cache entry for quote %s expired", quote_id)
                return None
            return result

    def set(self, quote_id: str, result: QuoteCalculationResult,
            generation: Optional[Generation] = None) -> bool:
        """Store a result. Returns False when `generation` is no longer current."""
        with self._lock:
            if generation is not None and generation != self._current(quote_id):
                logger.debug("Discarding result for quote %s computed before invalidation",
                             quote_id)
                return False
            self._entries[quote_id] = (self._clock(), result)
            return True

    def invalidate(self, quote_id: str) -> bool:
        """Drop one entry. Returns True if something was cached."""
        with self._lock:
            self._generations[quote_id] = self._generations.get(quote_id, 0) + 1
            return self._entries.pop(quote_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._epoch += 1

    def __len__(self):
        with self._lock:
            return len(self._entries)


class _InFlight:
    def __init__(self):
        self.done = threading.Event()
        self.result = None
        self.error: Optional[Exception] = None


class SingleFlight:
    """
    Collapse concurrent calls for the same key into one execution.

    The first caller runs the function; callers arriving while it runs wait
    and receive the same result, or the same exception.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, _InFlight] = {}

    def do(self, key: Hashable, fn: Callable):
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _InFlight()
                self._calls[key] = call

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result

        try:
            call.result = fn()
            return call.result
        except Exception as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls
