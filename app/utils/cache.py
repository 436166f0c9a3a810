"""In-memory TTL cache with single-flight loading for expensive queries."""
import concurrent.futures
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

_MISS = object()

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 500


class TTLCache:
    """
    Key/value store with per-entry expiry.

    get_or_compute() collapses concurrent misses for the same key into a
    single computation: the first caller runs the loader, later callers
    wait on the same Future and share its result (or its exception).
    Failed computations are never cached.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._inflight: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()

    def get_cached(self, key: str):
        """Return cached value if still valid, else the _MISS sentinel."""
        with self._lock:
            return self._get_locked(key)

    def set_cached(self, key: str, value: Any, seconds: Optional[float] = None):
        """Store a value with TTL."""
        with self._lock:
            self._set_locked(key, value, seconds)

    def clear_cache(self):
        """Drop every entry. In-flight computations still finish for their waiters."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_compute(
        self,
        key: str,
        loader: Callable[[], Any],
        seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        """
        Cached value for key, computing it on a miss.

        Without an executor the first caller runs the loader itself. With one,
        the loader runs there and every caller (the first included) waits at
        most `timeout` seconds; the load keeps going and fills the cache for
        later requests.
        """
        with self._lock:
            value = self._get_locked(key)
            if value is not _MISS:
                return value
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = concurrent.futures.Future()
                self._inflight[key] = future

        if owner:
            if executor is None:
                self._load(key, future, loader, seconds)
            else:
                try:
                    executor.submit(self._load, key, future, loader, seconds)
                except RuntimeError as e:
                    # Executor already shut down
                    self._release(key, future, e)
                    raise

        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            if future.done():
                # The loader's own TimeoutError
                raise
            raise TimeoutError(f"cache load for {key!r} still running after {timeout}s")

    def _load(self, key: str, future: concurrent.futures.Future, loader: Callable[[], Any], seconds: Optional[float]):
        try:
            value = loader()
        except Exception as e:
            self._release(key, future, e)
            return
        except BaseException:
            self._release(key, future, RuntimeError(f"cache loader for {key!r} aborted"))
            raise
        with self._lock:
            self._set_locked(key, value, seconds)
            if self._inflight.get(key) is future:
                del self._inflight[key]
        future.set_result(value)

    def _release(self, key: str, future: concurrent.futures.Future, error: BaseException):
        """Drop the in-flight marker and hand the error to every waiter. Failures are never cached."""
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]
        future.set_exception(error)

    # ── internals (caller holds the lock) ──────────────

    def _get_locked(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            return _MISS
        expires, value = entry
        if self._clock() >= expires:
            del self._entries[key]
            return _MISS
        return value

    def _set_locked(self, key: str, value: Any, seconds: Optional[float]):
        ttl = seconds if seconds is not None and seconds > 0 else self.default_ttl
        self._entries[key] = (self._clock() + ttl, value)
        if len(self._entries) > self.max_entries:
            self._evict_locked()

    def _evict_locked(self):
        now = self._clock()
        for k in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[k]
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.items(), key=lambda kv: kv[1][0])[:overflow]
            for k, _ in oldest:
                del self._entries[k]
