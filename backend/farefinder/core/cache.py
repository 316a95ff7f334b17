"""
In-memory request cache for the remote fare service.

Every cacheable call is identified by a QueryKey (a tuple of primitives).
For each key the cache keeps one CacheEntry and guarantees that at most one
request is outstanding at a time: callers resolving a key that is already
being fetched are joined to the running request.

The cache runs on a single asyncio loop and needs no locks. Requests are
tagged with a monotonic sequence number so that a slow, superseded response
can never overwrite the result of a newer one.
"""
import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple

from farefinder.config import settings
from farefinder.core.errors import FareServiceError, ValidationError

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]
Fetcher = Callable[[QueryKey], Awaitable[Any]]

class QueryState(str, Enum):
    PENDING = "pending"
    FRESH = "fresh"
    STALE = "stale"
    FAILED = "failed"
    DISABLED = "disabled"  # only ever reported in snapshots, never stored

def default_retry_delay(failure_count: int) -> float:
    """Exponential backoff: 1s, 2s, 4s ... capped."""
    delay = settings.RETRY_BASE_DELAY_SECONDS * (2 ** (failure_count - 1))
    return min(delay, settings.RETRY_MAX_DELAY_SECONDS)

def is_retryable(error: BaseException) -> bool:
    return isinstance(error, FareServiceError) and error.retryable

@dataclass(frozen=True)
class QueryPolicy:
    family: str
    stale_time: float  # seconds
    gc_time: float  # seconds
    enabled: bool = True
    retry_limit: int = settings.RETRY_LIMIT
    retry_classifier: Callable[[BaseException], bool] = is_retryable
    retry_delay: Callable[[int], float] = default_retry_delay

    def should_retry(self, failure_count: int, error: BaseException) -> bool:
        return failure_count <= self.retry_limit and self.retry_classifier(error)

    def with_enabled(self, enabled: bool) -> "QueryPolicy":
        return replace(self, enabled=enabled)

@dataclass(frozen=True)
class QuerySnapshot:
    key: QueryKey
    state: QueryState
    value: Any = None
    error: Optional[BaseException] = None
    fetched_at: Optional[float] = None
    is_loading: bool = False

    @property
    def is_enabled(self) -> bool:
        return self.state != QueryState.DISABLED

    @property
    def has_value(self) -> bool:
        return self.value is not None

@dataclass
class _Request:
    seq: int
    future: asyncio.Future
    task: Optional[asyncio.Task] = None

@dataclass
class CacheEntry:
    key: QueryKey
    stale_time: float
    gc_time: float
    state: QueryState = QueryState.STALE
    value: Any = None
    error: Optional[BaseException] = None
    fetched_at: Optional[float] = None
    last_access: float = 0.0
    latest_seq: int = 0
    settled_seq: int = 0
    in_flight: Optional[_Request] = None
    invalidated: bool = False

def _consume_exception(future: asyncio.Future) -> None:
    # Failed entries keep their error; an unawaited future must not warn about it.
    if not future.cancelled():
        future.exception()

class RequestCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._observers: Dict[QueryKey, List[Callable[[QuerySnapshot], None]]] = {}
        self._sequence = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return tuple(key) in self._entries

    # --- Resolution ---

    def resolve(self, key: QueryKey, fetcher: Fetcher, policy: QueryPolicy) -> QuerySnapshot:
        """
        Return the current snapshot for `key`, starting a fetch when the
        entry is missing, stale or failed. Fresh entries and entries with a
        request already in flight never trigger another fetch.
        """
        key = tuple(key)
        if not policy.enabled:
            return QuerySnapshot(key=key, state=QueryState.DISABLED)

        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, stale_time=policy.stale_time, gc_time=policy.gc_time)
            self._entries[key] = entry
        entry.stale_time = policy.stale_time
        entry.gc_time = policy.gc_time
        entry.last_access = now
        self._expire(entry, now)

        if entry.in_flight is not None and not entry.invalidated:
            logger.debug(f"Joining in-flight request #{entry.in_flight.seq} for {key}")
            return self._snapshot(entry)

        if entry.state == QueryState.FRESH:
            logger.debug(f"Cache hit for {key}")
            return self._snapshot(entry)

        self._start_request(entry, fetcher, policy)
        return self._snapshot(entry)

    async def fetch(self, key: QueryKey, fetcher: Fetcher, policy: QueryPolicy) -> Any:
        """Resolve `key` and wait for its value. Raises the request's error on failure."""
        key = tuple(key)
        snapshot = self.resolve(key, fetcher, policy)
        if snapshot.state == QueryState.DISABLED:
            raise ValidationError(f"Query {key} is not enabled")

        entry = self._entries[key]
        if entry.in_flight is not None:
            # Shielded: one caller giving up must not cancel the shared request.
            return await asyncio.shield(entry.in_flight.future)
        return entry.value

    def get_snapshot(self, key: QueryKey) -> Optional[QuerySnapshot]:
        entry = self._entries.get(tuple(key))
        if entry is None:
            return None
        self._expire(entry, self._clock())
        return self._snapshot(entry)

    # --- Invalidation & lifetime ---

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """Mark every entry whose key starts with `prefix` as stale."""
        prefix = tuple(prefix)
        touched = 0
        for key, entry in self._entries.items():
            if key[:len(prefix)] != prefix:
                continue
            if entry.in_flight is not None:
                # The running request stays; the next resolve supersedes it.
                entry.invalidated = True
            else:
                entry.state = QueryState.STALE
            touched += 1
            self._notify(entry)
        logger.info(f"Invalidated {touched} entries under {prefix}")
        return touched

    def collect_garbage(self) -> int:
        """Evict entries nobody observes once their gc horizon has passed."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if entry.in_flight is None
            and not self._observers.get(key)
            and now - entry.last_access >= entry.gc_time
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} cache entries")
        return len(expired)

    def subscribe(self, key: QueryKey, callback: Callable[[QuerySnapshot], None]) -> Callable[[], None]:
        key = tuple(key)
        self._observers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._observers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._observers.pop(key, None)
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_access = self._clock()

        return unsubscribe

    def clear(self) -> None:
        """Drop every entry and observer. Running requests are cancelled; their waiters see CancelledError."""
        for task in list(self._tasks):
            task.cancel()
        self._entries.clear()
        self._observers.clear()

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._entries.clear()
        self._observers.clear()

    # --- Internals ---

    def _expire(self, entry: CacheEntry, now: float) -> None:
        if entry.state == QueryState.FRESH and entry.fetched_at is not None:
            if now - entry.fetched_at >= entry.stale_time:
                entry.state = QueryState.STALE

    def _snapshot(self, entry: CacheEntry) -> QuerySnapshot:
        return QuerySnapshot(
            key=entry.key,
            state=entry.state,
            value=entry.value,
            error=entry.error,
            fetched_at=entry.fetched_at,
            is_loading=entry.in_flight is not None,
        )

    def _notify(self, entry: CacheEntry) -> None:
        callbacks = list(self._observers.get(entry.key, []))
        if not callbacks:
            return
        snapshot = self._snapshot(entry)
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Observer for {entry.key} failed")

    def _start_request(self, entry: CacheEntry, fetcher: Fetcher, policy: QueryPolicy) -> None:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.add_done_callback(_consume_exception)
        request = _Request(seq=next(self._sequence), future=future)

        entry.latest_seq = request.seq
        entry.in_flight = request
        entry.invalidated = False
        entry.state = QueryState.PENDING
        logger.info(f"Fetching {entry.key} (request #{request.seq})")

        request.task = loop.create_task(self._run(entry.key, request, fetcher, policy))
        self._tasks.add(request.task)
        request.task.add_done_callback(self._tasks.discard)
        # A task cancelled before or during its run never settles; release its waiters
        request.task.add_done_callback(lambda task: request.future.cancel())
        self._notify(entry)

    async def _run(self, key: QueryKey, request: _Request, fetcher: Fetcher, policy: QueryPolicy) -> None:
        failure_count = 0
        while True:
            try:
                value = await fetcher(key)
            except Exception as e:
                failure_count += 1
                if not policy.should_retry(failure_count, e):
                    self._settle_failure(key, request, e, failure_count)
                    return
                delay = policy.retry_delay(failure_count)
                logger.warning(f"Request #{request.seq} for {key} failed ({e}); retry {failure_count}/{policy.retry_limit} in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            self._settle_success(key, request, value)
            return

    def _settle_success(self, key: QueryKey, request: _Request, value: Any) -> None:
        entry = self._entries.get(key)
        if entry is None or request.seq < entry.settled_seq:
            logger.debug(f"Discarding superseded response #{request.seq} for {key}")
        else:
            entry.value = value
            entry.error = None
            entry.fetched_at = self._clock()
            entry.last_access = entry.fetched_at
            entry.settled_seq = request.seq
            if request.seq == entry.latest_seq:
                # Invalidated while in flight: keep the value, refetch on the next resolve
                entry.state = QueryState.STALE if entry.invalidated else QueryState.FRESH
                entry.in_flight = None
            self._notify(entry)
        if not request.future.done():
            request.future.set_result(value)

    def _settle_failure(self, key: QueryKey, request: _Request, error: BaseException, attempts: int) -> None:
        entry = self._entries.get(key)
        if entry is not None and request.seq == entry.latest_seq:
            logger.error(f"Request #{request.seq} for {key} failed after {attempts} attempt(s): {error}")
            entry.error = error
            entry.state = QueryState.FAILED
            entry.settled_seq = request.seq
            entry.in_flight = None
            entry.last_access = self._clock()
            self._notify(entry)
        else:
            logger.debug(f"Superseded request #{request.seq} for {key} failed: {error}")
        if not request.future.done():
            request.future.set_exception(error)
