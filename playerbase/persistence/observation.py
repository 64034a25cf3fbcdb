"""
Live queries: fetch a value, then fetch and deliver it again after every
committed transaction that touched a table the fetch read from.

Fetches after the first one run on a background thread owned by the
observation. Deliveries go through a scheduler, in commit order. Changes that
arrive while a fetch is still queued are folded into that fetch, so
intermediate states may be skipped but the latest committed state is always
delivered.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import queue
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, AsyncIterator, Callable, Generic, TypeVar

from .writer import DatabaseWriter

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------- Schedulers ----------


class ImmediateScheduler:
    """Deliver on whichever thread produced the value."""

    def schedule(self, fn: Callable[[], None]) -> None:
        fn()


class QueueScheduler:
    """
    Hand deliveries to one designated consumer thread (e.g. a UI loop), which
    calls run_pending() or wait_and_run() to execute them in order.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Callable[[], None]] = queue.Queue()

    def schedule(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def run_pending(self) -> int:
        """Run every queued delivery without blocking. Returns how many ran."""
        count = 0
        while True:
            try:
                fn = self._queue.get_nowait()
            except queue.Empty:
                return count
            fn()
            count += 1

    def wait_and_run(self, timeout: float | None = None) -> bool:
        """Block for the next delivery and run it. False on timeout."""
        try:
            fn = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        fn()
        return True


class AsyncioScheduler:
    """Deliver on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def schedule(self, fn: Callable[[], None]) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(fn)


# ---------- Cancellable ----------


class Cancellable:
    """Handle returned by ValueObservation.start(). cancel() is idempotent."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._cancel()

    def __enter__(self) -> Cancellable:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()


# ---------- ValueObservation ----------


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class ValueObservation(Generic[T]):
    """
    Definition of a live query. Holds no state of its own: every start() or
    values() call is an independent subscription.
    """

    def __init__(self, fetch: Callable[[sqlite3.Connection], T], remove_duplicates: bool = False) -> None:
        self._fetch = fetch
        self._remove_duplicates = remove_duplicates

    @classmethod
    def tracking(cls, fetch: Callable[[sqlite3.Connection], T]) -> ValueObservation[T]:
        return cls(fetch)

    def remove_duplicates(self) -> ValueObservation[T]:
        """Same observation, skipping values equal to the previously delivered one."""
        return ValueObservation(self._fetch, remove_duplicates=True)

    def start(
        self,
        writer: DatabaseWriter,
        on_change: Callable[[T], None],
        on_error: Callable[[BaseException], None] | None = None,
        scheduler: Any = None,
    ) -> Cancellable:
        """
        Fetch now, deliver, and keep delivering after relevant commits until
        cancelled. With the default ImmediateScheduler the first value is
        delivered before start() returns.
        """
        observer = _Observer(
            writer,
            self._fetch,
            on_change,
            on_error,
            scheduler or ImmediateScheduler(),
            self._remove_duplicates,
        )
        observer.start()
        return observer.cancellable

    async def values(self, writer: DatabaseWriter) -> AsyncIterator[T]:
        """
        Async iterator of delivered values. The subscription starts on the
        first iteration and is cancelled when the iterator is closed.
        Fetch errors are raised from the iterator. The first fetch runs in a
        worker thread, so the loop keeps running while a write holds the store.
        """
        loop = asyncio.get_running_loop()
        pending: asyncio.Queue[Any] = asyncio.Queue()

        def start() -> Cancellable:
            return self.start(
                writer,
                on_change=pending.put_nowait,
                on_error=lambda error: pending.put_nowait(_Failure(error)),
                scheduler=AsyncioScheduler(loop),
            )

        with ThreadPoolExecutor(max_workers=1) as ex:
            cancellable = await loop.run_in_executor(ex, start)
        try:
            while True:
                item = await pending.get()
                if isinstance(item, _Failure):
                    raise item.error
                yield item
        finally:
            cancellable.cancel()


class _Observer(Generic[T]):
    """One running subscription; registered with the writer as a transaction observer."""

    _ids = itertools.count(1)

    def __init__(
        self,
        writer: DatabaseWriter,
        fetch: Callable[[sqlite3.Connection], T],
        on_change: Callable[[T], None],
        on_error: Callable[[BaseException], None] | None,
        scheduler: Any,
        remove_duplicates: bool,
    ) -> None:
        self._writer = writer
        self._fetch = fetch
        self._on_change = on_change
        self._on_error = on_error
        self._scheduler = scheduler
        self._remove_duplicates = remove_duplicates
        self._region: frozenset[str] = frozenset()
        self._state_lock = threading.Lock()
        self._deliver_lock = threading.Lock()
        self._fetch_pending = False
        self._fetch_seq = 0
        self._delivered_seq = -1
        self._has_last = False
        self._last: Any = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"observation-{next(self._ids)}"
        )
        self.cancellable = Cancellable(self._stop)

    # ---------- TransactionObserver ----------

    def observes(self, tables: frozenset[str]) -> bool:
        return not self.cancellable.is_cancelled and bool(self._region & tables)

    def database_did_commit(self, tables: frozenset[str]) -> None:
        with self._state_lock:
            if self._fetch_pending:
                return
            self._fetch_pending = True
        try:
            self._executor.submit(self._refetch)
        except RuntimeError:
            # Executor shut down by a concurrent cancel().
            pass

    # ---------- Lifecycle ----------

    def start(self) -> None:
        try:
            (seq, value), _ = self._writer.read_and_observe(
                self._numbered_fetch, self, self._set_region
            )
        except Exception as exc:
            self._fail(exc)
            return
        self._deliver(seq, value)

    def _set_region(self, region: frozenset[str]) -> None:
        # Called under the writer lock: a commit is never checked against a stale region.
        self._region = region

    def _stop(self) -> None:
        self._writer.remove_transaction_observer(self)
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ---------- Fetch & deliver ----------

    def _numbered_fetch(self, conn: sqlite3.Connection) -> tuple[int, T]:
        # Runs under the writer lock, so sequence numbers follow commit order.
        self._fetch_seq += 1
        return self._fetch_seq, self._fetch(conn)

    def _refetch(self) -> None:
        with self._state_lock:
            self._fetch_pending = False
        if self.cancellable.is_cancelled:
            return
        try:
            (seq, value), _ = self._writer.read_tracking(self._numbered_fetch, self._set_region)
        except Exception as exc:
            self._fail(exc)
            return
        self._deliver(seq, value)

    def _deliver(self, seq: int, value: T) -> None:
        with self._deliver_lock:
            if seq <= self._delivered_seq:
                return
            self._delivered_seq = seq
            if self._remove_duplicates:
                if self._has_last and value == self._last:
                    return
                self._has_last, self._last = True, value
            self._scheduler.schedule(lambda: self._emit(value))

    def _emit(self, value: T) -> None:
        if self.cancellable.is_cancelled:
            return
        try:
            self._on_change(value)
        except Exception:
            logger.exception("Observation callback failed")

    def _fail(self, error: BaseException) -> None:
        """Fetch errors end the observation."""
        self.cancellable.cancel()
        if self._on_error is None:
            logger.error("Observation failed: %s", error)
            return
        self._scheduler.schedule(lambda: self._on_error(error))
