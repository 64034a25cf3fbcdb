"""
The single writer handle of a store.

All access goes through one connection guarded by one lock, so write
transactions never overlap and every read sees a committed state. The writer
also tracks which tables each transaction modifies and tells registered
observers after COMMIT.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Callable, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CASCADING_ACTIONS = {"CASCADE", "SET NULL", "SET DEFAULT"}


class TransactionObserver(Protocol):
    def observes(self, tables: frozenset[str]) -> bool:
        ...

    def database_did_commit(self, tables: frozenset[str]) -> None:
        ...


class _TableTracker:
    """sqlite authorizer that records the tables a statement reads or modifies."""

    def __init__(self) -> None:
        self.read: set[str] = set()
        self.inserted: set[str] = set()
        self.updated: set[str] = set()
        self.deleted: set[str] = set()

    def __call__(self, action: int, arg1, arg2, db_name, source) -> int:
        if arg1 and not arg1.startswith("sqlite_"):
            if action == sqlite3.SQLITE_INSERT:
                self.inserted.add(arg1)
            elif action == sqlite3.SQLITE_UPDATE:
                self.updated.add(arg1)
            elif action == sqlite3.SQLITE_DELETE:
                self.deleted.add(arg1)
            elif action == sqlite3.SQLITE_READ:
                self.read.add(arg1)
        return sqlite3.SQLITE_OK

    @property
    def modified(self) -> set[str]:
        return self.inserted | self.updated | self.deleted


class DatabaseWriter:
    """
    Owns the store's connection. Pass it explicitly to whatever needs the
    store; there is no process-wide instance.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()
        self._in_write = False
        self._observers: list[TransactionObserver] = []

    # ---------- Writes ----------

    def write(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run fn(conn) in one IMMEDIATE transaction and commit.
        Any exception rolls the whole transaction back and propagates unchanged.
        """
        with self._lock:
            if self._in_write:
                raise RuntimeError("write() is not reentrant: use the connection passed to fn")
            tracker = _TableTracker()
            self._in_write = True
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                self._conn.set_authorizer(tracker)
                try:
                    result = fn(self._conn)
                finally:
                    self._conn.set_authorizer(None)
                self._conn.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise
            finally:
                self._in_write = False
            if tracker.modified:
                self._notify(self._with_cascades(tracker))
            return result

    # ---------- Reads ----------

    def read(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn(conn) against a consistent snapshot."""
        with self._lock:
            if self._in_write:
                return fn(self._conn)
            self._conn.execute("BEGIN")
            try:
                return fn(self._conn)
            finally:
                self._conn.execute("COMMIT")

    def read_tracking(
        self,
        fn: Callable[[sqlite3.Connection], T],
        on_region: Callable[[frozenset[str]], None] | None = None,
    ) -> tuple[T, frozenset[str]]:
        """
        Like read(), also returning the tables fn read from. on_region gets
        them before the lock is released, so no commit can slip in between.
        """
        tracker = _TableTracker()

        def tracked(conn: sqlite3.Connection) -> T:
            conn.set_authorizer(tracker)
            try:
                return fn(conn)
            finally:
                conn.set_authorizer(None)

        with self._lock:
            value = self.read(tracked)
            region = frozenset(tracker.read)
            if on_region is not None:
                on_region(region)
            return value, region

    def read_and_observe(
        self,
        fn: Callable[[sqlite3.Connection], T],
        observer: TransactionObserver,
        on_region: Callable[[frozenset[str]], None] | None = None,
    ) -> tuple[T, frozenset[str]]:
        """Fetch and register observer atomically, so no commit falls in between."""
        with self._lock:
            result = self.read_tracking(fn, on_region)
            self._observers.append(observer)
            return result

    # ---------- Observers ----------

    def add_transaction_observer(self, observer: TransactionObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def remove_transaction_observer(self, observer: TransactionObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def close(self) -> None:
        with self._lock:
            self._observers.clear()
            self._conn.close()

    # ---------- Internals ----------

    def _with_cascades(self, tracker: _TableTracker) -> frozenset[str]:
        """Add tables changed by ON DELETE / ON UPDATE foreign key actions."""
        # parent -> [(child, on_delete, on_update)]
        children: dict[str, list[tuple[str, str, str]]] = {}
        tables = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        for (table,) in tables:
            for fk in self._conn.execute(f'PRAGMA foreign_key_list("{table}")').fetchall():
                children.setdefault(fk["table"], []).append((table, fk["on_delete"], fk["on_update"]))
        deleted, updated = set(tracker.deleted), set(tracker.updated)
        pending = [(t, "delete") for t in deleted] + [(t, "update") for t in updated]
        while pending:
            parent, change = pending.pop()
            for child, on_delete, on_update in children.get(parent, ()):
                action = on_delete if change == "delete" else on_update
                if action not in _CASCADING_ACTIONS:
                    continue
                # CASCADE on delete deletes children; every other action updates them.
                child_change = "delete" if change == "delete" and action == "CASCADE" else "update"
                target = deleted if child_change == "delete" else updated
                if child not in target:
                    target.add(child)
                    pending.append((child, child_change))
        return frozenset(tracker.inserted | deleted | updated)

    def _notify(self, tables: frozenset[str]) -> None:
        logger.debug("Committed changes to %s", sorted(tables))
        for observer in list(self._observers):
            if observer.observes(tables):
                observer.database_did_commit(tables)
