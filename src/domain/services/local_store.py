"""Per-date local state of the sync engine."""

from collections.abc import Callable, Iterable
from datetime import date

import structlog

from domain.entities.todo import RealId, Todo, TodoIdentity, VirtualKey, is_same_entry
from domain.services import reorder
from domain.services.reorder import Bucket

logger = structlog.get_logger()

StoreListener = Callable[[frozenset[date]], None]


class LocalStore:
    """Mapping of date to a position-ordered bucket of todos.

    Buckets are immutable tuples and the mapping is copied on every change,
    so an unchanged bucket keeps its object identity across operations.
    A missing date means "nothing here". A date stays known after a write
    empties its bucket, until it is discarded, so later inserts still land.
    """

    def __init__(self) -> None:
        self._buckets: dict[date, Bucket] = {}
        self._known: set[date] = set()
        self._aliases: dict[VirtualKey, RealId] = {}
        self._version = 0
        self._listeners: list[StoreListener] = []

    @property
    def version(self) -> int:
        """Incremented on every actual change."""
        return self._version

    def get(self, date_key: date) -> Bucket | None:
        return self._buckets.get(date_key)

    def dates(self) -> list[date]:
        return sorted(self._buckets)

    def is_known(self, date_key: date) -> bool:
        """True if the date was loaded and not discarded since, even if now empty."""
        return date_key in self._known

    def find(self, identity: TodoIdentity) -> tuple[date, Todo] | None:
        """Locate an item by identity across all buckets.

        A ``VirtualKey`` whose row was detached from its recurrence resolves
        through the alias recorded when it materialized.
        """
        located = self._locate(identity)
        if located is None and isinstance(identity, VirtualKey) and identity in self._aliases:
            located = self._locate(self._aliases[identity])
        return located

    def resolve(self, identity: TodoIdentity) -> TodoIdentity:
        """Return the identity that currently addresses the item in its bucket."""
        if isinstance(identity, VirtualKey) and self._locate(identity) is None:
            return self._aliases.get(identity, identity)
        return identity

    def alias(self, key: VirtualKey, real_id: RealId) -> None:
        """Keep ``key`` resolving to a row that no longer carries it."""
        self._aliases[key] = real_id

    def replace(self, date_key: date, todos: Iterable[Todo]) -> bool:
        """Install the result of a server read.

        Returns False and leaves the store untouched when the incoming
        bucket equals the current one.
        """
        incoming = reorder.normalize(todos)
        current = self._buckets.get(date_key)
        if current is not None and current == incoming:
            return False
        self._commit({date_key: incoming})
        return True

    def put(self, date_key: date, bucket: Bucket) -> bool:
        """Install a bucket computed by the reorder functions.

        An empty bucket is dropped, but the date stays known.
        """
        current = self._buckets.get(date_key)
        if not bucket:
            if current is None:
                return False
            self._commit({date_key: None})
            return True
        if current is not None and (current is bucket or current == bucket):
            return False
        self._commit({date_key: bucket})
        return True

    def patch(self, date_key: date, todo: Todo, match: TodoIdentity | None = None) -> bool:
        """Insert or update a single item.

        Without ``match`` the existing entry is found by id, falling back to
        the recurrence key, so a materialized row replaces its virtual entry.
        """
        bucket = self._buckets.get(date_key, ())
        items = list(bucket)
        for i, existing in enumerate(items):
            found = existing.matches(match) if match is not None else is_same_entry(existing, todo)
            if found:
                items[i] = todo
                break
        else:
            items.append(todo)
        return self.put(date_key, reorder.normalize(items))

    def remove(self, date_key: date, identity: TodoIdentity) -> bool:
        """Delete an item; the bucket is dropped when it becomes empty."""
        bucket = self._buckets.get(date_key)
        if bucket is None or not any(t.matches(identity) for t in bucket):
            return False
        remaining = reorder.remove_and_renumber(bucket, identity)
        self._commit({date_key: remaining or None})
        return True

    def discard(self, date_key: date) -> bool:
        """Forget a bucket entirely; the date is no longer known."""
        self._known.discard(date_key)
        if date_key not in self._buckets:
            return False
        self._commit({date_key: None})
        return True

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _locate(self, identity: TodoIdentity) -> tuple[date, Todo] | None:
        for date_key in self.dates():
            for todo in self._buckets[date_key]:
                if todo.matches(identity):
                    return date_key, todo
        return None

    def _commit(self, changes: dict[date, Bucket | None]) -> None:
        buckets = dict(self._buckets)
        for date_key, bucket in changes.items():
            if bucket is None:
                buckets.pop(date_key, None)
            else:
                buckets[date_key] = bucket
                self._known.add(date_key)
        self._buckets = buckets
        self._version += 1

        changed = frozenset(changes)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                logger.exception("store_listener_failed", dates=sorted(d.isoformat() for d in changed))
