"""Todo synchronization engine: optimistic writes over a remote Todo Service."""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import date, datetime
from typing import cast

import structlog

from core.exceptions import AppException, TodoNotFoundError, ValidationError
from domain.entities.todo import RealId, Todo, TodoIdentity, VirtualKey, same_identity
from domain.entities.view import ALLOWED_VIEW_DAYS, ViewWindow
from domain.repositories.todo_repository import ITodoRepository
from domain.services import reorder
from domain.services.local_store import LocalStore, StoreListener
from domain.services.materialization import (
    merge_canonical,
    prune_future_occurrences,
    requires_materialization,
)
from domain.services.mutation_tracker import MutationTracker
from domain.services.reorder import Bucket

logger = structlog.get_logger()

MAX_TEXT_LENGTH = 255
ROLLBACK_ATTEMPTS = 2


class TodoSyncService:
    """Service layer keeping date buckets consistent with the Todo Service.

    Writes are applied to the local store before their request is sent. On
    success the canonical row is merged in; on a network or conflict error the
    affected dates are re-fetched silently and the error is re-raised. Reads
    that started before the latest local write are discarded.
    """

    def __init__(
        self,
        repository: ITodoRepository,
        store: LocalStore | None = None,
        tracker: MutationTracker | None = None,
        view: ViewWindow | None = None,
        max_text_length: int = MAX_TEXT_LENGTH,
    ) -> None:
        self._repository = repository
        self._store = store or LocalStore()
        self._tracker = tracker or MutationTracker()
        self._view = view or ViewWindow(selected_date=date.today())
        self._max_text_length = max_text_length
        self._loading = 0
        self._error: str | None = None

    # --- State ---

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def tracker(self) -> MutationTracker:
        return self._tracker

    @property
    def view(self) -> ViewWindow:
        return self._view

    @property
    def is_loading(self) -> bool:
        """True while a non-silent read is in flight."""
        return self._loading > 0

    @property
    def error(self) -> str | None:
        """Human-readable message of the last failure."""
        return self._error

    def clear_error(self) -> None:
        self._error = None

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        return self._store.add_listener(listener)

    def snapshot(self, date_key: date) -> Bucket | None:
        """Read-only bucket for a date; None if the date is not loaded."""
        return self._store.get(date_key)

    def find(self, identity: TodoIdentity) -> Todo | None:
        located = self._store.find(identity)
        return located[1] if located else None

    # --- View window ---

    def set_view(self, selected_date: date, days: int | None = None) -> ViewWindow:
        """Change the visible window. Does not load anything by itself."""
        days = self._view.days if days is None else days
        if days not in ALLOWED_VIEW_DAYS:
            raise ValidationError(
                f"View must show {', '.join(str(d) for d in ALLOWED_VIEW_DAYS)} days",
                details={"days": days},
            )
        self._view = ViewWindow(selected_date=selected_date, days=days)
        return self._view

    def visible_dates(self) -> list[date]:
        return self._view.dates()

    def is_visible(self, day: date) -> bool:
        return self._view.contains(day)

    # --- Reads ---

    async def load_for_date(
        self, day: date, silent: bool = False, as_of: datetime | None = None
    ) -> bool:
        """Fetch one date and replace its bucket.

        ``silent`` skips the loading indicator. ``as_of`` moves the fetch
        start back to an earlier instant, e.g. a notification timestamp.
        Returns True if the result was applied.
        """
        try:
            todos = await self._fetch(
                lambda: self._repository.get_for_date(day), silent=silent, as_of=as_of
            )
        except AppException as exc:
            self._read_failed(exc, start=day, end=day, silent=silent)
            return False
        if todos is None:
            logger.info("stale_fetch_discarded", date=day.isoformat(), silent=silent)
            return False

        changed = self._store.replace(day, [t for t in todos if t.assigned_date == day])
        logger.debug("todos_loaded", date=day.isoformat(), count=len(todos), changed=changed)
        return True

    async def load_for_range(
        self, start: date, end: date, silent: bool = False, as_of: datetime | None = None
    ) -> bool:
        """Fetch an inclusive date range and replace every bucket in it."""
        if end < start:
            raise ValidationError("End date must not be before start date")
        try:
            todos = await self._fetch(
                lambda: self._repository.get_for_range(start, end), silent=silent, as_of=as_of
            )
        except AppException as exc:
            self._read_failed(exc, start=start, end=end, silent=silent)
            return False
        if todos is None:
            logger.info(
                "stale_fetch_discarded",
                start=start.isoformat(),
                end=end.isoformat(),
                silent=silent,
            )
            return False

        by_date: dict[date, list[Todo]] = defaultdict(list)
        for todo in todos:
            by_date[todo.assigned_date].append(todo)

        changed = []
        for day in ViewWindow.span(start, end):
            if self._store.replace(day, by_date.get(day, [])):
                changed.append(day.isoformat())
        logger.debug(
            "todos_range_loaded",
            start=start.isoformat(),
            end=end.isoformat(),
            count=len(todos),
            changed=changed,
        )
        return True

    async def load_current_view(self, silent: bool = False, as_of: datetime | None = None) -> bool:
        """Fetch every date in the visible window."""
        if self._view.days == 1:
            return await self.load_for_date(self._view.selected_date, silent=silent, as_of=as_of)
        return await self.load_for_range(
            self._view.start, self._view.end, silent=silent, as_of=as_of
        )

    # --- Writes ---

    async def create(self, text: str, day: date) -> Todo:
        """Create a todo at the end of a date's incomplete items.

        The row only appears locally once the server has assigned its id.
        """
        cleaned = self._validate_text(text)
        self._error = None
        self._tracker.record_mutation()
        try:
            created = await self._repository.create(cleaned, day)
        except AppException as exc:
            loaded = {day} if self._store.is_known(day) else set()
            await self._write_failed("create", exc, loaded)
            raise

        date_key = created.assigned_date
        if not self._store.is_known(date_key):
            logger.info("todo_created_unloaded_date", todo_id=created.id, date=date_key.isoformat())
            return created
        bucket = self._bucket(date_key)
        if any(same_identity(existing, created) for existing in bucket):
            self._store.patch(date_key, created)
        elif reorder.first_completed_index(bucket) < len(bucket):
            self._store.put(date_key, reorder.insert_before_completed(bucket, created))
        else:
            self._store.put(date_key, reorder.insert_at_end(bucket, created))
        logger.info("todo_created", todo_id=created.id, date=date_key.isoformat())
        return self.find(created.identity) or created

    async def update_text(self, identity: TodoIdentity, text: str) -> Todo:
        cleaned = self._validate_text(text)
        identity = self._store.resolve(identity)
        date_key, todo = self._require(identity)
        if todo.text == cleaned:
            return todo
        key = self._request_key(todo)

        bucket = self._bucket(date_key)
        updated = tuple(replace(t, text=cleaned) if t.matches(identity) else t for t in bucket)

        async def request() -> Todo:
            if isinstance(key, VirtualKey):
                return await self._repository.update_virtual_text(
                    key.recurring_todo_id, key.instance_date, cleaned
                )
            return await self._repository.update_text(key.id, cleaned)

        return cast(Todo, await self._write("update_text", identity, {date_key: updated}, request))

    async def move(self, identity: TodoIdentity, new_index: int) -> Todo:
        """Move an item to a 0-based index within its date."""
        identity = self._store.resolve(identity)
        date_key, todo = self._require(identity)
        bucket = self._bucket(date_key)
        if not 0 <= new_index < len(bucket):
            raise ValidationError(
                f"Position out of range: {new_index}",
                details={"position": new_index, "size": len(bucket)},
            )
        if reorder.index_of(bucket, identity) == new_index:
            return todo
        if not reorder.is_move_within_group(bucket, identity, new_index):
            logger.info(
                "move_rejected",
                identity=str(identity),
                position=new_index,
                is_completed=todo.is_completed,
            )
            return todo
        key = self._request_key(todo)

        moved = reorder.move_to_position(bucket, identity, new_index)

        async def request() -> Todo:
            if isinstance(key, VirtualKey):
                return await self._repository.update_virtual_position(
                    key.recurring_todo_id, key.instance_date, new_index
                )
            return await self._repository.update_position(key.id, new_index)

        return cast(Todo, await self._write("move", identity, {date_key: moved}, request))

    async def complete(self, identity: TodoIdentity) -> Todo:
        identity = self._store.resolve(identity)
        date_key, todo = self._require(identity)
        if todo.is_completed:
            return todo
        key = self._request_key(todo)

        completed = reorder.complete(self._bucket(date_key), identity, self._tracker.now())

        async def request() -> Todo:
            if isinstance(key, VirtualKey):
                return await self._repository.complete_virtual(
                    key.recurring_todo_id, key.instance_date
                )
            return await self._repository.complete(key.id)

        return cast(Todo, await self._write("complete", identity, {date_key: completed}, request))

    async def uncomplete(self, identity: TodoIdentity) -> Todo:
        identity = self._store.resolve(identity)
        date_key, todo = self._require(identity)
        if not todo.is_completed:
            return todo
        key = self._request_key(todo)
        if isinstance(key, VirtualKey):
            raise ValidationError("Virtual todo has no completion to undo")

        uncompleted = reorder.uncomplete(self._bucket(date_key), identity)

        async def request() -> Todo:
            return await self._repository.uncomplete(key.id)

        return cast(
            Todo, await self._write("uncomplete", identity, {date_key: uncompleted}, request)
        )

    async def delete(self, identity: TodoIdentity, delete_all_future: bool = False) -> None:
        """Delete an item.

        With ``delete_all_future`` on a recurring item, every incomplete
        occurrence of the recurrence from this instance onwards is removed
        from every loaded date as well.
        """
        identity = self._store.resolve(identity)
        date_key, todo = self._require(identity)
        key = self._request_key(todo)

        changes: dict[date, Bucket] = {
            date_key: reorder.remove_and_renumber(self._bucket(date_key), identity)
        }
        if delete_all_future and todo.recurring_todo_id is not None:
            from_date = todo.instance_date or date_key
            for day in self._store.dates():
                bucket = changes.get(day, self._bucket(day))
                pruned = prune_future_occurrences(bucket, todo.recurring_todo_id, from_date)
                if pruned is not bucket:
                    changes[day] = pruned

        async def request() -> None:
            if isinstance(key, VirtualKey):
                await self._repository.delete_virtual(
                    key.recurring_todo_id, key.instance_date, delete_all_future
                )
            else:
                await self._repository.delete(key.id, delete_all_future)

        await self._write("delete", identity, changes, request)

    async def move_to_date(self, item: Todo | TodoIdentity, day: date) -> Todo:
        """Move an item to another date, before that date's completed items.

        A moved recurring occurrence is detached from its recurrence, as the
        server does; a virtual one keeps its key until the response arrives.
        """
        identity = item.identity if isinstance(item, Todo) else item
        identity = self._store.resolve(identity)
        source_date, todo = self._require(identity)
        if source_date == day:
            return todo
        key = self._request_key(todo)

        if isinstance(key, VirtualKey):
            moved = replace(todo, assigned_date=day, is_rolled_over=False)
        else:
            moved = replace(todo, assigned_date=day, is_rolled_over=False, recurring_todo_id=None)

        changes: dict[date, Bucket] = {
            source_date: reorder.remove_and_renumber(self._bucket(source_date), identity)
        }
        if self._store.is_known(day):
            changes[day] = reorder.insert_before_completed(self._bucket(day), moved)

        async def request() -> Todo:
            if isinstance(key, VirtualKey):
                return await self._repository.update_virtual_assigned_date(
                    key.recurring_todo_id, key.instance_date, day
                )
            return await self._repository.update_assigned_date(key.id, day)

        return cast(Todo, await self._write("move_to_date", identity, changes, request))

    # --- Internals ---

    async def _write(
        self,
        action: str,
        identity: TodoIdentity,
        changes: dict[date, Bucket],
        request: Callable[[], Awaitable[Todo | None]],
    ) -> Todo | None:
        self._error = None
        mutation_at = self._tracker.record_mutation()
        for day, bucket in changes.items():
            self._store.put(day, bucket)

        try:
            canonical = await request()
        except AppException as exc:
            await self._write_failed(action, exc, set(changes), identity=identity)
            raise

        logger.info("todo_write_committed", action=action, identity=str(identity))
        if canonical is None:
            return None

        latest = self._tracker.latest_mutation_at
        superseded = latest is not None and latest > mutation_at
        merged = merge_canonical(self._store, identity, canonical, superseded=superseded)
        return merged or canonical

    async def _fetch(
        self,
        fetch: Callable[[], Awaitable[list[Todo]]],
        silent: bool,
        as_of: datetime | None = None,
    ) -> list[Todo] | None:
        """Run a read; None means it went stale while in flight."""
        started = self._tracker.now()
        if as_of is not None and as_of < started:
            started = as_of
        if not silent:
            self._loading += 1
            self._error = None
        try:
            todos = await fetch()
        finally:
            if not silent:
                self._loading -= 1
        if self._tracker.is_fetch_stale(started):
            return None
        return todos

    async def _write_failed(
        self,
        action: str,
        exc: AppException,
        dates: set[date],
        identity: TodoIdentity | None = None,
    ) -> None:
        self._error = exc.message
        logger.warning(
            "todo_write_failed",
            action=action,
            identity=str(identity) if identity else None,
            error_code=exc.error_code.value,
            message=exc.message,
            dates=sorted(d.isoformat() for d in dates),
        )
        if not exc.triggers_rollback:
            return
        for day in sorted(dates):
            await self._rollback_date(day)

    async def _rollback_date(self, day: date) -> None:
        """Restore ground truth for a date after a failed write.

        A refetch overtaken by a newer local write is issued once more; if
        that one is overtaken too, the newer write's own merge or rollback
        settles the date.
        """
        for attempt in range(1, ROLLBACK_ATTEMPTS + 1):
            try:
                todos = await self._fetch(lambda: self._repository.get_for_date(day), silent=True)
            except AppException as exc:
                logger.warning(
                    "rollback_refetch_failed",
                    date=day.isoformat(),
                    error_code=exc.error_code.value,
                    message=exc.message,
                )
                self._store.discard(day)
                return
            if todos is not None:
                break
            logger.info("rollback_refetch_superseded", date=day.isoformat(), attempt=attempt)
        else:
            return
        self._store.replace(day, [t for t in todos if t.assigned_date == day])
        logger.info("todo_write_rolled_back", date=day.isoformat())

    def _read_failed(self, exc: AppException, start: date, end: date, silent: bool) -> None:
        self._error = exc.message
        logger.warning(
            "todos_load_failed",
            start=start.isoformat(),
            end=end.isoformat(),
            silent=silent,
            error_code=exc.error_code.value,
            message=exc.message,
        )

    def _require(self, identity: TodoIdentity) -> tuple[date, Todo]:
        located = self._store.find(identity)
        if located is None:
            raise TodoNotFoundError(identity)
        return located

    def _bucket(self, date_key: date) -> Bucket:
        return self._store.get(date_key) or ()

    def _validate_text(self, text: str) -> str:
        cleaned = (text or "").strip()
        if not cleaned:
            raise ValidationError("Text is required")
        if len(cleaned) > self._max_text_length:
            raise ValidationError(
                f"Text must be at most {self._max_text_length} characters",
                details={"length": len(cleaned)},
            )
        return cleaned

    @staticmethod
    def _request_key(todo: Todo) -> TodoIdentity:
        if requires_materialization(todo):
            if todo.recurring_todo_id is None or todo.instance_date is None:
                raise ValidationError("Virtual todo is missing its recurrence reference")
            return VirtualKey(todo.recurring_todo_id, todo.instance_date)
        return RealId(todo.id)
