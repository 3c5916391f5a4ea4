"""Position assignment for one date bucket.

Every function takes a bucket sorted by position and numbered ``1..N`` and
returns a new bucket with the same guarantee. Inputs are never mutated, and
when an operation changes nothing the original tuple is returned so callers
can detect no-ops by identity.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from core.exceptions import TodoNotFoundError
from domain.entities.todo import Todo, TodoIdentity

Bucket = tuple[Todo, ...]


def normalize(todos: Iterable[Todo]) -> Bucket:
    """Sort by position (stable) and renumber ``1..N``."""
    ordered = sorted(todos, key=lambda t: t.position)
    return tuple(t.with_position(i + 1) for i, t in enumerate(ordered))


def index_of(bucket: Sequence[Todo], identity: TodoIdentity) -> int:
    for i, todo in enumerate(bucket):
        if todo.matches(identity):
            return i
    raise TodoNotFoundError(identity)


def first_completed_index(bucket: Sequence[Todo], exclude: TodoIdentity | None = None) -> int:
    """Index of the first completed item, or ``len(bucket)`` if there is none."""
    for i, todo in enumerate(bucket):
        if todo.is_completed and not (exclude is not None and todo.matches(exclude)):
            return i
    return len(bucket)


def _renumber_range(items: list[Todo], start: int, end: int) -> None:
    for i in range(start, end + 1):
        items[i] = items[i].with_position(i + 1)


def _result(original: Bucket, items: list[Todo]) -> Bucket:
    result = tuple(items)
    if result == original:
        return original
    return result


def insert_at_end(bucket: Bucket, todo: Todo) -> Bucket:
    """Append ``todo`` with position ``max + 1`` (or 1 for an empty bucket)."""
    position = max((t.position for t in bucket), default=0) + 1
    return bucket + (todo.with_position(position),)


def is_move_within_group(bucket: Bucket, identity: TodoIdentity, target_index: int) -> bool:
    """Check that a move keeps the completed block below the incomplete items.

    A completed item cannot be moved above the first completed item, and an
    incomplete item cannot be moved into or below the completed block.
    """
    moved = bucket[index_of(bucket, identity)]
    boundary = first_completed_index(bucket)
    if moved.is_completed:
        return target_index >= boundary
    return boundary == len(bucket) or target_index < boundary


def move_to_position(bucket: Bucket, identity: TodoIdentity, target_index: int) -> Bucket:
    """Reinsert an item at a 0-based index and renumber the whole bucket."""
    old_index = index_of(bucket, identity)
    target = max(0, min(target_index, len(bucket) - 1))
    items = list(bucket)
    moved = items.pop(old_index)
    items.insert(target, moved)
    _renumber_range(items, 0, len(items) - 1)
    return _result(bucket, items)


def complete(bucket: Bucket, identity: TodoIdentity, completed_at: datetime) -> Bucket:
    """Mark an item completed and move it to the top of the completed block."""
    old_index = index_of(bucket, identity)
    boundary = first_completed_index(bucket)
    items = list(bucket)
    moved = items.pop(old_index)
    new_index = boundary - 1 if boundary > old_index else boundary
    items.insert(new_index, moved.complete(completed_at))
    _renumber_range(items, min(old_index, new_index), max(old_index, new_index))
    return _result(bucket, items)


def uncomplete(bucket: Bucket, identity: TodoIdentity) -> Bucket:
    """Mark an item incomplete and move it to the end of the incomplete items."""
    old_index = index_of(bucket, identity)
    boundary = first_completed_index(bucket, exclude=identity)
    items = list(bucket)
    moved = items.pop(old_index)
    new_index = boundary - 1 if boundary > old_index else boundary
    items.insert(new_index, moved.uncomplete())
    _renumber_range(items, min(old_index, new_index), max(old_index, new_index))
    return _result(bucket, items)


def remove_and_renumber(bucket: Bucket, identity: TodoIdentity) -> Bucket:
    """Drop an item and close the gap it leaves."""
    index = index_of(bucket, identity)
    items = list(bucket)
    del items[index]
    _renumber_range(items, 0, len(items) - 1)
    return tuple(items)


def insert_before_completed(bucket: Bucket, todo: Todo) -> Bucket:
    """Insert ``todo`` before the first completed item (or at the end)."""
    items = list(bucket)
    items.insert(first_completed_index(bucket), todo)
    _renumber_range(items, 0, len(items) - 1)
    return tuple(items)
