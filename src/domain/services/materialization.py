"""Reconciles virtual recurring occurrences with the rows that replace them."""

from dataclasses import replace
from datetime import date

import structlog

from domain.entities.todo import RealId, Todo, TodoIdentity, VirtualKey
from domain.services import reorder
from domain.services.local_store import LocalStore
from domain.services.reorder import Bucket

logger = structlog.get_logger()


def requires_materialization(todo: Todo) -> bool:
    """Virtual items are written through the recurrence-keyed request variants."""
    return todo.is_virtual or todo.id is None


def merge_canonical(
    store: LocalStore,
    identity: TodoIdentity,
    canonical: Todo,
    superseded: bool = False,
) -> Todo | None:
    """Merge a write response into the current local state.

    The entry addressed by ``identity`` is looked up again, not taken from a
    snapshot captured before the request. It keeps its local position. When
    a later local write has superseded this one, only the materialized
    identity is adopted and the newer optimistic content stays.
    A virtual key the canonical row no longer carries stays resolvable.
    Returns the merged row, or None when the item is gone locally.
    """
    located = store.find(identity)
    if located is None:
        logger.info("canonical_row_dropped", identity=str(identity), todo_id=canonical.id)
        return None

    date_key, current = located
    if superseded:
        merged = replace(current, id=canonical.id, is_virtual=canonical.is_virtual)
    else:
        merged = replace(canonical, assigned_date=date_key, position=current.position)

    if current.is_virtual and not merged.is_virtual:
        logger.info(
            "virtual_todo_materialized",
            identity=str(identity),
            todo_id=merged.id,
            date=date_key.isoformat(),
        )

    store.patch(date_key, merged, match=current.identity)
    if isinstance(identity, VirtualKey) and merged.id is not None and not merged.matches(identity):
        # detached from its recurrence, e.g. moved to another date
        store.alias(identity, RealId(merged.id))
    return merged


def prune_future_occurrences(bucket: Bucket, recurring_todo_id: int, from_date: date) -> Bucket:
    """Remove a recurrence's incomplete occurrences on or after ``from_date``.

    Both virtual projections and already-materialized rows go; completed
    rows are history and stay.
    """
    kept = [
        todo
        for todo in bucket
        if not (
            todo.recurring_todo_id == recurring_todo_id
            and todo.instance_date is not None
            and todo.instance_date >= from_date
            and not todo.is_completed
        )
    ]
    if len(kept) == len(bucket):
        return bucket
    return reorder.normalize(kept)
