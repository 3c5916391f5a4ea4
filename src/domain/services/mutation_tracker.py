"""Tracks the latest locally-initiated write to reject stale reads."""

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

logger = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MutationTracker:
    """Latest-mutation instant owned by one sync engine.

    A read whose start instant precedes the latest mutation must not be
    applied: its response may not reflect that write.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._latest: datetime | None = None

    @property
    def latest_mutation_at(self) -> datetime | None:
        return self._latest

    def now(self) -> datetime:
        """Current instant, used to stamp the start of a fetch."""
        return self._clock()

    def record_mutation(self) -> datetime:
        """Record a write about to be issued. Call before sending the request."""
        instant = self._clock()
        if self._latest is None or instant > self._latest:
            self._latest = instant
        return instant

    def is_fetch_stale(self, fetch_started_at: datetime) -> bool:
        """Check whether a read started before the latest mutation."""
        if self._latest is None:
            return False
        stale = fetch_started_at < self._latest
        if stale:
            logger.debug(
                "stale_fetch_detected",
                fetch_started_at=fetch_started_at.isoformat(),
                latest_mutation_at=self._latest.isoformat(),
            )
        return stale
