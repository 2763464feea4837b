"""Per-user change log ("outbox").

Wraps the ``outbox_by_user`` map of the persisted state. Events are only
ever appended until a push succeeds; acknowledging a push removes exactly
the events that were sent, so anything appended while the push was in
flight stays queued for the next pass.
"""

from __future__ import annotations

import logging

from .models import ChangeEvent

logger = logging.getLogger(__name__)


class Outbox:
    def __init__(self, queues: dict[str, list[ChangeEvent]]):
        self._queues = queues

    def append(self, user_id: str, event: ChangeEvent) -> None:
        self._queues.setdefault(user_id, []).append(event)

    def pending(self, user_id: str) -> list[ChangeEvent]:
        """Snapshot of the queued events (a copy, safe to hold across awaits)."""
        return list(self._queues.get(user_id, []))

    def count(self, user_id: str | None) -> int:
        if user_id is None:
            return 0
        return len(self._queues.get(user_id, []))

    def ensure(self, user_id: str) -> None:
        self._queues.setdefault(user_id, [])

    def acknowledge(self, user_id: str, pushed: list[ChangeEvent]) -> int:
        """Drop *pushed* from the current queue; returns how many were removed.

        The queue is read again here rather than trusting the snapshot
        taken before the push.
        """
        pushed_ids = {event.id for event in pushed}
        current = self._queues.get(user_id, [])
        remaining = [event for event in current if event.id not in pushed_ids]
        removed = len(current) - len(remaining)
        self._queues[user_id] = remaining
        if remaining:
            logger.debug(
                "Outbox for %s keeps %d event(s) queued during push",
                user_id,
                len(remaining),
            )
        return removed
