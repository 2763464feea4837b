"""Last-write-wins merge of pulled changes into a workspace slice.

Key design choices:

* Each table is turned into an ``id -> record`` map, changes are applied
  in order, and the maps are flattened back into lists. Untouched records
  keep their order; new ones are appended.
* Ordering is by the ``updatedAt`` of the incoming row (falling back to
  the event's own ``updatedAt``) against the local row's ``updatedAt``.
  Timestamps are compared as parsed datetimes, never as strings.
* A tie goes to the incoming row.
* Deletes remove the id if present and are otherwise ignored.
* The merge is all-or-nothing: a single malformed change raises
  ``MergeError`` and the caller keeps its slice untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from ..errors import MergeError
from .models import (
    ChangeEvent,
    EntityKind,
    Operation,
    Record,
    WorkspaceSlice,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeOutcome:
    slice: WorkspaceSlice
    applied: int = 0
    deleted: int = 0
    skipped: int = 0


def incoming_wins(local: Record, incoming: Record, fallback_ts: str | None = None) -> bool:
    """True when *incoming* is at least as new as *local*."""
    incoming_ts = parse_timestamp(incoming.updated_at or fallback_ts)
    return incoming_ts >= parse_timestamp(local.updated_at)


def merge_changes(slice_: WorkspaceSlice, changes: list[ChangeEvent]) -> MergeOutcome:
    """Apply *changes* to a copy of *slice_*.

    Raises:
        MergeError: If any change cannot be applied.
    """
    tables: dict[EntityKind, dict[str, Record]] = {
        kind: {record.id: record for record in slice_.table(kind)}
        for kind in EntityKind
    }
    applied = deleted = skipped = 0

    for change in changes:
        record_id = change.record_id
        if record_id is None:
            raise MergeError(
                f"{change.operation.value} on {change.entity.value} has no row id"
            )
        table = tables[change.entity]

        match change.operation:
            case Operation.DELETE:
                if table.pop(record_id, None) is not None:
                    deleted += 1
            case Operation.CREATE | Operation.UPDATE:
                try:
                    incoming = change.to_record()
                except ValidationError as exc:
                    raise MergeError(
                        f"Invalid {change.entity.value} row {record_id}: {exc}"
                    ) from exc
                current = table.get(record_id)
                if current is None or incoming_wins(current, incoming, change.updated_at):
                    table[record_id] = incoming
                    applied += 1
                else:
                    logger.debug(
                        "Keeping newer local %s %s", change.entity.value, record_id
                    )
                    skipped += 1
            case _:
                raise MergeError(f"Unsupported operation: {change.operation!r}")

    merged = slice_
    for kind, table in tables.items():
        merged = merged.with_table(kind, list(table.values()))

    return MergeOutcome(slice=merged, applied=applied, deleted=deleted, skipped=skipped)
