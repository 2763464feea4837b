"""Offline-first sync core.

Local mutations are recorded per user in an outbox, pushed to the remote,
and remote changes are pulled and merged last-write-wins into the active
workspace slice.

Modules:

- ``models``     -- records, slices, change events, session and status
  models.
- ``totals``     -- ``compute_totals`` for quotes and invoices.
- ``outbox``     -- ``Outbox``: per-user change log.
- ``workspace``  -- ``WorkspaceResolver``: active slice and legacy
  migration.
- ``merger``     -- ``merge_changes``: all-or-nothing LWW merge.
- ``engine``     -- ``SyncEngine``: push, pull, merge, persist.
- ``scheduler``  -- ``AutoSyncTrigger``: coalesced background sync.
- ``state``      -- ``StateStore``: versioned JSON blob on disk.
- ``migrations`` -- schema upgrades for the blob.
- ``reporter``   -- text and JSON formatting of reports and status.

Usage example
-------------
::

    from pathlib import Path
    from jobsync.store import JobStore
    from jobsync.sync import StateStore, format_sync_report

    store = JobStore.open(StateStore(Path(".jobsync/state.json")))
    store.set_authenticated_user(
        {"id": "u1", "email": "me@example.com", "workspaceId": "ws-1"}
    )
    store.add_customer({"name": "Ada"})

    report = await store.sync_now()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .merger import merge_changes
from .models import (
    ChangeEvent,
    EntityKind,
    Operation,
    SyncPhase,
    SyncReport,
    SyncStatus,
    WorkspaceSlice,
)
from .outbox import Outbox
from .reporter import (
    format_sync_report,
    format_sync_status,
    report_to_json,
    status_to_json,
)
from .scheduler import AutoSyncTrigger
from .state import StateStore
from .totals import Totals, compute_totals
from .workspace import WorkspaceResolver

__all__ = [
    "AutoSyncTrigger",
    "ChangeEvent",
    "EntityKind",
    "Operation",
    "Outbox",
    "StateStore",
    "SyncEngine",
    "SyncPhase",
    "SyncReport",
    "SyncStatus",
    "Totals",
    "WorkspaceResolver",
    "WorkspaceSlice",
    "compute_totals",
    "format_sync_report",
    "format_sync_status",
    "merge_changes",
    "report_to_json",
    "status_to_json",
]
