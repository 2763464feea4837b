"""Workspace resolution across the three generations of stored data.

Data lives in up to three places:

- ``data_by_user[user_id]``: legacy per-user profiles, from before shared
  workspaces existed.
- ``data_by_workspace[workspace_id]``: the shared slice, the only place
  new writes go.
- the store's view: a read-only copy of the active slice for readers.

Resolution prefers the workspace slice. The first time a workspace has no
slice but the acting user still has a legacy one, the legacy slice is
adopted as the workspace slice and persisted straight away; afterwards
the workspace slice always wins, so resolving is idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .models import StoreState, WorkspaceSlice

logger = logging.getLogger(__name__)


class WorkspaceResolver:
    def __init__(self, on_migrate: Callable[[], None] | None = None):
        self._on_migrate = on_migrate

    def resolve(self, state: StoreState) -> WorkspaceSlice | None:
        """Slice for the active workspace, or None when none is linked.

        An empty slice that nobody has written yet is returned without
        being stored.
        """
        workspace_id = state.workspace_id
        if not workspace_id:
            return None

        existing = state.data_by_workspace.get(workspace_id)
        if existing is not None:
            return existing

        user_id = state.acting_user_id()
        legacy = state.data_by_user.get(user_id) if user_id else None
        if legacy is not None:
            logger.info(
                "Migrating legacy data of user %s into workspace %s",
                user_id,
                workspace_id,
            )
            state.data_by_workspace[workspace_id] = legacy
            if self._on_migrate is not None:
                self._on_migrate()
            return legacy

        return WorkspaceSlice()

    def write(self, state: StoreState, slice_: WorkspaceSlice) -> bool:
        """Store *slice_* under the active workspace."""
        workspace_id = state.workspace_id
        if not workspace_id:
            logger.error("Cannot write workspace data: no active workspace")
            return False
        state.data_by_workspace[workspace_id] = slice_
        return True

    def derive_view(self, state: StoreState) -> WorkspaceSlice | None:
        """Active slice for readers; None means "leave the current view alone"."""
        return self.resolve(state)
