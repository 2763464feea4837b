"""Sync engine: push the outbox, pull remote changes, merge, persist.

``SyncEngine.sync_now()`` runs one pass for the acting user:

1. Check preconditions (signed in, workspace linked, user id known).
2. Push the whole outbox plus the device id in one request.
3. On success, acknowledge exactly the pushed events against the outbox
   as it is *now*, so events queued during the push survive.
4. Pull everything since the user's cursor.
5. Merge (last-write-wins) into the current workspace slice.
6. Advance the cursor to the server time, refresh the view, persist.

The engine is the error boundary of the sync core: ``sync_now()`` never
raises. Every failure ends up as a message in ``last_error`` and the
engine moves to the ``error`` phase until the next pass starts. A failed
push or pull leaves local data and the cursor untouched; a failed merge
leaves the slice and cursor untouched; an authentication failure signs
the user out.

Only one pass runs at a time. The in-flight flag is checked and set with
no await in between, so a second call while syncing is a silent no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.async_utils import run_sync
from ..errors import AuthenticationError, JobSyncError, MergeError, TransportError
from .merger import merge_changes
from .models import SyncPhase, SyncReport, SyncStatus, now_iso

if TYPE_CHECKING:
    from ..core.client import SyncRemote
    from ..store import JobStore

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "User not authenticated. Please sign in."
NO_WORKSPACE = "Workspace not linked. Create or join a business first."
NO_USER = "No authenticated user"
SESSION_EXPIRED = "Session expired. Please sign in again."
GENERIC_FAILURE = "Sync failed. Please try again."
PUSH_REJECTED = "Push was rejected by the server. Changes kept for retry."

_AUTH_MARKERS = (
    "invalid refresh token",
    "refresh token not found",
    "refresh_token",
    "jwt",
    "token",
    "unauthorized",
    "401",
)


def is_auth_error(exc: BaseException) -> bool:
    if isinstance(exc, AuthenticationError):
        return True
    # Server bodies such as "Unexpected token" in a 500 are not auth failures
    if isinstance(exc, TransportError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _AUTH_MARKERS)


class SyncEngine:
    """Run sync passes for a ``JobStore``.

    Args:
        store: The store whose outbox, slices and cursors are synced.
            Held by reference; state is re-read before every write.
        client: Remote to push to and pull from.
    """

    def __init__(self, store: JobStore, client: SyncRemote) -> None:
        self.store = store
        self.client = client
        self.phase = SyncPhase.IDLE
        self.is_syncing = False
        self.last_error: str | None = None
        self.last_report: SyncReport | None = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncReport | None:
        """Run one pass. Returns its report, or None when nothing ran."""
        if self.is_syncing:
            logger.debug("Sync already in progress, ignoring request")
            return None

        state = self.store.state
        if not self.store.is_authenticated:
            self._fail_precondition(NOT_AUTHENTICATED)
            return None
        workspace_id = state.workspace_id
        if not workspace_id:
            self._fail_precondition(NO_WORKSPACE)
            return None
        user_id = state.acting_user_id()
        if not user_id:
            self._fail_precondition(NO_USER)
            return None

        self.is_syncing = True
        self.phase = SyncPhase.SYNCING
        self.last_error = None
        started_at = now_iso()
        try:
            report = await self._run_pass(user_id, workspace_id, started_at)
        except Exception as exc:
            report = self._handle_failure(exc, user_id, workspace_id, started_at)
        finally:
            self.is_syncing = False

        self.last_report = report
        await self._persist()
        return report

    async def full_sync(self) -> SyncReport | None:
        """Forget the cursor so the next pull fetches everything, then sync."""
        if self.is_syncing:
            logger.debug("Sync already in progress, ignoring full sync")
            return None
        user_id = self.store.state.acting_user_id()
        if user_id:
            logger.info("Resetting sync cursor for %s", user_id)
            self.store.state.last_sync_by_user[user_id] = None
        return await self.sync_now()

    def clear_error(self) -> None:
        self.last_error = None
        if self.phase is SyncPhase.ERROR:
            self.phase = SyncPhase.IDLE

    def status(self) -> SyncStatus:
        state = self.store.state
        user_id = state.acting_user_id()
        return SyncStatus(
            phase=self.phase,
            is_syncing=self.is_syncing,
            last_error=self.last_error,
            pending_changes=self.store.outbox.count(user_id),
            last_synced_at=state.last_sync_by_user.get(user_id) if user_id else None,
            user_id=user_id,
            workspace_id=state.workspace_id,
            save_error=self.store.persist_error,
        )

    # ------------------------------------------------------------------
    # One pass
    # ------------------------------------------------------------------

    async def _run_pass(self, user_id: str, workspace_id: str, started_at: str) -> SyncReport:
        pending = self.store.outbox.pending(user_id)
        device_id = self.store.state.device_id

        logger.info("Pushing %d change(s) for workspace %s", len(pending), workspace_id)
        pushed_ok = await run_sync(self.client.push, workspace_id, device_id, pending)
        if pushed_ok:
            pushed = self.store.outbox.acknowledge(user_id, pending)
        else:
            # Still pull: remote edits arrive even while this device is refused
            logger.warning("Push rejected, keeping %d change(s) for retry", len(pending))
            pushed = 0

        since = self.store.state.last_sync_by_user.get(user_id)
        pull = await run_sync(self.client.pull, workspace_id, since)
        logger.info("Pulled %d change(s) since %s", len(pull.changes), since or "the beginning")

        # Re-read: mutators may have run while push/pull were in flight
        state = self.store.state
        if state.workspace_id != workspace_id:
            raise JobSyncError("Workspace changed during sync. Remote changes not applied.")

        current = self.store.resolver.resolve(state)
        try:
            outcome = merge_changes(current, pull.changes)
        except MergeError:
            raise
        except Exception as exc:
            raise MergeError(str(exc)) from exc

        self.store.resolver.write(state, outcome.slice)
        state.last_sync_by_user[user_id] = pull.server_time
        self.store.refresh_view()

        error = None if pushed_ok else PUSH_REJECTED
        self.phase = SyncPhase.IDLE if pushed_ok else SyncPhase.ERROR
        self.last_error = error
        return SyncReport(
            user_id=user_id,
            workspace_id=workspace_id,
            started_at=started_at,
            completed_at=now_iso(),
            pushed=pushed,
            pulled=len(pull.changes),
            applied=outcome.applied,
            deleted=outcome.deleted,
            skipped=outcome.skipped,
            cursor=pull.server_time,
            error=error,
        )

    # ------------------------------------------------------------------
    # Failures
    # ------------------------------------------------------------------

    def _fail_precondition(self, message: str) -> None:
        logger.info("Sync skipped: %s", message)
        self.phase = SyncPhase.ERROR
        self.last_error = message

    def _handle_failure(
        self, exc: Exception, user_id: str, workspace_id: str, started_at: str
    ) -> SyncReport:
        if isinstance(exc, MergeError):
            logger.error("Failed to apply remote changes: %s", exc)
            message = f"Failed to apply remote changes: {exc}"
        elif is_auth_error(exc):
            logger.warning("Authentication error during sync, signing out: %s", exc)
            self.store.clear_authentication(save=False)
            message = SESSION_EXPIRED
        else:
            logger.error("Sync failed: %s", exc)
            message = str(exc) or GENERIC_FAILURE

        self.phase = SyncPhase.ERROR
        self.last_error = message
        return SyncReport(
            user_id=user_id,
            workspace_id=workspace_id,
            started_at=started_at,
            completed_at=now_iso(),
            cursor=self.store.state.last_sync_by_user.get(user_id),
            error=message,
        )

    async def _persist(self) -> None:
        await self.store.flush()
        try:
            await self.store.persist_async()
        except Exception as exc:
            logger.exception("Failed to persist state after sync")
            self.store.persist_error = str(exc)
        else:
            self.store.persist_error = None
