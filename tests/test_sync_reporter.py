"""Tests for jobsync.sync.reporter -- text and JSON output of reports and status."""

from jobsync.sync.models import SyncPhase, SyncReport, SyncStatus
from jobsync.sync.reporter import (
    format_sync_report,
    format_sync_status,
    report_to_json,
    status_to_json,
)


def _report(**overrides) -> SyncReport:
    defaults = {
        "user_id": "u1",
        "workspace_id": "ws-1",
        "started_at": "2026-03-01T12:00:00.000Z",
        "completed_at": "2026-03-01T12:00:01.000Z",
        "pushed": 3,
        "pulled": 2,
        "applied": 1,
        "deleted": 1,
        "skipped": 0,
        "cursor": "2026-03-01T12:00:01.000Z",
    }
    defaults.update(overrides)
    return SyncReport(**defaults)


class TestFormatSyncReport:
    def test_success(self):
        text = format_sync_report(_report())
        assert "Sync report for workspace 'ws-1'" in text
        assert "FAILED" not in text
        assert "Pushed 3 change(s), pulled 2 change(s)" in text
        assert "applied: 1, deleted: 1" in text
        assert "Cursor: 2026-03-01T12:00:01.000Z" in text

    def test_nothing_pulled_omits_breakdown(self):
        text = format_sync_report(_report(pulled=0, applied=0, deleted=0))
        assert "applied:" not in text

    def test_failure(self):
        text = format_sync_report(_report(error="connection refused"))
        assert "(FAILED)" in text
        assert "Error: connection refused" in text
        assert "Pushed" not in text

    def test_refused_push_still_lists_pull(self):
        text = format_sync_report(
            _report(pushed=0, error="Push was rejected by the server. Changes kept for retry.")
        )
        assert "(FAILED)" in text
        assert "Pulled 2 change(s)  applied: 1, deleted: 1" in text
        assert "Changes kept for retry" in text

    def test_failure_without_pull_has_no_counters(self):
        text = format_sync_report(_report(pulled=0, applied=0, deleted=0, error="down"))
        assert "Pulled" not in text


class TestFormatSyncStatus:
    def test_idle(self):
        text = format_sync_status(
            SyncStatus(phase=SyncPhase.IDLE, is_syncing=False, pending_changes=2, user_id="u1")
        )
        assert "State: idle" in text
        assert "Pending changes: 2" in text
        assert "Last synced: never" in text
        assert "Workspace: not linked" in text
        assert "Last error" not in text

    def test_error_shown(self):
        text = format_sync_status(
            SyncStatus(phase=SyncPhase.ERROR, is_syncing=False, last_error="Session expired.")
        )
        assert "User: not signed in" in text
        assert "Last error: Session expired." in text
        assert "Unsaved" not in text

    def test_save_error_shown(self):
        text = format_sync_status(
            SyncStatus(phase=SyncPhase.IDLE, is_syncing=False, save_error="Cannot save state: disk full")
        )
        assert "Unsaved: Cannot save state: disk full" in text


class TestJson:
    def test_report_includes_success(self):
        data = report_to_json(_report())
        assert data["success"] is True
        assert data["pushed"] == 3
        assert report_to_json(_report(error="x"))["success"] is False

    def test_status_phase_is_string(self):
        data = status_to_json(SyncStatus(phase=SyncPhase.SYNCING, is_syncing=True))
        assert data["phase"] == "syncing"
        assert data["is_syncing"] is True
