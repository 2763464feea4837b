"""Sync report formatting functions.

- ``format_sync_report`` -- post-sync summary text.
- ``format_sync_status`` -- one-screen engine status.
- ``report_to_json`` / ``status_to_json`` -- structured dicts for MCP output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import SyncReport, SyncStatus

# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format one sync pass as human-readable text.

    Failed passes show the error instead of the push counters. A pass
    whose push was refused still reports what its pull applied.
    """
    lines: list[str] = []

    header = f"Sync report for workspace '{report.workspace_id}'"
    if not report.success:
        header += " (FAILED)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if not report.success:
        lines.append(f"Error: {report.error}")
        if report.pulled:
            lines.append(
                f"Pulled {report.pulled} change(s)  applied: {report.applied}, "
                f"deleted: {report.deleted}, kept newer local: {report.skipped}"
            )
        lines.append("Local changes are kept and will be pushed on the next sync.")
        return "\n".join(lines)

    lines.append(
        f"Pushed {report.pushed} change(s), pulled {report.pulled} change(s)"
    )
    if report.pulled:
        lines.append(
            f"  applied: {report.applied}, deleted: {report.deleted}, "
            f"kept newer local: {report.skipped}"
        )
    lines.append(f"Cursor: {report.cursor or 'none'}")

    return "\n".join(lines)


def format_sync_status(status: SyncStatus) -> str:
    lines = [
        f"State: {status.phase.value}",
        f"User: {status.user_id or 'not signed in'}",
        f"Workspace: {status.workspace_id or 'not linked'}",
        f"Pending changes: {status.pending_changes}",
        f"Last synced: {status.last_synced_at or 'never'}",
    ]
    if status.last_error:
        lines.append(f"Last error: {status.last_error}")
    if status.save_error:
        lines.append(f"Unsaved: {status.save_error}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict[str, Any]:
    data = report.model_dump()
    data["success"] = report.success
    return data


def status_to_json(status: SyncStatus) -> dict[str, Any]:
    return status.model_dump(mode="json")
