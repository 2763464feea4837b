"""Shared pytest fixtures for jobsync tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from jobsync.config import Config
from jobsync.store import JobStore
from jobsync.sync.models import ChangeEvent, PullResult


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live sync remote",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live sync remote"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeRemote:
    """In-memory stand-in for the sync remote.

    Records every push and pull. ``on_push`` / ``on_pull`` hooks run
    inside the call (on the worker thread) so tests can interleave local
    edits with an in-flight request.
    """

    def __init__(
        self,
        changes: list[ChangeEvent] | None = None,
        server_time: str = "2026-03-01T12:00:00.000Z",
    ) -> None:
        self.changes: list[ChangeEvent] = list(changes or [])
        self.server_time = server_time
        self.push_result = True
        self.push_error: Exception | None = None
        self.pull_error: Exception | None = None
        self.on_push: Callable[[], None] | None = None
        self.on_pull: Callable[[], None] | None = None
        self.pushed: list[list[ChangeEvent]] = []
        self.pull_calls: list[tuple[str, str | None]] = []
        self.workspaces: list[tuple[str, str]] = []

    def push(self, workspace_id: str, device_id: str, changes: list[ChangeEvent]) -> bool:
        if self.on_push is not None:
            self.on_push()
        if self.push_error is not None:
            raise self.push_error
        self.pushed.append(list(changes))
        return self.push_result

    def pull(self, workspace_id: str, since: str | None) -> PullResult:
        self.pull_calls.append((workspace_id, since))
        if self.on_pull is not None:
            self.on_pull()
        if self.pull_error is not None:
            raise self.pull_error
        return PullResult(changes=self.changes, server_time=self.server_time)

    def create_workspace(self, name: str, owner_email: str) -> dict[str, Any]:
        self.workspaces.append((name, owner_email))
        return {"workspaceId": "ws-new", "inviteCode": "INV-ABC123"}

    def accept_invite(self, email: str, invite_code: str, device_id: str) -> dict[str, Any]:
        if invite_code == "INV-BAD000":
            return {}
        return {"workspaceId": "ws-joined", "role": "member"}

    def create_invites(self, workspace_id: str, emails: list[str]) -> list[dict[str, Any]]:
        return [{"email": email, "inviteCode": "INV-XYZ789"} for email in emails]

    def list_members(self, workspace_id: str) -> list[dict[str, Any]]:
        return [{"email": "owner@example.com", "role": "owner"}]


USER = {
    "id": "user-1",
    "email": "owner@example.com",
    "name": "Owner",
    "role": "owner",
    "workspaceId": "ws-1",
    "workspaceName": "Acme Plumbing",
}


@pytest.fixture
def mock_config():
    """Create a Config pointing at a (never contacted) remote."""
    return Config(
        api_url="https://sync.example.com/api",
        api_key="secret-token",
        insecure=False,
    )


@pytest.fixture
def user():
    return dict(USER)


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def store(fake_remote):
    """Signed-in store with an active workspace, no background sync."""
    store = JobStore(client=fake_remote, auto_sync=False)
    store.set_authenticated_user(USER)
    return store


@pytest.fixture
def anonymous_store(fake_remote):
    """Store nobody is signed in to."""
    return JobStore(client=fake_remote, auto_sync=False)
