"""Tests for jobsync.sync.workspace -- active slice resolution and legacy migration."""

from unittest.mock import MagicMock

from jobsync.sync.models import AuthUser, Customer, StoreState, WorkspaceSlice
from jobsync.sync.workspace import WorkspaceResolver


def _state(**fields) -> StoreState:
    state = StoreState(**fields)
    return state


def _legacy_slice() -> WorkspaceSlice:
    return WorkspaceSlice(customers=[Customer(id="c-legacy", name="Old")])


class TestResolve:
    def test_no_workspace(self):
        assert WorkspaceResolver().resolve(_state()) is None

    def test_existing_workspace_slice_wins(self):
        current = WorkspaceSlice(customers=[Customer(id="c1")])
        state = _state(
            workspace_id="ws-1",
            current_user_id="u1",
            data_by_workspace={"ws-1": current},
            data_by_user={"u1": _legacy_slice()},
        )
        assert WorkspaceResolver().resolve(state) is current

    def test_legacy_slice_adopted_once(self):
        on_migrate = MagicMock()
        resolver = WorkspaceResolver(on_migrate=on_migrate)
        legacy = _legacy_slice()
        state = _state(
            workspace_id="ws-1",
            authenticated_user=AuthUser(id="u1", email="a@b.c"),
            data_by_user={"u1": legacy},
        )

        first = resolver.resolve(state)
        second = resolver.resolve(state)

        assert first is legacy
        assert second is legacy
        assert state.data_by_workspace["ws-1"] is legacy
        on_migrate.assert_called_once()

    def test_other_users_legacy_data_not_adopted(self):
        state = _state(
            workspace_id="ws-1",
            current_user_id="u2",
            data_by_user={"u1": _legacy_slice()},
        )
        resolved = WorkspaceResolver().resolve(state)
        assert resolved.customers == []

    def test_empty_slice_not_stored(self):
        state = _state(workspace_id="ws-1", current_user_id="u1")
        resolved = WorkspaceResolver().resolve(state)
        assert resolved == WorkspaceSlice()
        assert state.data_by_workspace == {}


class TestWrite:
    def test_writes_active_workspace(self):
        state = _state(workspace_id="ws-1")
        slice_ = WorkspaceSlice(customers=[Customer(id="c1")])
        assert WorkspaceResolver().write(state, slice_) is True
        assert state.data_by_workspace["ws-1"] is slice_

    def test_no_workspace_refuses(self, caplog):
        state = _state()
        assert WorkspaceResolver().write(state, WorkspaceSlice()) is False
        assert state.data_by_workspace == {}
        assert "no active workspace" in caplog.text


class TestDeriveView:
    def test_none_without_workspace(self):
        assert WorkspaceResolver().derive_view(_state()) is None

    def test_active_slice(self):
        current = WorkspaceSlice(customers=[Customer(id="c1")])
        state = _state(workspace_id="ws-1", data_by_workspace={"ws-1": current})
        assert WorkspaceResolver().derive_view(state) is current
