"""Tests for jobsync.sync.outbox -- per-user change log."""

from jobsync.sync.models import ChangeEvent, Customer, EntityKind, Operation
from jobsync.sync.outbox import Outbox


def _event(record_id: str) -> ChangeEvent:
    return ChangeEvent.for_record(
        EntityKind.CUSTOMERS, Operation.CREATE, Customer(id=record_id)
    )


class TestOutbox:
    def test_append_and_pending(self):
        queues: dict = {}
        outbox = Outbox(queues)
        outbox.append("u1", _event("c1"))
        outbox.append("u1", _event("c2"))
        assert [e.record_id for e in outbox.pending("u1")] == ["c1", "c2"]
        assert outbox.count("u1") == 2
        # Writes go through to the wrapped map
        assert len(queues["u1"]) == 2

    def test_pending_is_a_copy(self):
        outbox = Outbox({})
        outbox.append("u1", _event("c1"))
        snapshot = outbox.pending("u1")
        outbox.append("u1", _event("c2"))
        assert len(snapshot) == 1

    def test_users_are_separate(self):
        outbox = Outbox({})
        outbox.append("u1", _event("c1"))
        assert outbox.pending("u2") == []
        assert outbox.count("u2") == 0
        assert outbox.count(None) == 0

    def test_ensure_creates_empty_queue(self):
        queues: dict = {}
        Outbox(queues).ensure("u1")
        assert queues == {"u1": []}

    def test_acknowledge_removes_only_pushed(self):
        outbox = Outbox({})
        first, second = _event("c1"), _event("c2")
        outbox.append("u1", first)
        pushed = outbox.pending("u1")
        # Appended while the push was in flight
        outbox.append("u1", second)

        removed = outbox.acknowledge("u1", pushed)

        assert removed == 1
        assert [e.id for e in outbox.pending("u1")] == [second.id]

    def test_acknowledge_empty_push(self):
        outbox = Outbox({})
        outbox.append("u1", _event("c1"))
        assert outbox.acknowledge("u1", []) == 0
        assert outbox.count("u1") == 1

    def test_acknowledge_unknown_user(self):
        queues: dict = {}
        assert Outbox(queues).acknowledge("u1", [_event("c1")]) == 0
        assert queues["u1"] == []
