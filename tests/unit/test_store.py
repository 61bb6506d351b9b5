"""Tests for the SQLite transaction store."""

import threading

import pytest

from netguard.core.state import TransactionEvent, TransactionState
from netguard.exceptions import StoreError
from netguard.rollback.store import TransactionStore


def pending_state(**overrides) -> TransactionState:
    values = {
        "pending": True,
        "deadline": 2000.0,
        "transaction_id": "tx-1",
        "snapshot_id": "snap-1",
        "started_at": 1700.0,
    }
    values.update(overrides)
    return TransactionState(**values)


class TestMarker:
    """Tests for the single-row transaction marker."""

    def test_empty_store_is_idle(self, store):
        state = store.read_marker()
        assert state.pending is False
        assert state.deadline is None

    def test_write_and_read(self, store):
        with store.session() as session:
            session.write_marker(pending_state())

        state = store.read_marker()
        assert state.pending is True
        assert state.deadline == 2000.0
        assert state.transaction_id == "tx-1"
        assert state.snapshot_id == "snap-1"
        assert state.watchdog_armed is True
        assert state.restore_error is None

    def test_write_replaces(self, store):
        with store.session() as session:
            session.write_marker(pending_state())
            session.write_marker(pending_state(deadline=2500.0, watchdog_armed=False))

        state = store.read_marker()
        assert state.deadline == 2500.0
        assert state.watchdog_armed is False

    def test_idle_state_cannot_be_written(self, store):
        with pytest.raises(ValueError):
            with store.session() as session:
                session.write_marker(TransactionState.idle())

    def test_clear(self, store):
        with store.session() as session:
            session.write_marker(pending_state())
        with store.session() as session:
            session.clear_marker()
        assert store.read_marker().pending is False

    def test_restore_error(self, store):
        with store.session() as session:
            session.write_marker(pending_state())
            session.record_restore_error("iptables-restore failed")
        assert store.read_marker().restore_error == "iptables-restore failed"

    def test_survives_new_store_instance(self, tmp_path):
        state_dir = str(tmp_path / "state")
        with TransactionStore(state_dir).session() as session:
            session.write_marker(pending_state())

        reopened = TransactionStore(state_dir)
        assert reopened.read_marker().transaction_id == "tx-1"


class TestSession:
    """Tests for the exclusive session."""

    def test_exception_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.session() as session:
                session.write_marker(pending_state())
                session.put_snapshot("snap-1", "tx-1", b"*filter\nCOMMIT\n")
                raise RuntimeError("boom")

        assert store.read_marker().pending is False
        assert store.snapshot_ids() == []

    def test_sessions_are_serialized(self, tmp_path):
        state_dir = str(tmp_path / "state")
        holder = TransactionStore(state_dir, lock_timeout=5.0)
        contender = TransactionStore(state_dir, lock_timeout=0.1)

        entered = threading.Event()
        release = threading.Event()

        def hold():
            with holder.session():
                entered.set()
                release.wait(5)

        thread = threading.Thread(target=hold)
        thread.start()
        try:
            assert entered.wait(5)
            with pytest.raises(StoreError):
                with contender.session():
                    pass
        finally:
            release.set()
            thread.join()

        with contender.session() as session:
            assert session.read_marker().pending is False


class TestSnapshots:
    def test_put_get_delete(self, store):
        with store.session() as session:
            session.put_snapshot("snap-1", "tx-1", b"dump")
            assert session.get_snapshot("snap-1") == b"dump"
            assert session.get_snapshot("missing") is None

        assert store.snapshot_ids() == ["snap-1"]

        with store.session() as session:
            session.delete_snapshot("snap-1")
        assert store.snapshot_ids() == []


class TestEvents:
    def test_newest_first(self, store):
        store.append_event(TransactionEvent(kind="begin", transaction_id="tx-1"))
        store.append_event(TransactionEvent(kind="confirm", transaction_id="tx-1"))

        events = store.list_events()
        assert [e.kind for e in events] == ["confirm", "begin"]

    def test_prune_keeps_newest(self, store):
        for i in range(5):
            store.append_event(TransactionEvent(kind=f"event-{i}"))

        assert store.prune_events(keep=2) == 3
        assert [e.kind for e in store.list_events()] == ["event-4", "event-3"]
