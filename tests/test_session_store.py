"""Tests for the JSON-backed session store."""

import threading

import pytest

from src.memory.session_store import SessionNotFoundError, SessionStore
from src.memory.training_session import SessionSource, SessionStatus


class TestPersistence:
    def test_insert_survives_reload(self, store, make_session):
        session = store.insert(make_session(days=2))

        reloaded = SessionStore(store.path)
        assert reloaded.get(session.id) == session

    def test_missing_file_is_empty_store(self, tmp_path):
        assert len(SessionStore(tmp_path / "nope.json")) == 0

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "sessions.json"
        path.write_text("{not json")

        with pytest.raises(ValueError, match="Corrupt session store"):
            SessionStore(path)

    def test_no_temp_files_left_behind(self, store, make_session):
        store.insert_many([make_session(days=i) for i in range(3)])

        assert [p.name for p in store.path.parent.iterdir()] == ["sessions.json"]


class TestQueries:
    def test_all_sorted_by_date(self, store, make_session):
        later = make_session(days=5)
        earlier = make_session(days=1)
        store.insert_many([later, earlier])

        assert [s.id for s in store.all()] == [earlier.id, later.id]

    def test_query_by_predicate(self, store, make_session):
        store.insert_many([
            make_session(days=1),
            make_session(days=2, source=SessionSource.MANUAL),
        ])

        manual = store.query(lambda s: s.source is SessionSource.MANUAL)
        assert len(manual) == 1

    def test_get_unknown_raises(self, store):
        with pytest.raises(SessionNotFoundError):
            store.get("missing")


class TestReplace:
    def test_delete_and_insert_together(self, store, make_session):
        old = [make_session(days=i) for i in range(3)]
        store.insert_many(old)
        new = [make_session(days=i, batch_id="B2") for i in range(2)]

        deleted, inserted = store.replace([s.id for s in old], new)

        assert (deleted, inserted) == (3, 2)
        assert {s.batch_id for s in store.all()} == {"B2"}

    def test_unknown_delete_ids_ignored(self, store, make_session):
        store.insert(make_session())

        assert store.delete(["missing"]) == 0
        assert len(store) == 1

    def test_duplicate_insert_rejected_without_changes(self, store, make_session):
        existing = store.insert(make_session(days=1))
        other = make_session(days=2)
        store.insert(other)

        with pytest.raises(ValueError, match="already exists"):
            store.replace([other.id], [existing])
        assert len(store) == 2

    def test_failed_write_rolls_back(self, store, make_session, monkeypatch):
        keep = store.insert(make_session(days=1))

        def failing_persist():
            raise OSError("disk full")

        monkeypatch.setattr(store, "_persist", failing_persist)
        with pytest.raises(OSError):
            store.replace([keep.id], [make_session(days=2)])

        assert [s.id for s in store.all()] == [keep.id]

    def test_concurrent_writers_lose_nothing(self, store, make_session):
        batches = [[make_session(days=i) for i in range(10)] for _ in range(8)]
        threads = [threading.Thread(target=store.insert_many, args=(b,)) for b in batches]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 80
        assert len(SessionStore(store.path)) == 80


class TestUserEdits:
    def test_set_status(self, store, make_session):
        session = store.insert(make_session())

        updated = store.set_status(session.id, SessionStatus.POSTPONED)

        assert updated.status is SessionStatus.POSTPONED
        assert SessionStore(store.path).get(session.id).status is SessionStatus.POSTPONED

    def test_record_completion(self, store, make_session):
        session = store.insert(make_session(source=SessionSource.MANUAL))

        done = store.record_completion(
            session.id, distance_km=10.2, avg_heart_rate=148, perceived_effort=6, comment="Felt good",
        )

        assert done.status is SessionStatus.COMPLETED
        assert done.distance_km == 10.2
        assert done.perceived_effort == 6
        assert done.comment == "Felt good"

    def test_record_completion_rejects_bad_effort(self, store, make_session):
        session = store.insert(make_session())

        with pytest.raises(ValueError):
            store.record_completion(session.id, perceived_effort=0)
        assert store.get(session.id).status is SessionStatus.PLANNED

    def test_update_unknown_raises(self, store, make_session):
        with pytest.raises(SessionNotFoundError):
            store.update(make_session())
