from __future__ import annotations

import unittest
from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from guardwise.db import Base
from guardwise.models import CollectionDocument
from guardwise.schemas import AvailabilityRecord, Guard, ManualAvailability, RosterAvailability
from guardwise.seed import demo_guards, demo_seeds
from guardwise.store import (
    AVAILABILITY_STORAGE_KEY,
    CollectionStore,
    GUARD_STORAGE_KEY,
    MemoryCollectionStore,
    build_memory_repository,
    build_sql_repository,
)


class MemoryCollectionStoreTests(unittest.TestCase):
    def test_missing_document_falls_back_to_defaults(self) -> None:
        store = MemoryCollectionStore(GUARD_STORAGE_KEY, Guard, demo_guards)

        guards = store.load()

        self.assertEqual(len(guards), 6)
        self.assertEqual(guards[0].email, "rahim@madina.com")

    def test_corrupt_document_falls_back_to_defaults(self) -> None:
        documents = {GUARD_STORAGE_KEY: "{not json"}
        store = MemoryCollectionStore(GUARD_STORAGE_KEY, Guard, demo_guards, documents=documents)

        with self.assertLogs("guardwise.store", level="WARNING") as logs:
            guards = store.load()

        self.assertEqual(len(guards), 6)
        self.assertIn("collection_parse_failed", logs.output[0])

    def test_invalid_rows_fall_back_to_defaults(self) -> None:
        documents = {GUARD_STORAGE_KEY: '[{"id": "g1"}]'}
        store = MemoryCollectionStore(GUARD_STORAGE_KEY, Guard, None, documents=documents)

        with self.assertLogs("guardwise.store", level="WARNING"):
            self.assertEqual(store.load(), [])

    def test_save_notifies_subscribers_until_unsubscribed(self) -> None:
        store = MemoryCollectionStore(GUARD_STORAGE_KEY, Guard)
        seen: list[str] = []
        unsubscribe = store.subscribe(seen.append)

        store.save([Guard(id="g1", name="Rahim Uddin", employee_id="GRD-001")])
        unsubscribe()
        store.save([])

        self.assertEqual(seen, [GUARD_STORAGE_KEY])

    def test_save_then_load_keeps_availability_variants(self) -> None:
        store = MemoryCollectionStore(AVAILABILITY_STORAGE_KEY, AvailabilityRecord)
        manual = ManualAvailability(
            id="ga1",
            guard_id="g1",
            guard_name="Rahim Uddin",
            type="leave",
            start_date=date(2026, 2, 4),
            end_date=date(2026, 2, 6),
        )
        roster = RosterAvailability(
            id="roster-r1-g1",
            roster_id="r1",
            guard_id="g1",
            guard_name="Rahim Uddin",
            start_date=date(2026, 1, 1),
            end_date=date(2026, 12, 31),
            weekdays=[5],
        )

        store.save([manual, roster])
        loaded = store.load()

        self.assertIsInstance(loaded[0], ManualAvailability)
        self.assertIsInstance(loaded[1], RosterAvailability)

    def test_base_store_needs_a_raw_document_backend(self) -> None:
        with self.assertRaises(TypeError):
            CollectionStore(GUARD_STORAGE_KEY, Guard)  # type: ignore[abstract]


class RepositoryCacheTests(unittest.TestCase):
    def test_cache_is_dropped_when_any_collection_changes(self) -> None:
        repo = build_memory_repository(demo_seeds())
        calls: list[int] = []

        def _build() -> int:
            calls.append(1)
            return len(calls)

        self.assertEqual(repo.cached("probe", _build), 1)
        self.assertEqual(repo.cached("probe", _build), 1)

        repo.zones.save(repo.zones.load())

        self.assertEqual(repo.cached("probe", _build), 2)


class SqlCollectionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_writes_are_visible_to_a_new_session(self) -> None:
        with self.Session() as db:
            repo = build_sql_repository(db, demo_seeds())
            guards = repo.guards.load()
            repo.guards.save(guards[:2])

        with self.Session() as db:
            repo = build_sql_repository(db, demo_seeds())
            self.assertEqual([guard.id for guard in repo.guards.load()], ["g1", "g2"])
            self.assertIsNotNone(db.get(CollectionDocument, GUARD_STORAGE_KEY))

    def test_unsaved_collections_read_seed_defaults(self) -> None:
        with self.Session() as db:
            repo = build_sql_repository(db, demo_seeds())
            self.assertEqual(len(repo.checkpoints.load()), 12)
            self.assertIsNone(db.get(CollectionDocument, GUARD_STORAGE_KEY))


if __name__ == "__main__":
    unittest.main()
