from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from guardwise.models import CollectionDocument
from guardwise.schemas import (
    AuditLog,
    Checkpoint,
    Guard,
    AvailabilityRecord,
    GuardRoster,
    PatrolHistory,
    Schedule,
    Zone,
)

logger = logging.getLogger("guardwise.store")

T = TypeVar("T", bound=BaseModel)

GUARD_STORAGE_KEY = "guardwise_guards"
ZONE_STORAGE_KEY = "guardwise_zones"
CHECKPOINT_STORAGE_KEY = "guardwise_checkpoints"
SCHEDULE_STORAGE_KEY = "guardwise_schedules"
AVAILABILITY_STORAGE_KEY = "guardwise_guard_availability"
ROSTER_STORAGE_KEY = "guardwise_rosters"
PATROL_HISTORY_STORAGE_KEY = "guardwise_patrol_history"
AUDIT_LOG_STORAGE_KEY = "guardwise_audit_logs"

ChangeListener = Callable[[str], None]
DefaultsFactory = Callable[[], list[Any]]


class CollectionStore(ABC, Generic[T]):
    """Whole-collection load/save over a raw JSON document.

    Subclasses only move raw strings around; parsing, fallback to seeded
    defaults and change notification live here.
    """

    def __init__(self, key: str, model: Any, defaults: DefaultsFactory | None = None) -> None:
        self.key = key
        self.model = model
        self._adapter: TypeAdapter[list[T]] = TypeAdapter(list[model])  # type: ignore[valid-type]
        self._defaults = defaults or list
        self._listeners: list[ChangeListener] = []

    @abstractmethod
    def _read_raw(self) -> str | None: ...

    @abstractmethod
    def _write_raw(self, raw: str) -> None: ...

    def defaults(self) -> list[T]:
        return self._adapter.validate_python(self._defaults())

    def load(self) -> list[T]:
        raw = self._read_raw()
        if raw is None or not raw.strip():
            return self.defaults()
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "collection_parse_failed",
                extra={"collection": self.key, "error_count": exc.error_count()},
            )
            return self.defaults()

    def save(self, items: list[T]) -> None:
        raw = self._adapter.dump_json(list(items)).decode("utf-8")
        self._write_raw(raw)
        self._notify()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.key)


class MemoryCollectionStore(CollectionStore[T]):
    def __init__(
        self,
        key: str,
        model: Any,
        defaults: DefaultsFactory | None = None,
        documents: dict[str, str] | None = None,
    ) -> None:
        super().__init__(key, model, defaults)
        self.documents = documents if documents is not None else {}

    def _read_raw(self) -> str | None:
        return self.documents.get(self.key)

    def _write_raw(self, raw: str) -> None:
        self.documents[self.key] = raw


class SqlCollectionStore(CollectionStore[T]):
    def __init__(
        self,
        db: Session,
        key: str,
        model: Any,
        defaults: DefaultsFactory | None = None,
    ) -> None:
        super().__init__(key, model, defaults)
        self.db = db

    def _read_raw(self) -> str | None:
        document = self.db.get(CollectionDocument, self.key)
        if document is None:
            return None
        return document.payload

    def _write_raw(self, raw: str) -> None:
        document = self.db.get(CollectionDocument, self.key)
        if document is None:
            document = CollectionDocument(key=self.key, payload=raw)
            self.db.add(document)
        else:
            document.payload = raw
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("collection_write_failed", extra={"collection": self.key})
            raise


StoreFactory = Callable[[str, Any, DefaultsFactory | None], CollectionStore[Any]]


class Repository:
    """The set of entity collections the services read and write."""

    def __init__(self, factory: StoreFactory, seeds: dict[str, DefaultsFactory] | None = None) -> None:
        seeds = seeds or {}

        def _make(key: str, model: Any) -> CollectionStore[Any]:
            return factory(key, model, seeds.get(key))

        self.guards: CollectionStore[Guard] = _make(GUARD_STORAGE_KEY, Guard)
        self.zones: CollectionStore[Zone] = _make(ZONE_STORAGE_KEY, Zone)
        self.checkpoints: CollectionStore[Checkpoint] = _make(CHECKPOINT_STORAGE_KEY, Checkpoint)
        self.schedules: CollectionStore[Schedule] = _make(SCHEDULE_STORAGE_KEY, Schedule)
        self.availability: CollectionStore[Any] = _make(AVAILABILITY_STORAGE_KEY, AvailabilityRecord)
        self.rosters: CollectionStore[GuardRoster] = _make(ROSTER_STORAGE_KEY, GuardRoster)
        self.patrol_history: CollectionStore[PatrolHistory] = _make(PATROL_HISTORY_STORAGE_KEY, PatrolHistory)
        self.audit_logs: CollectionStore[AuditLog] = _make(AUDIT_LOG_STORAGE_KEY, AuditLog)

        self._cache: dict[str, Any] = {}
        for store in self.stores():
            store.subscribe(self._invalidate)

    def stores(self) -> list[CollectionStore[Any]]:
        return [
            self.guards,
            self.zones,
            self.checkpoints,
            self.schedules,
            self.availability,
            self.rosters,
            self.patrol_history,
            self.audit_logs,
        ]

    def cached(self, name: str, builder: Callable[[], Any]) -> Any:
        if name not in self._cache:
            self._cache[name] = builder()
        return self._cache[name]

    def _invalidate(self, key: str) -> None:
        if self._cache:
            logger.debug("repository_cache_invalidated", extra={"collection": key})
        self._cache.clear()


def build_memory_repository(
    seeds: dict[str, DefaultsFactory] | None = None,
    documents: dict[str, str] | None = None,
) -> Repository:
    shared_documents = documents if documents is not None else {}

    def _factory(key: str, model: Any, defaults: DefaultsFactory | None) -> CollectionStore[Any]:
        return MemoryCollectionStore(key, model, defaults, documents=shared_documents)

    return Repository(_factory, seeds)


def build_sql_repository(db: Session, seeds: dict[str, DefaultsFactory] | None = None) -> Repository:
    def _factory(key: str, model: Any, defaults: DefaultsFactory | None) -> CollectionStore[Any]:
        return SqlCollectionStore(db, key, model, defaults)

    return Repository(_factory, seeds)
