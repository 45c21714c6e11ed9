from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from guardwise.store import (
    AUDIT_LOG_STORAGE_KEY,
    AVAILABILITY_STORAGE_KEY,
    CHECKPOINT_STORAGE_KEY,
    GUARD_STORAGE_KEY,
    PATROL_HISTORY_STORAGE_KEY,
    ROSTER_STORAGE_KEY,
    SCHEDULE_STORAGE_KEY,
    ZONE_STORAGE_KEY,
)

DOCUMENT_TABLE = "collection_documents"
DOCUMENT_COLUMNS = frozenset({"key", "payload", "updated_at"})
COLLECTION_KEYS = (
    GUARD_STORAGE_KEY,
    ZONE_STORAGE_KEY,
    CHECKPOINT_STORAGE_KEY,
    SCHEDULE_STORAGE_KEY,
    AVAILABILITY_STORAGE_KEY,
    ROSTER_STORAGE_KEY,
    PATROL_HISTORY_STORAGE_KEY,
    AUDIT_LOG_STORAGE_KEY,
)


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stored_collections: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "stored_collections": list(self.stored_collections),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def _alembic_warnings(engine: Engine, table_names: set[str]) -> list[str]:
    if "alembic_version" not in table_names:
        return ["ALEMBIC_VERSION_TABLE_MISSING"]
    with engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    if not (str(version).strip() if version is not None else ""):
        return ["ALEMBIC_VERSION_EMPTY"]
    return []


def _stored_keys(engine: Engine) -> list[str]:
    with engine.connect() as connection:
        rows = connection.execute(text(f"SELECT key FROM {DOCUMENT_TABLE}")).scalars().all()
    return sorted(str(item) for item in rows)


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Check the document table before serving traffic.

    Collections without a stored document are reported as warnings only:
    they are served from the seeded defaults until the first save.
    """
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)
    table_names = set(inspector.get_table_names())
    warnings = _alembic_warnings(engine, table_names)

    if DOCUMENT_TABLE not in table_names:
        return SchemaGuardResult(
            ok=False,
            checked_at_utc=checked_at_utc,
            issues=[f"MISSING_TABLE:{DOCUMENT_TABLE}"],
            warnings=warnings,
        )

    column_names = {str(item.get("name")) for item in inspector.get_columns(DOCUMENT_TABLE)}
    missing_columns = sorted(DOCUMENT_COLUMNS - column_names)
    if missing_columns:
        return SchemaGuardResult(
            ok=False,
            checked_at_utc=checked_at_utc,
            issues=[f"MISSING_COLUMNS:{DOCUMENT_TABLE}:{','.join(missing_columns)}"],
            warnings=warnings,
        )

    stored = _stored_keys(engine)
    warnings.extend(f"COLLECTION_NOT_STORED:{key}" for key in COLLECTION_KEYS if key not in stored)
    return SchemaGuardResult(
        ok=True,
        checked_at_utc=checked_at_utc,
        warnings=warnings,
        stored_collections=stored,
    )
