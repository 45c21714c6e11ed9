from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from guardwise.db import Base


class GuardStatus(str, enum.Enum):
    ACTIVE = "active"
    ON_DUTY = "on-duty"
    INACTIVE = "inactive"


class RecordStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ScanType(str, enum.Enum):
    NFC = "nfc"
    QR = "qr"
    DYNAMIC_QR = "dynamic-qr"


class ScanMethod(str, enum.Enum):
    NFC = "nfc"
    QR = "qr"


class AvailabilityMode(str, enum.Enum):
    DATE_RANGE = "date-range"
    WEEKLY_OFF = "weekly-off"


class AvailabilityType(str, enum.Enum):
    LEAVE = "leave"
    OFF_ROSTER = "off-roster"
    TRAINING = "training"
    HOLIDAY = "holiday"


class PatrolStatus(str, enum.Enum):
    COMPLETED = "completed"
    LATE = "late"
    MISSED = "missed"
    SKIPPED = "skipped"


class AuditModule(str, enum.Enum):
    SCHEDULES = "schedules"
    CHECKPOINTS = "checkpoints"
    USERS = "users"
    ALERTS = "alerts"
    AVAILABILITY = "availability"


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TOGGLE = "toggle"
    REPLACE = "replace"


class CollectionDocument(Base):
    """One JSON-encoded entity collection, overwritten as a whole on every save."""

    __tablename__ = "collection_documents"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
