from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator, model_validator

from guardwise.models import (
    AuditAction,
    AuditModule,
    AvailabilityMode,
    AvailabilityType,
    GuardStatus,
    PatrolStatus,
    RecordStatus,
    ScanMethod,
    ScanType,
)

HHMM_PATTERN = r"^\d{2}:\d{2}$"

Weekday = Annotated[int, Field(ge=0, le=6)]


def _check_hhmm(value: str) -> str:
    hour_str, minute_str = value.split(":")
    if int(hour_str) > 23 or int(minute_str) > 59:
        raise ValueError("Invalid time. Use HH:MM between 00:00 and 23:59.")
    return value


def _check_scan_types(scan_types: list[ScanType]) -> list[ScanType]:
    if ScanType.QR in scan_types and ScanType.DYNAMIC_QR in scan_types:
        raise ValueError("A checkpoint cannot use static QR and dynamic QR at the same time.")
    deduped: list[ScanType] = []
    for item in scan_types:
        if item not in deduped:
            deduped.append(item)
    return deduped


TimeOfDay = Annotated[str, Field(pattern=HHMM_PATTERN), AfterValidator(_check_hhmm)]
ScanTypes = Annotated[list[ScanType], Field(min_length=1), AfterValidator(_check_scan_types)]


class TimeSlot(BaseModel):
    id: str
    time: TimeOfDay
    label: str = ""


class TimeSlotInput(BaseModel):
    time: TimeOfDay
    label: str | None = None


class Guard(BaseModel):
    id: str
    name: str
    employee_id: str
    phone: str = ""
    email: str = ""
    status: GuardStatus = GuardStatus.ACTIVE
    assigned_zone: str | None = None
    created_at: date | None = None


class Zone(BaseModel):
    id: str
    name: str
    description: str = ""
    location: str = ""
    latitude: float | None = None
    longitude: float | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class NfcConfig(BaseModel):
    payload: str
    tag_serial: str | None = None
    configured: bool = False
    last_configured_at: date | None = None


class QrConfig(BaseModel):
    payload: str
    size: int = Field(default=220, ge=64)
    dynamic: bool | None = None
    rotate_every_minutes: int | None = Field(default=None, ge=1)
    configured: bool = False
    last_generated_at: date | None = None


class Checkpoint(BaseModel):
    id: str
    name: str
    zone_id: str
    zone_name: str
    scan_types: ScanTypes
    tag_id: str
    location: str = ""
    latitude: float | None = None
    longitude: float | None = None
    nfc_config: NfcConfig | None = None
    qr_config: QrConfig | None = None
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: date | None = None


class CheckpointUpsertRequest(BaseModel):
    id: str | None = None
    name: str = Field(min_length=1, max_length=255)
    zone_id: str = Field(min_length=1)
    scan_types: ScanTypes
    tag_id: str = Field(min_length=1)
    location: str = ""
    latitude: float | None = None
    longitude: float | None = None
    nfc_config: NfcConfig | None = None
    qr_config: QrConfig | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class Schedule(BaseModel):
    id: str
    guard_id: str
    guard_name: str
    checkpoint_id: str
    checkpoint_name: str
    zone_name: str = ""
    start_date: date
    end_date: date
    time_slots: list[TimeSlot] = Field(default_factory=list)
    grace_time_minutes: int = Field(default=10, ge=0)
    status: RecordStatus = RecordStatus.ACTIVE


class _AvailabilityBase(BaseModel):
    id: str
    guard_id: str
    guard_name: str
    mode: AvailabilityMode = AvailabilityMode.DATE_RANGE
    type: AvailabilityType
    start_date: date
    end_date: date
    weekdays: list[Weekday] = Field(default_factory=list)
    note: str | None = None


class ManualAvailability(_AvailabilityBase):
    source: Literal["manual"] = "manual"


class RosterAvailability(_AvailabilityBase):
    source: Literal["roster"] = "roster"
    roster_id: str
    mode: AvailabilityMode = AvailabilityMode.WEEKLY_OFF
    type: AvailabilityType = AvailabilityType.OFF_ROSTER


def _availability_source(value: Any) -> str:
    if isinstance(value, dict):
        return value.get("source") or "manual"
    return getattr(value, "source", "manual")


AvailabilityRecord = Annotated[
    Union[
        Annotated[ManualAvailability, Tag("manual")],
        Annotated[RosterAvailability, Tag("roster")],
    ],
    Discriminator(_availability_source),
]


class GuardRoster(BaseModel):
    id: str
    title: str
    zone_name: str
    guard_ids: list[str] = Field(default_factory=list)
    day_off_weekdays: list[Weekday] = Field(default_factory=list)
    effective_from: date
    effective_to: date
    created_at: datetime | None = None


class PatrolHistory(BaseModel):
    id: str
    date: date
    planned_at: datetime | None = None
    actual_at: datetime | None = None
    sequence_no: int | None = None
    guard_id: str
    guard_name: str
    zone_name: str
    checkpoint_id: str | None = None
    checkpoint_name: str
    status: PatrolStatus
    scan_method: ScanMethod
    grace_time_minutes: int = 0
    late_by_minutes: int | None = None
    skip_reason: AvailabilityType | None = None


class ScanEvent(BaseModel):
    guard_id: str
    checkpoint_id: str
    scanned_at: datetime
    method: ScanMethod = ScanMethod.NFC
    payload: str | None = None

    @field_validator("scanned_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("scanned_at must include a timezone offset.")
        return value


class AuditLog(BaseModel):
    id: str
    actor: str
    module: AuditModule
    action: AuditAction
    entity_type: str
    entity_id: str
    summary: str
    created_at: datetime


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class AdminAuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class ScheduleBatchRow(BaseModel):
    checkpoint_id: str = ""
    time_slots: list[TimeSlotInput] = Field(default_factory=list)
    grace_time_minutes: int | None = Field(default=None, ge=0)
    status: RecordStatus = RecordStatus.ACTIVE


class ScheduleBatchCreateRequest(BaseModel):
    guard_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    grace_time_minutes: int | None = Field(default=None, ge=0)
    rows: list[ScheduleBatchRow] = Field(default_factory=list)


class ScheduleUpdateRequest(BaseModel):
    time_slots: list[TimeSlotInput] | None = None
    grace_time_minutes: int | None = Field(default=None, ge=0)
    status: RecordStatus | None = None


class ScheduleStatsRead(BaseModel):
    assignments: int
    guards: int
    active: int
    visits: int


class GuardScheduleGroupRead(BaseModel):
    guard_id: str
    guard_name: str
    zone_names: list[str]
    checkpoint_count: int
    daily_visits: int
    schedules: list[Schedule]


class RangeScheduleGroupRead(BaseModel):
    start_date: date
    end_date: date
    schedules: list[Schedule]


class LeaveCreateRequest(BaseModel):
    guard_ids: list[str] = Field(min_length=1)
    start_date: date
    end_date: date
    type: AvailabilityType = AvailabilityType.LEAVE
    mode: AvailabilityMode = AvailabilityMode.DATE_RANGE
    weekdays: list[Weekday] = Field(default_factory=list)
    note: str | None = None
    notes_by_guard: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _weekly_off_needs_weekdays(self) -> "LeaveCreateRequest":
        if self.mode == AvailabilityMode.WEEKLY_OFF and not self.weekdays:
            raise ValueError("weekdays are required for weekly-off records.")
        return self


class LeaveUpdateRequest(BaseModel):
    guard_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    note: str | None = None


class LeaveCreateResponse(BaseModel):
    created: int
    records: list[ManualAvailability]


class AvailabilityCheckResponse(BaseModel):
    guard_id: str
    available: bool
    day: date | None = None
    record: AvailabilityRecord | None = None


class RosterUpsertRequest(BaseModel):
    title: str
    zone_name: str
    guard_ids: list[str] = Field(default_factory=list)
    day_off_weekdays: list[Weekday] = Field(default_factory=list)
    effective_from: date
    effective_to: date


class RosterRead(GuardRoster):
    status: Literal["upcoming", "active", "expired"]


class ClassifyDayRequest(BaseModel):
    date: date
    scans: list[ScanEvent] = Field(default_factory=list)
    replace_existing: bool = True


class QrDisplayRead(BaseModel):
    checkpoint_id: str
    checkpoint_name: str
    zone_name: str
    location: str
    has_qr: bool
    is_dynamic: bool
    rotate_every_minutes: int
    token: int | None
    seconds_left: int
    cycle_seconds: int
    progress_percent: float
    payload: str
    qr_image_url: str
    generated_at: datetime


class OutcomeSummaryRead(BaseModel):
    completed: int = 0
    late: int = 0
    missed: int = 0
    skipped: int = 0
    actionable: int = 0
    compliance: int = 0


class TrendPointRead(BaseModel):
    date: date
    completed: int = 0
    late: int = 0
    missed: int = 0
    skipped: int = 0


class ZoneLoadRead(BaseModel):
    zone_name: str
    visits: int
    checkpoints: int


class LocationSummaryRead(BaseModel):
    zone_name: str
    checkpoint_name: str
    total: int = 0
    completed: int = 0
    late: int = 0
    missed: int = 0
    skipped: int = 0


class GuardStatusMixRead(BaseModel):
    active: int = 0
    on_duty: int = 0
    inactive: int = 0


class DashboardRead(BaseModel):
    today: date
    guards: GuardStatusMixRead
    leave_today: int
    off_roster_today: int
    planned_visits: int
    dynamic_qr_checkpoints: int
    nfc_configured_checkpoints: int
    audit_last_24h: int
    patrol_trend: list[TrendPointRead]
    patrol_summary: OutcomeSummaryRead
    zone_load: list[ZoneLoadRead]
    recent_audit: list[AuditLog]

    model_config = ConfigDict(from_attributes=True)


class DeleteResponse(BaseModel):
    ok: bool
    id: str
