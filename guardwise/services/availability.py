from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Literal, Sequence
from uuid import uuid4

from guardwise.audit import log_audit
from guardwise.models import AuditAction, AuditModule, AvailabilityMode
from guardwise.schemas import (
    AvailabilityRecord,
    LeaveCreateRequest,
    LeaveUpdateRequest,
    ManualAvailability,
    RosterAvailability,
)
from guardwise.services.rosters import project_rosters
from guardwise.store import Repository

logger = logging.getLogger("guardwise.availability")

AvailabilityStatus = Literal["upcoming", "active", "completed"]


class AvailabilityError(Exception):
    def __init__(self, *, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


@dataclass(frozen=True)
class UnavailableHit:
    record: AvailabilityRecord
    day: date


def weekday_index(day: date) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return day.isoweekday() % 7


def record_matches(record: AvailabilityRecord, day: date) -> bool:
    if not record.start_date <= day <= record.end_date:
        return False
    if record.mode == AvailabilityMode.WEEKLY_OFF:
        if not record.weekdays:
            return False
        return weekday_index(day) in record.weekdays
    return True


def is_unavailable(
    records: Iterable[AvailabilityRecord],
    guard_id: str,
    day: date,
) -> AvailabilityRecord | None:
    for record in records:
        if record.guard_id == guard_id and record_matches(record, day):
            return record
    return None


def is_unavailable_in_range(
    records: Sequence[AvailabilityRecord],
    guard_id: str,
    from_day: date,
    to_day: date,
) -> UnavailableHit | None:
    guard_records = [record for record in records if record.guard_id == guard_id]
    if not guard_records:
        return None

    cursor = from_day
    while cursor <= to_day:
        hit = is_unavailable(guard_records, guard_id, cursor)
        if hit is not None:
            return UnavailableHit(record=hit, day=cursor)
        cursor += timedelta(days=1)
    return None


def availability_on_day(records: Iterable[AvailabilityRecord], day: date) -> list[AvailabilityRecord]:
    return [record for record in records if record_matches(record, day)]


def availability_status(record: AvailabilityRecord, today: date) -> AvailabilityStatus:
    if today < record.start_date:
        return "upcoming"
    if today > record.end_date:
        return "completed"
    return "active"


def is_roster_derived(record: AvailabilityRecord) -> bool:
    return isinstance(record, RosterAvailability)


def read_manual_availability(repo: Repository) -> list[ManualAvailability]:
    return [record for record in repo.availability.load() if not is_roster_derived(record)]


def read_availability(repo: Repository) -> list[AvailabilityRecord]:
    def _build() -> list[AvailabilityRecord]:
        manual = read_manual_availability(repo)
        projected = project_rosters(repo.rosters.load(), repo.guards.load())
        return [*manual, *projected]

    return list(repo.cached("availability", _build))


def write_manual_availability(repo: Repository, records: Iterable[AvailabilityRecord]) -> None:
    manual = [record for record in records if not is_roster_derived(record)]
    repo.availability.save(manual)


def create_leaves(
    repo: Repository,
    payload: LeaveCreateRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> list[ManualAvailability]:
    if payload.start_date > payload.end_date:
        raise AvailabilityError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="Start date must be on or before end date.",
        )

    guards = {guard.id: guard for guard in repo.guards.load()}
    unknown = [guard_id for guard_id in payload.guard_ids if guard_id not in guards]
    if unknown:
        raise AvailabilityError(
            status_code=404,
            code="GUARD_NOT_FOUND",
            message=f"Unknown guard ids: {', '.join(unknown)}",
        )

    existing = read_manual_availability(repo)
    weekdays = sorted(set(payload.weekdays)) if payload.mode == AvailabilityMode.WEEKLY_OFF else []
    created: list[ManualAvailability] = []
    seen: set[str] = set()
    for guard_id in payload.guard_ids:
        if guard_id in seen:
            continue
        seen.add(guard_id)
        duplicate = any(
            record.guard_id == guard_id
            and record.type == payload.type
            and record.start_date == payload.start_date
            and record.end_date == payload.end_date
            for record in existing
        )
        if duplicate:
            logger.info(
                "availability_duplicate_skipped",
                extra={"request_id": request_id, "guard_id": guard_id, "type": payload.type.value},
            )
            continue

        note = (payload.notes_by_guard.get(guard_id) or payload.note or "").strip()
        created.append(
            ManualAvailability(
                id=f"ga-{uuid4().hex[:12]}",
                guard_id=guard_id,
                guard_name=guards[guard_id].name,
                mode=payload.mode,
                type=payload.type,
                start_date=payload.start_date,
                end_date=payload.end_date,
                weekdays=weekdays,
                note=note or payload.type.value.replace("-", " ").capitalize(),
            )
        )

    if not created:
        return []

    write_manual_availability(repo, [*existing, *created])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.CREATE,
        entity_type="leave",
        entity_id=",".join(record.id for record in created),
        summary=(
            f"Added {payload.type.value} for {len(created)} guard(s) "
            f"from {payload.start_date.isoformat()} to {payload.end_date.isoformat()}"
        ),
        request_id=request_id,
    )
    return created


def _find_manual(records: list[ManualAvailability], record_id: str) -> ManualAvailability:
    if record_id.startswith("roster-"):
        raise AvailabilityError(
            status_code=409,
            code="ROSTER_MANAGED",
            message="Roster-derived availability can only be changed through its roster.",
        )
    for record in records:
        if record.id == record_id:
            return record
    raise AvailabilityError(status_code=404, code="AVAILABILITY_NOT_FOUND", message="Availability record not found")


def update_leave(
    repo: Repository,
    record_id: str,
    payload: LeaveUpdateRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> ManualAvailability:
    records = read_manual_availability(repo)
    current = _find_manual(records, record_id)

    if payload.start_date > payload.end_date:
        raise AvailabilityError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="Start date must be on or before end date.",
        )
    guard = next((item for item in repo.guards.load() if item.id == payload.guard_id), None)
    if guard is None:
        raise AvailabilityError(status_code=404, code="GUARD_NOT_FOUND", message="Guard not found")

    updated = current.model_copy(
        update={
            "guard_id": guard.id,
            "guard_name": guard.name,
            "start_date": payload.start_date,
            "end_date": payload.end_date,
            "note": (payload.note or "").strip() or current.note,
        }
    )
    write_manual_availability(repo, [updated if record.id == record_id else record for record in records])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.UPDATE,
        entity_type="leave",
        entity_id=record_id,
        summary=f"Updated {updated.type.value} for {updated.guard_name}",
        request_id=request_id,
    )
    return updated


def delete_leave(
    repo: Repository,
    record_id: str,
    *,
    actor: str,
    request_id: str | None = None,
) -> ManualAvailability:
    records = read_manual_availability(repo)
    current = _find_manual(records, record_id)
    write_manual_availability(repo, [record for record in records if record.id != record_id])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.DELETE,
        entity_type="leave",
        entity_id=record_id,
        summary=f"Deleted {current.type.value} for {current.guard_name}",
        request_id=request_id,
    )
    return current
