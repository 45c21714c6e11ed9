from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from guardwise.models import RecordStatus
from guardwise.schemas import AvailabilityRecord, Schedule
from guardwise.services.availability import is_unavailable_in_range


class ScheduleConflictError(Exception):
    """Base for every rejection raised while validating schedule writes."""

    code = "SCHEDULE_CONFLICT"
    status_code = 409

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict:
        return {}


class InvalidDateRange(ScheduleConflictError):
    code = "INVALID_DATE_RANGE"
    status_code = 422

    def __init__(self, start_date: date, end_date: date) -> None:
        super().__init__("Start date must be on or before the end date.")
        self.start_date = start_date
        self.end_date = end_date

    def details(self) -> dict:
        return {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()}


class GuardUnavailable(ScheduleConflictError):
    code = "GUARD_UNAVAILABLE"

    def __init__(self, *, guard_name: str, day: date, record: AvailabilityRecord) -> None:
        label = record.type.value.replace("-", " ").title()
        super().__init__(f"{guard_name} is marked {label} on {day.isoformat()}.")
        self.day = day
        self.record = record

    def details(self) -> dict:
        return {"day": self.day.isoformat(), "record_id": self.record.id, "type": self.record.type.value}


class IncompleteRow(ScheduleConflictError):
    code = "INCOMPLETE_ROW"
    status_code = 422

    def __init__(self, row_index: int, message: str) -> None:
        super().__init__(message)
        self.row_index = row_index

    def details(self) -> dict:
        return {"row_index": self.row_index}


class DuplicateGuardTime(ScheduleConflictError):
    code = "DUPLICATE_GUARD_TIME"

    def __init__(self, times: list[str]) -> None:
        super().__init__(f"Same guard has overlapping times: {', '.join(format_12h(t) for t in times)}.")
        self.times = times

    def details(self) -> dict:
        return {"times": self.times}


class DuplicateCheckpointTime(ScheduleConflictError):
    code = "DUPLICATE_CHECKPOINT_TIME"

    def __init__(self, *, checkpoint_id: str, time: str, checkpoint_name: str | None = None) -> None:
        super().__init__(f"{checkpoint_name or 'Checkpoint'} already has {format_12h(time)}.")
        self.checkpoint_id = checkpoint_id
        self.time = time

    def details(self) -> dict:
        return {"checkpoint_id": self.checkpoint_id, "time": self.time}


class ExistingGuardTimeConflict(ScheduleConflictError):
    code = "EXISTING_GUARD_TIME_CONFLICT"

    def __init__(self, times: list[str]) -> None:
        super().__init__(f"Guard already has schedules at {', '.join(format_12h(t) for t in times)}.")
        self.times = times

    def details(self) -> dict:
        return {"times": self.times}


class ExistingCheckpointTimeConflict(ScheduleConflictError):
    code = "EXISTING_CHECKPOINT_TIME_CONFLICT"

    def __init__(self, *, checkpoint_id: str, time: str, checkpoint_name: str | None = None) -> None:
        super().__init__(
            f"{checkpoint_name or 'Checkpoint'} already has {format_12h(time)} in an existing schedule."
        )
        self.checkpoint_id = checkpoint_id
        self.time = time

    def details(self) -> dict:
        return {"checkpoint_id": self.checkpoint_id, "time": self.time}


@dataclass
class ProposalRow:
    checkpoint_id: str
    times: list[str] = field(default_factory=list)
    checkpoint_name: str | None = None


@dataclass
class SchedulePlanProposal:
    guard_id: str
    start_date: date
    end_date: date
    rows: list[ProposalRow] = field(default_factory=list)
    guard_name: str | None = None


def parse_hhmm(value: str) -> tuple[int, int]:
    hour_str, _, minute_str = value.partition(":")
    hour = int(hour_str)
    minute = int(minute_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value}")
    return hour, minute


def format_12h(value: str) -> str:
    hour, minute = parse_hhmm(value)
    period = "AM" if hour < 12 else "PM"
    hour12 = hour % 12 or 12
    return f"{hour12}:{minute:02d} {period}"


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    return start_a <= end_b and end_a >= start_b


def duplicate_times(values: Iterable[str]) -> list[str]:
    counts = Counter(values)
    return sorted(value for value, count in counts.items() if count > 1)


def _overlapping_active(
    schedules: Iterable[Schedule],
    start_date: date,
    end_date: date,
    *,
    exclude_id: str | None = None,
) -> list[Schedule]:
    return [
        schedule
        for schedule in schedules
        if schedule.status == RecordStatus.ACTIVE
        and schedule.id != exclude_id
        and ranges_overlap(start_date, end_date, schedule.start_date, schedule.end_date)
    ]


def _check_existing(
    guard_id: str,
    rows: Sequence[ProposalRow],
    overlapping: Sequence[Schedule],
) -> None:
    guard_times = {
        slot.time
        for schedule in overlapping
        if schedule.guard_id == guard_id
        for slot in schedule.time_slots
    }
    proposed_times = [time for row in rows for time in row.times]
    clashes = sorted({time for time in proposed_times if time in guard_times})
    if clashes:
        raise ExistingGuardTimeConflict(clashes)

    checkpoint_times = {
        (schedule.checkpoint_id, slot.time)
        for schedule in overlapping
        for slot in schedule.time_slots
    }
    for row in rows:
        for time in row.times:
            if (row.checkpoint_id, time) in checkpoint_times:
                raise ExistingCheckpointTimeConflict(
                    checkpoint_id=row.checkpoint_id,
                    time=time,
                    checkpoint_name=row.checkpoint_name,
                )


def validate_batch(
    existing_schedules: Sequence[Schedule],
    availability: Sequence[AvailabilityRecord],
    proposal: SchedulePlanProposal,
) -> None:
    """Reject a bulk schedule proposal on the first rule it breaks.

    Checks run in a fixed order: date range, guard availability, row
    completeness, duplicates inside the batch, then clashes with the active
    schedules whose date range overlaps the proposal.
    """
    if proposal.start_date > proposal.end_date:
        raise InvalidDateRange(proposal.start_date, proposal.end_date)

    hit = is_unavailable_in_range(availability, proposal.guard_id, proposal.start_date, proposal.end_date)
    if hit is not None:
        raise GuardUnavailable(
            guard_name=proposal.guard_name or hit.record.guard_name,
            day=hit.day,
            record=hit.record,
        )

    if not proposal.rows:
        raise IncompleteRow(0, "Add at least one checkpoint row.")
    for index, row in enumerate(proposal.rows):
        if not row.checkpoint_id:
            raise IncompleteRow(index, "Each row needs a checkpoint.")
        if not row.times:
            raise IncompleteRow(index, "Each checkpoint needs at least one visit time.")

    all_times = [time for row in proposal.rows for time in row.times]
    duplicated = duplicate_times(all_times)
    if duplicated:
        raise DuplicateGuardTime(duplicated)

    seen: set[tuple[str, str]] = set()
    for row in proposal.rows:
        for time in row.times:
            key = (row.checkpoint_id, time)
            if key in seen:
                raise DuplicateCheckpointTime(
                    checkpoint_id=row.checkpoint_id,
                    time=time,
                    checkpoint_name=row.checkpoint_name,
                )
            seen.add(key)

    overlapping = _overlapping_active(existing_schedules, proposal.start_date, proposal.end_date)
    _check_existing(proposal.guard_id, proposal.rows, overlapping)


def validate_schedule_edit(existing_schedules: Sequence[Schedule], schedule: Schedule) -> None:
    if schedule.start_date > schedule.end_date:
        raise InvalidDateRange(schedule.start_date, schedule.end_date)

    times = [slot.time for slot in schedule.time_slots]
    if not times:
        raise IncompleteRow(0, "Each checkpoint needs at least one visit time.")
    duplicated = duplicate_times(times)
    if duplicated:
        raise DuplicateGuardTime(duplicated)

    if schedule.status != RecordStatus.ACTIVE:
        return

    overlapping = _overlapping_active(
        existing_schedules,
        schedule.start_date,
        schedule.end_date,
        exclude_id=schedule.id,
    )
    row = ProposalRow(checkpoint_id=schedule.checkpoint_id, times=times, checkpoint_name=schedule.checkpoint_name)
    _check_existing(schedule.guard_id, [row], overlapping)
