from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from guardwise.models import AvailabilityType, GuardStatus, PatrolStatus, RecordStatus, ScanMethod, ScanType
from guardwise.schemas import (
    DashboardRead,
    GuardScheduleGroupRead,
    GuardStatusMixRead,
    LocationSummaryRead,
    PatrolHistory,
    RangeScheduleGroupRead,
    Schedule,
    ScheduleStatsRead,
    ZoneLoadRead,
)
from guardwise.services.availability import availability_on_day, read_availability
from guardwise.services.patrol_outcomes import summarize_outcomes, trend_by_day
from guardwise.store import Repository

RECENT_AUDIT_LIMIT = 6


def _visits(schedules: Iterable[Schedule]) -> int:
    return sum(len(schedule.time_slots) for schedule in schedules)


def filter_schedules(
    schedules: Iterable[Schedule],
    *,
    search: str | None = None,
    status: RecordStatus | None = None,
    zone_name: str | None = None,
) -> list[Schedule]:
    query = (search or "").strip().lower()
    rows: list[Schedule] = []
    for schedule in schedules:
        if query and not any(
            query in value.lower() for value in (schedule.guard_name, schedule.checkpoint_name, schedule.zone_name)
        ):
            continue
        if status is not None and schedule.status != status:
            continue
        if zone_name and schedule.zone_name != zone_name:
            continue
        rows.append(schedule)
    return rows


def group_schedules_by_guard(schedules: Iterable[Schedule]) -> list[GuardScheduleGroupRead]:
    buckets: dict[str, dict] = {}
    for schedule in schedules:
        key = schedule.guard_id or schedule.guard_name
        bucket = buckets.setdefault(
            key,
            {"guard_id": key, "guard_name": schedule.guard_name, "zone_names": [], "schedules": []},
        )
        bucket["schedules"].append(schedule)
        if schedule.zone_name not in bucket["zone_names"]:
            bucket["zone_names"].append(schedule.zone_name)

    groups = [
        GuardScheduleGroupRead(
            checkpoint_count=len(bucket["schedules"]),
            daily_visits=_visits(bucket["schedules"]),
            **bucket,
        )
        for bucket in buckets.values()
    ]
    return sorted(groups, key=lambda group: group.guard_name.lower())


def group_schedules_by_range(schedules: Iterable[Schedule]) -> list[RangeScheduleGroupRead]:
    buckets: dict[tuple[date, date], list[Schedule]] = {}
    for schedule in schedules:
        buckets.setdefault((schedule.start_date, schedule.end_date), []).append(schedule)
    return [
        RangeScheduleGroupRead(start_date=start_date, end_date=end_date, schedules=items)
        for (start_date, end_date), items in sorted(buckets.items(), key=lambda item: item[0])
    ]


def schedule_stats(schedules: Iterable[Schedule]) -> ScheduleStatsRead:
    rows = list(schedules)
    return ScheduleStatsRead(
        assignments=len(rows),
        guards=len({schedule.guard_id or schedule.guard_name for schedule in rows}),
        active=sum(1 for schedule in rows if schedule.status == RecordStatus.ACTIVE),
        visits=_visits(rows),
    )


def zone_load(schedules: Iterable[Schedule]) -> list[ZoneLoadRead]:
    buckets: dict[str, ZoneLoadRead] = {}
    for schedule in schedules:
        if schedule.status != RecordStatus.ACTIVE:
            continue
        bucket = buckets.get(schedule.zone_name)
        if bucket is None:
            bucket = ZoneLoadRead(zone_name=schedule.zone_name, visits=0, checkpoints=0)
            buckets[schedule.zone_name] = bucket
        bucket.visits += len(schedule.time_slots)
        bucket.checkpoints += 1
    return sorted(buckets.values(), key=lambda bucket: bucket.visits, reverse=True)


def filter_history(
    history: Iterable[PatrolHistory],
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    guard_name: str | None = None,
    zone_name: str | None = None,
    checkpoint_name: str | None = None,
    status: PatrolStatus | None = None,
    scan_method: ScanMethod | None = None,
) -> list[PatrolHistory]:
    rows: list[PatrolHistory] = []
    for record in history:
        if from_date is not None and record.date < from_date:
            continue
        if to_date is not None and record.date > to_date:
            continue
        if guard_name and record.guard_name != guard_name:
            continue
        if zone_name and record.zone_name != zone_name:
            continue
        if checkpoint_name and record.checkpoint_name != checkpoint_name:
            continue
        if status is not None and record.status != status:
            continue
        if scan_method is not None and record.scan_method != scan_method:
            continue
        rows.append(record)
    return rows


def late_missed(history: Iterable[PatrolHistory], *, min_late_minutes: int = 0) -> list[PatrolHistory]:
    rows: list[PatrolHistory] = []
    for record in history:
        if record.status == PatrolStatus.COMPLETED:
            continue
        if record.status == PatrolStatus.LATE and (record.late_by_minutes or 0) < min_late_minutes:
            continue
        rows.append(record)
    return rows


def location_summary(history: Iterable[PatrolHistory]) -> list[LocationSummaryRead]:
    buckets: dict[tuple[str, str], LocationSummaryRead] = {}
    for record in history:
        key = (record.zone_name, record.checkpoint_name)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = LocationSummaryRead(zone_name=record.zone_name, checkpoint_name=record.checkpoint_name)
            buckets[key] = bucket
        bucket.total += 1
        field_name = record.status.value
        setattr(bucket, field_name, getattr(bucket, field_name) + 1)
    return list(buckets.values())


def dashboard_summary(repo: Repository, today: date, *, now: datetime | None = None) -> DashboardRead:
    now = now or datetime.now(timezone.utc)
    guards = repo.guards.load()
    checkpoints = repo.checkpoints.load()
    schedules = repo.schedules.load()
    audit_logs = repo.audit_logs.load()

    today_records = availability_on_day(read_availability(repo), today)
    leave_today = {record.guard_id for record in today_records if record.type == AvailabilityType.LEAVE}
    off_roster_today = {record.guard_id for record in today_records if record.type == AvailabilityType.OFF_ROSTER}

    trend = trend_by_day(repo.patrol_history.load(), last=7)
    trend_dates = {point.date for point in trend}
    trend_rows = [row for row in repo.patrol_history.load() if row.date in trend_dates]

    cutoff = now - timedelta(hours=24)
    return DashboardRead(
        today=today,
        guards=GuardStatusMixRead(
            active=sum(1 for guard in guards if guard.status == GuardStatus.ACTIVE),
            on_duty=sum(1 for guard in guards if guard.status == GuardStatus.ON_DUTY),
            inactive=sum(1 for guard in guards if guard.status == GuardStatus.INACTIVE),
        ),
        leave_today=len(leave_today),
        off_roster_today=len(off_roster_today),
        planned_visits=_visits(schedule for schedule in schedules if schedule.status == RecordStatus.ACTIVE),
        dynamic_qr_checkpoints=sum(1 for checkpoint in checkpoints if ScanType.DYNAMIC_QR in checkpoint.scan_types),
        nfc_configured_checkpoints=sum(
            1 for checkpoint in checkpoints if checkpoint.nfc_config is not None and checkpoint.nfc_config.configured
        ),
        audit_last_24h=sum(1 for log in audit_logs if log.created_at >= cutoff),
        patrol_trend=trend,
        patrol_summary=summarize_outcomes(trend_rows),
        zone_load=zone_load(schedules),
        recent_audit=audit_logs[:RECENT_AUDIT_LIMIT],
    )
