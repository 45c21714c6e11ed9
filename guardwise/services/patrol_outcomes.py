from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Literal, Sequence

from guardwise.models import AvailabilityType, PatrolStatus, RecordStatus, ScanMethod, ScanType
from guardwise.schemas import (
    AvailabilityRecord,
    Checkpoint,
    OutcomeSummaryRead,
    PatrolHistory,
    ScanEvent,
    Schedule,
    TimeSlot,
    TrendPointRead,
)
from guardwise.services.availability import is_unavailable, read_availability
from guardwise.services.qr_rotation import verify_scanned_payload
from guardwise.services.schedule_validation import parse_hhmm
from guardwise.settings import get_settings, get_site_timezone
from guardwise.store import Repository

logger = logging.getLogger("guardwise.patrol_outcomes")

LateBasis = Literal["grace_window", "scheduled_time"]


@dataclass(frozen=True)
class VisitOutcome:
    status: PatrolStatus
    late_by_minutes: int | None = None
    skip_reason: AvailabilityType | None = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_visit(
    scheduled_at: datetime,
    grace_minutes: int,
    actual_at: datetime | None,
    unavailable_record: AvailabilityRecord | None = None,
    late_basis: LateBasis = "grace_window",
) -> VisitOutcome:
    if actual_at is not None:
        deadline = scheduled_at + timedelta(minutes=grace_minutes)
        if actual_at <= deadline:
            return VisitOutcome(status=PatrolStatus.COMPLETED)
        reference = deadline if late_basis == "grace_window" else scheduled_at
        late_minutes = (actual_at - reference).total_seconds() / 60
        return VisitOutcome(status=PatrolStatus.LATE, late_by_minutes=_round_half_up(late_minutes))

    if unavailable_record is not None:
        return VisitOutcome(status=PatrolStatus.SKIPPED, skip_reason=unavailable_record.type)
    return VisitOutcome(status=PatrolStatus.MISSED)


def _default_scan_method(checkpoint: Checkpoint | None) -> ScanMethod:
    if checkpoint is None or ScanType.NFC in checkpoint.scan_types:
        return ScanMethod.NFC
    return ScanMethod.QR


def _attribute_scans(
    visits: list[tuple[datetime, Schedule, int]],
    candidates: list[ScanEvent],
    *,
    early: timedelta,
    day_end: datetime,
) -> dict[tuple[str, int], ScanEvent]:
    """Assign scans to the visits of one guard at one checkpoint.

    ``visits`` is the merged timeline of every schedule for that pair, sorted by
    planned time. A visit's window opens ``early`` before it and closes ``early``
    before the next visit, but never before its own grace deadline.
    """
    matches: dict[tuple[str, int], ScanEvent] = {}
    used: set[int] = set()
    for position, (scheduled_at, schedule, index) in enumerate(visits):
        window_start = scheduled_at - early
        if position + 1 < len(visits):
            grace_deadline = scheduled_at + timedelta(minutes=schedule.grace_time_minutes)
            window_end = max(visits[position + 1][0] - early, grace_deadline)
        else:
            window_end = day_end
        for scan_index, scan in enumerate(candidates):
            if scan_index in used:
                continue
            if window_start <= scan.scanned_at < window_end:
                matches[(schedule.id, index)] = scan
                used.add(scan_index)
                break
    return matches


def build_daily_patrol_history(
    day: date,
    schedules: Iterable[Schedule],
    availability: Sequence[AvailabilityRecord],
    checkpoints: Iterable[Checkpoint],
    scans: Iterable[ScanEvent],
    *,
    tz: tzinfo,
    early_window_minutes: int = 15,
    late_basis: LateBasis = "grace_window",
) -> list[PatrolHistory]:
    """Expand the active schedules covering ``day`` into one history row per visit.

    Scans are matched on guard and checkpoint across all of that pair's
    schedules, and no scan is counted twice.
    """
    checkpoint_map = {checkpoint.id: checkpoint for checkpoint in checkpoints}
    early = timedelta(minutes=early_window_minutes)
    day_end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)

    scans_by_key: dict[tuple[str, str], list[ScanEvent]] = {}
    for scan in sorted(scans, key=lambda item: item.scanned_at):
        scans_by_key.setdefault((scan.guard_id, scan.checkpoint_id), []).append(scan)

    covering = [
        schedule
        for schedule in schedules
        if schedule.status == RecordStatus.ACTIVE and schedule.start_date <= day <= schedule.end_date
    ]
    planned: dict[str, list[tuple[datetime, TimeSlot]]] = {}
    timelines: dict[tuple[str, str], list[tuple[datetime, Schedule, int]]] = {}
    for schedule in covering:
        slots = sorted(schedule.time_slots, key=lambda slot: slot.time)
        planned[schedule.id] = [
            (datetime.combine(day, time(*parse_hhmm(slot.time)), tzinfo=tz), slot) for slot in slots
        ]
        timeline = timelines.setdefault((schedule.guard_id, schedule.checkpoint_id), [])
        timeline.extend((scheduled_at, schedule, index) for index, (scheduled_at, _) in enumerate(planned[schedule.id]))

    matches: dict[tuple[str, int], ScanEvent] = {}
    for key, visits in timelines.items():
        visits.sort(key=lambda item: item[0])
        matches.update(_attribute_scans(visits, scans_by_key.get(key, []), early=early, day_end=day_end))

    rows: list[PatrolHistory] = []
    for schedule in covering:
        unavailable = is_unavailable(availability, schedule.guard_id, day)
        checkpoint = checkpoint_map.get(schedule.checkpoint_id)
        for index, (scheduled_at, _slot) in enumerate(planned[schedule.id]):
            matched = matches.get((schedule.id, index))
            outcome = classify_visit(
                scheduled_at,
                schedule.grace_time_minutes,
                matched.scanned_at if matched else None,
                unavailable,
                late_basis,
            )
            rows.append(
                PatrolHistory(
                    id=f"ph-{schedule.id}-{day.isoformat()}-{index + 1}",
                    date=day,
                    planned_at=scheduled_at,
                    actual_at=matched.scanned_at if matched else None,
                    sequence_no=index + 1,
                    guard_id=schedule.guard_id,
                    guard_name=schedule.guard_name,
                    zone_name=schedule.zone_name,
                    checkpoint_id=schedule.checkpoint_id,
                    checkpoint_name=schedule.checkpoint_name,
                    status=outcome.status,
                    scan_method=matched.method if matched else _default_scan_method(checkpoint),
                    grace_time_minutes=schedule.grace_time_minutes,
                    late_by_minutes=outcome.late_by_minutes,
                    skip_reason=outcome.skip_reason,
                )
            )
    return rows


def accepted_scans(
    scans: Iterable[ScanEvent],
    checkpoints: Iterable[Checkpoint],
    *,
    grace_slots: int,
    default_rotate_minutes: int,
    request_id: str | None = None,
) -> list[ScanEvent]:
    """Drop QR scans whose payload does not match the checkpoint at scan time."""
    checkpoint_map = {checkpoint.id: checkpoint for checkpoint in checkpoints}
    accepted: list[ScanEvent] = []
    for scan in scans:
        checkpoint = checkpoint_map.get(scan.checkpoint_id)
        if checkpoint is None:
            logger.warning(
                "scan_unknown_checkpoint",
                extra={"request_id": request_id, "checkpoint_id": scan.checkpoint_id, "guard_id": scan.guard_id},
            )
            continue
        if scan.method == ScanMethod.QR and scan.payload is not None:
            scanned_ms = int(scan.scanned_at.timestamp() * 1000)
            if not verify_scanned_payload(
                checkpoint,
                scan.payload,
                scanned_ms,
                grace_slots,
                default_rotate_minutes,
            ):
                logger.warning(
                    "scan_payload_rejected",
                    extra={"request_id": request_id, "checkpoint_id": checkpoint.id, "guard_id": scan.guard_id},
                )
                continue
        accepted.append(scan)
    return accepted


def record_daily_patrol_history(
    repo: Repository,
    day: date,
    scans: Iterable[ScanEvent],
    *,
    replace_existing: bool = True,
    request_id: str | None = None,
) -> list[PatrolHistory]:
    settings = get_settings()
    checkpoints = repo.checkpoints.load()
    accepted = accepted_scans(
        scans,
        checkpoints,
        grace_slots=settings.qr_token_grace_slots,
        default_rotate_minutes=settings.default_qr_rotate_minutes,
        request_id=request_id,
    )
    rows = build_daily_patrol_history(
        day,
        repo.schedules.load(),
        read_availability(repo),
        checkpoints,
        accepted,
        tz=get_site_timezone(),
        early_window_minutes=settings.scan_early_window_minutes,
        late_basis=settings.late_minutes_basis,
    )

    history = repo.patrol_history.load()
    if replace_existing:
        history = [row for row in history if row.date != day]
    else:
        new_ids = {row.id for row in rows}
        history = [row for row in history if row.id not in new_ids]
    repo.patrol_history.save([*history, *rows])

    summary = summarize_outcomes(rows)
    logger.info(
        "patrol_day_classified",
        extra={
            "request_id": request_id,
            "day": day.isoformat(),
            "rows": len(rows),
            "completed": summary.completed,
            "late": summary.late,
            "missed": summary.missed,
            "skipped": summary.skipped,
        },
    )
    return rows


def summarize_outcomes(rows: Iterable[PatrolHistory]) -> OutcomeSummaryRead:
    counts = {status: 0 for status in PatrolStatus}
    for row in rows:
        counts[row.status] += 1
    completed = counts[PatrolStatus.COMPLETED]
    late = counts[PatrolStatus.LATE]
    missed = counts[PatrolStatus.MISSED]
    actionable = completed + late + missed
    return OutcomeSummaryRead(
        completed=completed,
        late=late,
        missed=missed,
        skipped=counts[PatrolStatus.SKIPPED],
        actionable=actionable,
        compliance=_round_half_up(completed / actionable * 100) if actionable else 0,
    )


def compliance_rate(rows: Iterable[PatrolHistory]) -> int:
    return summarize_outcomes(rows).compliance


def trend_by_day(rows: Iterable[PatrolHistory], last: int = 7) -> list[TrendPointRead]:
    buckets: dict[date, TrendPointRead] = {}
    for row in rows:
        bucket = buckets.get(row.date)
        if bucket is None:
            bucket = TrendPointRead(date=row.date)
            buckets[row.date] = bucket
        field_name = row.status.value
        setattr(bucket, field_name, getattr(bucket, field_name) + 1)
    ordered = [buckets[key] for key in sorted(buckets)]
    if last <= 0:
        return ordered
    return ordered[-last:]
