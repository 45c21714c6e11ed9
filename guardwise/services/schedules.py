from __future__ import annotations

import logging
from uuid import uuid4

from guardwise.audit import log_audit
from guardwise.models import AuditAction, AuditModule, GuardStatus, RecordStatus
from guardwise.schemas import (
    Checkpoint,
    Guard,
    Schedule,
    ScheduleBatchCreateRequest,
    ScheduleUpdateRequest,
    TimeSlot,
    TimeSlotInput,
)
from guardwise.services.availability import read_availability
from guardwise.services.schedule_validation import (
    ProposalRow,
    SchedulePlanProposal,
    format_12h,
    parse_hhmm,
    validate_batch,
    validate_schedule_edit,
)
from guardwise.settings import get_settings
from guardwise.store import Repository

logger = logging.getLogger("guardwise.schedules")

__all__ = [
    "ScheduleServiceError",
    "create_schedule_batch",
    "delete_schedule",
    "format_12h",
    "parse_hhmm",
    "update_schedule",
]


class ScheduleServiceError(Exception):
    def __init__(self, *, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4()}"


def _build_slots(slots: list[TimeSlotInput]) -> list[TimeSlot]:
    built = [
        TimeSlot(
            id=_new_id("ts"),
            time=slot.time,
            label=(slot.label or "").strip() or f"Visit at {format_12h(slot.time)}",
        )
        for slot in slots
    ]
    return sorted(built, key=lambda slot: slot.time)


def _get_guard(repo: Repository, guard_id: str) -> Guard:
    guard = next((item for item in repo.guards.load() if item.id == guard_id), None)
    if guard is None:
        raise ScheduleServiceError(status_code=404, code="GUARD_NOT_FOUND", message="Guard not found")
    return guard


def _get_checkpoints(repo: Repository, checkpoint_ids: list[str]) -> dict[str, Checkpoint]:
    checkpoints = {checkpoint.id: checkpoint for checkpoint in repo.checkpoints.load()}
    resolved: dict[str, Checkpoint] = {}
    for checkpoint_id in checkpoint_ids:
        if not checkpoint_id:
            continue
        checkpoint = checkpoints.get(checkpoint_id)
        if checkpoint is None:
            raise ScheduleServiceError(
                status_code=404,
                code="CHECKPOINT_NOT_FOUND",
                message=f"Checkpoint not found: {checkpoint_id}",
            )
        if checkpoint.status != RecordStatus.ACTIVE:
            raise ScheduleServiceError(
                status_code=422,
                code="CHECKPOINT_INACTIVE",
                message=f"{checkpoint.name} is inactive and cannot be scheduled.",
            )
        resolved[checkpoint_id] = checkpoint
    return resolved


def create_schedule_batch(
    repo: Repository,
    payload: ScheduleBatchCreateRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> list[Schedule]:
    guard = _get_guard(repo, payload.guard_id)
    if guard.status == GuardStatus.INACTIVE:
        raise ScheduleServiceError(
            status_code=422,
            code="GUARD_INACTIVE",
            message=f"{guard.name} is inactive and cannot receive schedules.",
        )
    checkpoints = _get_checkpoints(repo, [row.checkpoint_id for row in payload.rows])

    proposal = SchedulePlanProposal(
        guard_id=guard.id,
        guard_name=guard.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        rows=[
            ProposalRow(
                checkpoint_id=row.checkpoint_id,
                times=[slot.time for slot in row.time_slots],
                checkpoint_name=checkpoints[row.checkpoint_id].name if row.checkpoint_id in checkpoints else None,
            )
            for row in payload.rows
        ],
    )
    existing = repo.schedules.load()
    validate_batch(existing, read_availability(repo), proposal)

    default_grace = payload.grace_time_minutes
    if default_grace is None:
        default_grace = get_settings().default_grace_minutes

    created: list[Schedule] = []
    for row in payload.rows:
        checkpoint = checkpoints[row.checkpoint_id]
        created.append(
            Schedule(
                id=_new_id("s"),
                guard_id=guard.id,
                guard_name=guard.name,
                checkpoint_id=checkpoint.id,
                checkpoint_name=checkpoint.name,
                zone_name=checkpoint.zone_name or guard.assigned_zone or "",
                start_date=payload.start_date,
                end_date=payload.end_date,
                time_slots=_build_slots(row.time_slots),
                grace_time_minutes=row.grace_time_minutes if row.grace_time_minutes is not None else default_grace,
                status=row.status,
            )
        )

    repo.schedules.save([*existing, *created])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.SCHEDULES,
        action=AuditAction.CREATE,
        entity_type="schedule-bulk",
        entity_id=",".join(schedule.id for schedule in created),
        summary=(
            f"Created {len(created)} schedules for {guard.name} "
            f"from {payload.start_date.isoformat()} to {payload.end_date.isoformat()}"
        ),
        request_id=request_id,
    )
    logger.info(
        "schedule_batch_created",
        extra={"request_id": request_id, "guard_id": guard.id, "count": len(created)},
    )
    return created


def _get_schedule(schedules: list[Schedule], schedule_id: str) -> Schedule:
    for schedule in schedules:
        if schedule.id == schedule_id:
            return schedule
    raise ScheduleServiceError(status_code=404, code="SCHEDULE_NOT_FOUND", message="Schedule not found")


def update_schedule(
    repo: Repository,
    schedule_id: str,
    payload: ScheduleUpdateRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> Schedule:
    schedules = repo.schedules.load()
    current = _get_schedule(schedules, schedule_id)

    changes: dict = {}
    if payload.time_slots is not None:
        changes["time_slots"] = _build_slots(payload.time_slots)
    if payload.grace_time_minutes is not None:
        changes["grace_time_minutes"] = payload.grace_time_minutes
    if payload.status is not None:
        changes["status"] = payload.status
    updated = current.model_copy(update=changes)

    validate_schedule_edit(schedules, updated)

    repo.schedules.save([updated if schedule.id == schedule_id else schedule for schedule in schedules])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.SCHEDULES,
        action=AuditAction.UPDATE,
        entity_type="schedule",
        entity_id=schedule_id,
        summary=f"Updated schedule for {updated.guard_name} at {updated.checkpoint_name}",
        request_id=request_id,
    )
    return updated


def delete_schedule(
    repo: Repository,
    schedule_id: str,
    *,
    actor: str,
    request_id: str | None = None,
) -> Schedule:
    schedules = repo.schedules.load()
    current = _get_schedule(schedules, schedule_id)
    repo.schedules.save([schedule for schedule in schedules if schedule.id != schedule_id])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.SCHEDULES,
        action=AuditAction.DELETE,
        entity_type="schedule",
        entity_id=schedule_id,
        summary=f"Deleted schedule for {current.guard_name} at {current.checkpoint_name}",
        request_id=request_id,
    )
    return current
