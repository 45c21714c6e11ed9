from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable, Literal
from uuid import uuid4

from guardwise.audit import log_audit
from guardwise.models import AuditAction, AuditModule, AvailabilityMode, AvailabilityType
from guardwise.schemas import Guard, GuardRoster, RosterAvailability, RosterUpsertRequest
from guardwise.store import Repository

RosterStatus = Literal["upcoming", "active", "expired"]


class RosterError(Exception):
    def __init__(self, *, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def roster_availability_id(roster_id: str, guard_id: str) -> str:
    return f"roster-{roster_id}-{guard_id}"


def project_rosters(rosters: Iterable[GuardRoster], guards: Iterable[Guard]) -> list[RosterAvailability]:
    """Expand every roster into one weekly-off record per member guard.

    Output order follows roster order, then the roster's guard order, so the
    same inputs always produce the same list.
    """
    guard_names = {guard.id: guard.name for guard in guards}
    projected: list[RosterAvailability] = []
    for roster in rosters:
        for guard_id in roster.guard_ids:
            projected.append(
                RosterAvailability(
                    id=roster_availability_id(roster.id, guard_id),
                    roster_id=roster.id,
                    guard_id=guard_id,
                    guard_name=guard_names.get(guard_id) or guard_id,
                    mode=AvailabilityMode.WEEKLY_OFF,
                    type=AvailabilityType.OFF_ROSTER,
                    start_date=roster.effective_from,
                    end_date=roster.effective_to,
                    weekdays=list(roster.day_off_weekdays),
                    note=f"roster:{roster.id}:{roster.title}",
                )
            )
    return projected


def roster_status(roster: GuardRoster, today: date) -> RosterStatus:
    if today < roster.effective_from:
        return "upcoming"
    if today > roster.effective_to:
        return "expired"
    return "active"


def _validated_fields(repo: Repository, payload: RosterUpsertRequest) -> dict:
    title = payload.title.strip()
    if not title:
        raise RosterError(status_code=422, code="TITLE_REQUIRED", message="Please add roster title.")
    if not payload.zone_name.strip():
        raise RosterError(status_code=422, code="ZONE_REQUIRED", message="Please select a zone.")
    if not payload.day_off_weekdays:
        raise RosterError(status_code=422, code="DAY_OFF_REQUIRED", message="Please select at least one day off.")
    if not payload.guard_ids:
        raise RosterError(status_code=422, code="GUARDS_REQUIRED", message="Please select one or more guards.")
    if payload.effective_from > payload.effective_to:
        raise RosterError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="Please set a valid effective date range.",
        )

    known_guards = {guard.id for guard in repo.guards.load()}
    unknown = [guard_id for guard_id in payload.guard_ids if guard_id not in known_guards]
    if unknown:
        raise RosterError(
            status_code=404,
            code="GUARD_NOT_FOUND",
            message=f"Unknown guard ids: {', '.join(unknown)}",
        )

    guard_ids: list[str] = []
    for guard_id in payload.guard_ids:
        if guard_id not in guard_ids:
            guard_ids.append(guard_id)

    return {
        "title": title,
        "zone_name": payload.zone_name.strip(),
        "guard_ids": guard_ids,
        "day_off_weekdays": sorted(set(payload.day_off_weekdays)),
        "effective_from": payload.effective_from,
        "effective_to": payload.effective_to,
    }


def get_roster(repo: Repository, roster_id: str) -> GuardRoster:
    for roster in repo.rosters.load():
        if roster.id == roster_id:
            return roster
    raise RosterError(status_code=404, code="ROSTER_NOT_FOUND", message="Roster not found")


def create_roster(
    repo: Repository,
    payload: RosterUpsertRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> GuardRoster:
    fields = _validated_fields(repo, payload)
    roster = GuardRoster(
        id=f"roster-{uuid4().hex[:12]}",
        created_at=datetime.now(timezone.utc),
        **fields,
    )
    repo.rosters.save([*repo.rosters.load(), roster])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.CREATE,
        entity_type="roster",
        entity_id=roster.id,
        summary=f"Created roster {roster.title} for {roster.zone_name} ({len(roster.guard_ids)} guards)",
        request_id=request_id,
    )
    return roster


def update_roster(
    repo: Repository,
    roster_id: str,
    payload: RosterUpsertRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> GuardRoster:
    current = get_roster(repo, roster_id)
    fields = _validated_fields(repo, payload)
    updated = current.model_copy(update=fields)
    repo.rosters.save([updated if roster.id == roster_id else roster for roster in repo.rosters.load()])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.UPDATE,
        entity_type="roster",
        entity_id=roster_id,
        summary=f"Updated roster {updated.title} ({updated.zone_name})",
        request_id=request_id,
    )
    return updated


def delete_roster(
    repo: Repository,
    roster_id: str,
    *,
    actor: str,
    request_id: str | None = None,
) -> GuardRoster:
    current = get_roster(repo, roster_id)
    repo.rosters.save([roster for roster in repo.rosters.load() if roster.id != roster_id])
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.AVAILABILITY,
        action=AuditAction.DELETE,
        entity_type="roster",
        entity_id=roster_id,
        summary=f"Deleted roster {current.title}",
        request_id=request_id,
    )
    return current
