import time
from datetime import date, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Request, Response

from guardwise.errors import ApiError
from guardwise.models import AuditModule, AvailabilityType, PatrolStatus, RecordStatus, ScanMethod
from guardwise.schemas import (
    AdminAuthResponse,
    AdminLoginRequest,
    AuditLog,
    AvailabilityCheckResponse,
    AvailabilityRecord,
    Checkpoint,
    CheckpointUpsertRequest,
    ClassifyDayRequest,
    DashboardRead,
    DeleteResponse,
    Guard,
    LeaveCreateRequest,
    LeaveCreateResponse,
    LeaveUpdateRequest,
    LocationSummaryRead,
    ManualAvailability,
    OutcomeSummaryRead,
    PatrolHistory,
    QrDisplayRead,
    RosterRead,
    RosterUpsertRequest,
    Schedule,
    ScheduleBatchCreateRequest,
    ScheduleStatsRead,
    ScheduleUpdateRequest,
    TrendPointRead,
    ZoneLoadRead,
)
from guardwise.dependencies import get_repository
from guardwise.security import authenticate_admin, require_admin
from guardwise.services.availability import (
    AvailabilityError,
    create_leaves,
    delete_leave,
    is_unavailable_in_range,
    read_availability,
    record_matches,
    update_leave,
)
from guardwise.services.checkpoints import CheckpointError, get_checkpoint, upsert_checkpoint
from guardwise.services.exports import build_location_wise_xlsx_bytes
from guardwise.services.patrol_outcomes import record_daily_patrol_history, summarize_outcomes, trend_by_day
from guardwise.services.qr_rotation import checkpoint_display_state
from guardwise.services.reports import (
    dashboard_summary,
    filter_history,
    filter_schedules,
    group_schedules_by_guard,
    group_schedules_by_range,
    late_missed,
    location_summary,
    schedule_stats,
    zone_load,
)
from guardwise.services.rosters import RosterError, create_roster, delete_roster, roster_status, update_roster
from guardwise.services.schedule_validation import ScheduleConflictError
from guardwise.services.schedules import ScheduleServiceError, create_schedule_batch, delete_schedule, update_schedule
from guardwise.settings import get_settings, get_site_timezone
from guardwise.store import Repository

router = APIRouter(tags=["admin"])
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

DomainError = AvailabilityError | CheckpointError | RosterError | ScheduleServiceError


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _actor(request: Request) -> str:
    return str(getattr(request.state, "actor_id", None) or "Admin")


def _site_today() -> date:
    return datetime.now(get_site_timezone()).date()


def _to_api_error(exc: DomainError | ScheduleConflictError) -> ApiError:
    if isinstance(exc, ScheduleConflictError):
        return ApiError(status_code=exc.status_code, code=exc.code, message=exc.message, details=exc.details())
    return ApiError(status_code=exc.status_code, code=exc.code, message=exc.message)


@router.post("/api/admin/auth/login", response_model=AdminAuthResponse)
def admin_login(payload: AdminLoginRequest, request: Request) -> AdminAuthResponse:
    issued = authenticate_admin(payload.username.strip(), payload.password, _client_ip(request))
    return AdminAuthResponse(access_token=issued.access_token, expires_in=issued.expires_in)


@router.get(
    "/api/admin/guards",
    response_model=list[Guard],
    dependencies=[Depends(require_admin)],
)
def list_guards(repo: Repository = Depends(get_repository)) -> list[Guard]:
    return repo.guards.load()


@router.get(
    "/api/admin/checkpoints",
    response_model=list[Checkpoint],
    dependencies=[Depends(require_admin)],
)
def list_checkpoints(
    zone_name: str | None = Query(default=None),
    status: RecordStatus | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[Checkpoint]:
    rows = repo.checkpoints.load()
    if zone_name:
        rows = [row for row in rows if row.zone_name == zone_name]
    if status is not None:
        rows = [row for row in rows if row.status == status]
    return rows


@router.put(
    "/api/admin/checkpoints",
    response_model=Checkpoint,
    dependencies=[Depends(require_admin)],
)
def save_checkpoint(
    payload: CheckpointUpsertRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> Checkpoint:
    try:
        return upsert_checkpoint(repo, payload, actor=_actor(request), request_id=_request_id(request))
    except CheckpointError as exc:
        raise _to_api_error(exc) from exc


@router.get(
    "/api/admin/checkpoints/{checkpoint_id}/qr-preview",
    response_model=QrDisplayRead,
    dependencies=[Depends(require_admin)],
)
def preview_checkpoint_qr(
    checkpoint_id: str,
    repo: Repository = Depends(get_repository),
) -> QrDisplayRead:
    try:
        checkpoint = get_checkpoint(repo, checkpoint_id)
    except CheckpointError as exc:
        raise _to_api_error(exc) from exc
    return checkpoint_display_state(checkpoint, int(time.time() * 1000), get_settings())


@router.get(
    "/api/admin/schedules",
    response_model=list[Schedule],
    dependencies=[Depends(require_admin)],
)
def list_schedules(
    search: str | None = Query(default=None),
    status: RecordStatus | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[Schedule]:
    return filter_schedules(repo.schedules.load(), search=search, status=status, zone_name=zone_name)


@router.get(
    "/api/admin/schedules/stats",
    response_model=ScheduleStatsRead,
    dependencies=[Depends(require_admin)],
)
def get_schedule_stats(
    search: str | None = Query(default=None),
    status: RecordStatus | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> ScheduleStatsRead:
    rows = filter_schedules(repo.schedules.load(), search=search, status=status, zone_name=zone_name)
    return schedule_stats(rows)


@router.get(
    "/api/admin/schedules/grouped",
    dependencies=[Depends(require_admin)],
)
def list_grouped_schedules(
    by: Literal["guard", "range"] = Query(default="guard"),
    search: str | None = Query(default=None),
    status: RecordStatus | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[Any]:
    rows = filter_schedules(repo.schedules.load(), search=search, status=status, zone_name=zone_name)
    if by == "range":
        return [group.model_dump(mode="json") for group in group_schedules_by_range(rows)]
    return [group.model_dump(mode="json") for group in group_schedules_by_guard(rows)]


@router.post(
    "/api/admin/schedules/bulk",
    response_model=list[Schedule],
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def bulk_create_schedules(
    payload: ScheduleBatchCreateRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> list[Schedule]:
    try:
        return create_schedule_batch(repo, payload, actor=_actor(request), request_id=_request_id(request))
    except (ScheduleConflictError, ScheduleServiceError) as exc:
        raise _to_api_error(exc) from exc


@router.patch(
    "/api/admin/schedules/{schedule_id}",
    response_model=Schedule,
    dependencies=[Depends(require_admin)],
)
def patch_schedule(
    schedule_id: str,
    payload: ScheduleUpdateRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> Schedule:
    try:
        return update_schedule(repo, schedule_id, payload, actor=_actor(request), request_id=_request_id(request))
    except (ScheduleConflictError, ScheduleServiceError) as exc:
        raise _to_api_error(exc) from exc


@router.delete(
    "/api/admin/schedules/{schedule_id}",
    response_model=DeleteResponse,
    dependencies=[Depends(require_admin)],
)
def remove_schedule(
    schedule_id: str,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> DeleteResponse:
    try:
        removed = delete_schedule(repo, schedule_id, actor=_actor(request), request_id=_request_id(request))
    except ScheduleServiceError as exc:
        raise _to_api_error(exc) from exc
    return DeleteResponse(ok=True, id=removed.id)


@router.get(
    "/api/admin/availability",
    response_model=list[AvailabilityRecord],
    dependencies=[Depends(require_admin)],
)
def list_availability(
    guard_id: str | None = Query(default=None),
    type_: AvailabilityType | None = Query(default=None, alias="type"),
    day: date | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[AvailabilityRecord]:
    rows = read_availability(repo)
    if guard_id:
        rows = [row for row in rows if row.guard_id == guard_id]
    if type_ is not None:
        rows = [row for row in rows if row.type == type_]
    if day is not None:
        rows = [row for row in rows if record_matches(row, day)]
    return rows


@router.get(
    "/api/admin/availability/check",
    response_model=AvailabilityCheckResponse,
    dependencies=[Depends(require_admin)],
)
def check_availability(
    guard_id: str = Query(..., min_length=1),
    from_date: date = Query(...),
    to_date: date | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> AvailabilityCheckResponse:
    end_date = to_date or from_date
    if from_date > end_date:
        raise ApiError(status_code=422, code="INVALID_DATE_RANGE", message="from_date must be on or before to_date.")
    hit = is_unavailable_in_range(read_availability(repo), guard_id, from_date, end_date)
    if hit is None:
        return AvailabilityCheckResponse(guard_id=guard_id, available=True)
    return AvailabilityCheckResponse(guard_id=guard_id, available=False, day=hit.day, record=hit.record)


@router.post(
    "/api/admin/availability/leaves",
    response_model=LeaveCreateResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def add_leaves(
    payload: LeaveCreateRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> LeaveCreateResponse:
    try:
        created = create_leaves(repo, payload, actor=_actor(request), request_id=_request_id(request))
    except AvailabilityError as exc:
        raise _to_api_error(exc) from exc
    return LeaveCreateResponse(created=len(created), records=created)


@router.patch(
    "/api/admin/availability/leaves/{record_id}",
    response_model=ManualAvailability,
    dependencies=[Depends(require_admin)],
)
def edit_leave(
    record_id: str,
    payload: LeaveUpdateRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> ManualAvailability:
    try:
        return update_leave(repo, record_id, payload, actor=_actor(request), request_id=_request_id(request))
    except AvailabilityError as exc:
        raise _to_api_error(exc) from exc


@router.delete(
    "/api/admin/availability/leaves/{record_id}",
    response_model=DeleteResponse,
    dependencies=[Depends(require_admin)],
)
def remove_leave(
    record_id: str,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> DeleteResponse:
    try:
        removed = delete_leave(repo, record_id, actor=_actor(request), request_id=_request_id(request))
    except AvailabilityError as exc:
        raise _to_api_error(exc) from exc
    return DeleteResponse(ok=True, id=removed.id)


@router.get(
    "/api/admin/rosters",
    response_model=list[RosterRead],
    dependencies=[Depends(require_admin)],
)
def list_rosters(
    status: Literal["upcoming", "active", "expired"] | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[RosterRead]:
    today = _site_today()
    rows = [
        RosterRead(status=roster_status(roster, today), **roster.model_dump())
        for roster in repo.rosters.load()
    ]
    if status is not None:
        rows = [row for row in rows if row.status == status]
    return rows


@router.post(
    "/api/admin/rosters",
    response_model=RosterRead,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def add_roster(
    payload: RosterUpsertRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> RosterRead:
    try:
        roster = create_roster(repo, payload, actor=_actor(request), request_id=_request_id(request))
    except RosterError as exc:
        raise _to_api_error(exc) from exc
    return RosterRead(status=roster_status(roster, _site_today()), **roster.model_dump())


@router.put(
    "/api/admin/rosters/{roster_id}",
    response_model=RosterRead,
    dependencies=[Depends(require_admin)],
)
def edit_roster(
    roster_id: str,
    payload: RosterUpsertRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> RosterRead:
    try:
        roster = update_roster(repo, roster_id, payload, actor=_actor(request), request_id=_request_id(request))
    except RosterError as exc:
        raise _to_api_error(exc) from exc
    return RosterRead(status=roster_status(roster, _site_today()), **roster.model_dump())


@router.delete(
    "/api/admin/rosters/{roster_id}",
    response_model=DeleteResponse,
    dependencies=[Depends(require_admin)],
)
def remove_roster(
    roster_id: str,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> DeleteResponse:
    try:
        removed = delete_roster(repo, roster_id, actor=_actor(request), request_id=_request_id(request))
    except RosterError as exc:
        raise _to_api_error(exc) from exc
    return DeleteResponse(ok=True, id=removed.id)


def _filtered_history(
    repo: Repository,
    *,
    from_date: date | None,
    to_date: date | None,
    guard_name: str | None,
    zone_name: str | None,
    checkpoint_name: str | None,
    status: PatrolStatus | None,
    scan_method: ScanMethod | None,
) -> list[PatrolHistory]:
    if from_date is not None and to_date is not None and from_date > to_date:
        raise ApiError(status_code=422, code="INVALID_DATE_RANGE", message="from_date must be on or before to_date.")
    return filter_history(
        repo.patrol_history.load(),
        from_date=from_date,
        to_date=to_date,
        guard_name=guard_name,
        zone_name=zone_name,
        checkpoint_name=checkpoint_name,
        status=status,
        scan_method=scan_method,
    )


@router.get(
    "/api/admin/patrol-history",
    response_model=list[PatrolHistory],
    dependencies=[Depends(require_admin)],
)
def list_patrol_history(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    guard_name: str | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    checkpoint_name: str | None = Query(default=None),
    status: PatrolStatus | None = Query(default=None),
    scan_method: ScanMethod | None = Query(default=None),
    issues_only: bool = Query(default=False),
    min_late_minutes: int = Query(default=0, ge=0),
    repo: Repository = Depends(get_repository),
) -> list[PatrolHistory]:
    rows = _filtered_history(
        repo,
        from_date=from_date,
        to_date=to_date,
        guard_name=guard_name,
        zone_name=zone_name,
        checkpoint_name=checkpoint_name,
        status=status,
        scan_method=scan_method,
    )
    if issues_only:
        rows = late_missed(rows, min_late_minutes=min_late_minutes)
    return rows


@router.post(
    "/api/admin/patrol-history/classify",
    response_model=list[PatrolHistory],
    dependencies=[Depends(require_admin)],
)
def classify_patrol_day(
    payload: ClassifyDayRequest,
    request: Request,
    repo: Repository = Depends(get_repository),
) -> list[PatrolHistory]:
    return record_daily_patrol_history(
        repo,
        payload.date,
        payload.scans,
        replace_existing=payload.replace_existing,
        request_id=_request_id(request),
    )


@router.get(
    "/api/admin/reports/compliance",
    response_model=OutcomeSummaryRead,
    dependencies=[Depends(require_admin)],
)
def report_compliance(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    guard_name: str | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    checkpoint_name: str | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> OutcomeSummaryRead:
    rows = _filtered_history(
        repo,
        from_date=from_date,
        to_date=to_date,
        guard_name=guard_name,
        zone_name=zone_name,
        checkpoint_name=checkpoint_name,
        status=None,
        scan_method=None,
    )
    return summarize_outcomes(rows)


@router.get(
    "/api/admin/reports/trend",
    response_model=list[TrendPointRead],
    dependencies=[Depends(require_admin)],
)
def report_trend(
    last: int = Query(default=7, ge=1, le=366),
    repo: Repository = Depends(get_repository),
) -> list[TrendPointRead]:
    return trend_by_day(repo.patrol_history.load(), last=last)


@router.get(
    "/api/admin/reports/zone-load",
    response_model=list[ZoneLoadRead],
    dependencies=[Depends(require_admin)],
)
def report_zone_load(repo: Repository = Depends(get_repository)) -> list[ZoneLoadRead]:
    return zone_load(repo.schedules.load())


@router.get(
    "/api/admin/reports/location-wise",
    response_model=list[LocationSummaryRead],
    dependencies=[Depends(require_admin)],
)
def report_location_wise(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    checkpoint_name: str | None = Query(default=None),
    status: PatrolStatus | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> list[LocationSummaryRead]:
    rows = _filtered_history(
        repo,
        from_date=from_date,
        to_date=to_date,
        guard_name=None,
        zone_name=zone_name,
        checkpoint_name=checkpoint_name,
        status=status,
        scan_method=None,
    )
    return location_summary(rows)


@router.get(
    "/api/admin/reports/location-wise/export",
    dependencies=[Depends(require_admin)],
)
def export_location_wise(
    request: Request,
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    zone_name: str | None = Query(default=None),
    checkpoint_name: str | None = Query(default=None),
    status: PatrolStatus | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> Response:
    rows = _filtered_history(
        repo,
        from_date=from_date,
        to_date=to_date,
        guard_name=None,
        zone_name=zone_name,
        checkpoint_name=checkpoint_name,
        status=status,
        scan_method=None,
    )
    payload = build_location_wise_xlsx_bytes(
        location_summary(rows),
        rows,
        from_date=from_date,
        to_date=to_date,
    )

    filename_suffix = "all"
    if from_date is not None and to_date is not None:
        filename_suffix = f"{from_date.isoformat()}-{to_date.isoformat()}"

    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="location-wise-{filename_suffix}.xlsx"',
        },
    )


@router.get(
    "/api/admin/dashboard",
    response_model=DashboardRead,
    dependencies=[Depends(require_admin)],
)
def get_dashboard(
    today: date | None = Query(default=None),
    repo: Repository = Depends(get_repository),
) -> DashboardRead:
    return dashboard_summary(repo, today or _site_today())


@router.get(
    "/api/admin/audit-logs",
    response_model=list[AuditLog],
    dependencies=[Depends(require_admin)],
)
def list_audit_logs(
    module: AuditModule | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    repo: Repository = Depends(get_repository),
) -> list[AuditLog]:
    rows = repo.audit_logs.load()
    if module is not None:
        rows = [row for row in rows if row.module == module]
    return rows[:limit]
