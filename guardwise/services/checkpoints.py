from __future__ import annotations

from datetime import date
from uuid import uuid4

from guardwise.audit import log_audit
from guardwise.models import AuditAction, AuditModule
from guardwise.schemas import Checkpoint, CheckpointUpsertRequest
from guardwise.store import Repository


class CheckpointError(Exception):
    def __init__(self, *, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def get_checkpoint(repo: Repository, checkpoint_id: str) -> Checkpoint:
    for checkpoint in repo.checkpoints.load():
        if checkpoint.id == checkpoint_id:
            return checkpoint
    raise CheckpointError(status_code=404, code="CHECKPOINT_NOT_FOUND", message="Checkpoint not found")


def upsert_checkpoint(
    repo: Repository,
    payload: CheckpointUpsertRequest,
    *,
    actor: str,
    request_id: str | None = None,
) -> Checkpoint:
    zone = next((item for item in repo.zones.load() if item.id == payload.zone_id), None)
    if zone is None:
        raise CheckpointError(status_code=404, code="ZONE_NOT_FOUND", message="Zone not found")

    checkpoints = repo.checkpoints.load()
    current = next((item for item in checkpoints if payload.id and item.id == payload.id), None)
    if payload.id and current is None:
        raise CheckpointError(status_code=404, code="CHECKPOINT_NOT_FOUND", message="Checkpoint not found")

    fields = payload.model_dump(exclude={"id"})
    fields["zone_name"] = zone.name
    if current is not None:
        checkpoint = Checkpoint.model_validate({**current.model_dump(), **fields})
        next_checkpoints = [checkpoint if item.id == current.id else item for item in checkpoints]
        action = AuditAction.UPDATE
        summary = f"Updated checkpoint {checkpoint.name} in {checkpoint.zone_name}"
    else:
        checkpoint = Checkpoint.model_validate({"id": f"cp-{uuid4().hex[:12]}", "created_at": date.today(), **fields})
        next_checkpoints = [*checkpoints, checkpoint]
        action = AuditAction.CREATE
        summary = f"Created checkpoint {checkpoint.name} in {checkpoint.zone_name}"
    repo.checkpoints.save(next_checkpoints)
    log_audit(
        repo,
        actor=actor,
        module=AuditModule.CHECKPOINTS,
        action=action,
        entity_type="checkpoint",
        entity_id=checkpoint.id,
        summary=summary,
        request_id=request_id,
    )
    return checkpoint
