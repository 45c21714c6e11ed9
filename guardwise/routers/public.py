import time

from fastapi import APIRouter, Depends

from guardwise.dependencies import get_repository
from guardwise.errors import ApiError
from guardwise.models import RecordStatus
from guardwise.schemas import QrDisplayRead
from guardwise.services.checkpoints import CheckpointError, get_checkpoint
from guardwise.services.qr_rotation import checkpoint_display_state
from guardwise.settings import get_settings
from guardwise.store import Repository

router = APIRouter(tags=["public"])


@router.get("/api/public/checkpoints/{checkpoint_id}/display", response_model=QrDisplayRead)
def checkpoint_display(
    checkpoint_id: str,
    repo: Repository = Depends(get_repository),
) -> QrDisplayRead:
    try:
        checkpoint = get_checkpoint(repo, checkpoint_id)
    except CheckpointError as exc:
        raise ApiError(status_code=exc.status_code, code=exc.code, message=exc.message) from exc
    if checkpoint.status != RecordStatus.ACTIVE:
        raise ApiError(status_code=404, code="CHECKPOINT_NOT_FOUND", message="Checkpoint not found")
    return checkpoint_display_state(checkpoint, int(time.time() * 1000), get_settings())
