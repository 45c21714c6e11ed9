from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from guardwise.models import AuditAction, AuditModule
from guardwise.schemas import AuditLog
from guardwise.store import Repository

logger = logging.getLogger("guardwise.audit")


def log_audit(
    repo: Repository,
    *,
    actor: str,
    module: AuditModule,
    action: AuditAction,
    entity_type: str,
    entity_id: str,
    summary: str,
    created_at: datetime | None = None,
    request_id: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        id=f"audit-{uuid4()}",
        actor=actor,
        module=module,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        created_at=created_at or datetime.now(timezone.utc),
    )
    try:
        repo.audit_logs.save([entry, *repo.audit_logs.load()])
    except Exception:
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "module": module.value,
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )
        return entry

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "actor": actor,
            "module": module.value,
            "action": action.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "summary": summary,
        },
    )
    return entry
