from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote, urlencode

from guardwise.models import ScanType
from guardwise.schemas import Checkpoint, QrDisplayRead
from guardwise.settings import Settings

TOKEN_SEPARATOR = "|token:"


def _interval_ms(rotate_minutes: int) -> int:
    return max(1, rotate_minutes) * 60 * 1000


def current_token(now_ms: int, rotate_minutes: int) -> int:
    return math.floor(now_ms / _interval_ms(rotate_minutes))


def seconds_until_next_rotation(now_ms: int, rotate_minutes: int) -> int:
    interval = _interval_ms(rotate_minutes)
    next_at = math.ceil(now_ms / interval) * interval
    return max(0, math.floor((next_at - now_ms) / 1000))


def build_scan_payload(base: str, dynamic: bool, token: int) -> str:
    if dynamic:
        return f"{base}{TOKEN_SEPARATOR}{token}"
    return base


def base_payload(checkpoint: Checkpoint) -> str:
    if checkpoint.qr_config is not None and checkpoint.qr_config.payload:
        return checkpoint.qr_config.payload
    return f"checkpoint:{checkpoint.id}|tag:{checkpoint.tag_id}|zone:{checkpoint.zone_name}"


def is_dynamic(checkpoint: Checkpoint) -> bool:
    if checkpoint.qr_config is not None and checkpoint.qr_config.dynamic is not None:
        return checkpoint.qr_config.dynamic
    return ScanType.DYNAMIC_QR in checkpoint.scan_types


def rotate_minutes_for(checkpoint: Checkpoint, default: int) -> int:
    if checkpoint.qr_config is not None and checkpoint.qr_config.rotate_every_minutes:
        return checkpoint.qr_config.rotate_every_minutes
    return default


def qr_image_url(endpoint: str, payload: str, size: int) -> str:
    query = urlencode({"size": f"{size}x{size}", "data": payload}, quote_via=quote)
    return f"{endpoint}?{query}"


@dataclass(frozen=True)
class RotationWindow:
    token: int
    seconds_left: int
    cycle_seconds: int
    progress_percent: float


def rotation_window(now_ms: int, rotate_minutes: int) -> RotationWindow:
    seconds_left = seconds_until_next_rotation(now_ms, rotate_minutes)
    cycle_seconds = max(1, rotate_minutes * 60)
    passed = cycle_seconds - seconds_left
    progress = max(0.0, min(100.0, passed / cycle_seconds * 100))
    return RotationWindow(
        token=current_token(now_ms, rotate_minutes),
        seconds_left=seconds_left,
        cycle_seconds=cycle_seconds,
        progress_percent=round(progress, 2),
    )


def checkpoint_display_state(checkpoint: Checkpoint, now_ms: int, settings: Settings) -> QrDisplayRead:
    """Everything a QR screen needs to render the checkpoint at ``now_ms``.

    The admin preview and the public display both call this, so the two
    always show the same token for the same instant.
    """
    dynamic = is_dynamic(checkpoint)
    rotate_minutes = rotate_minutes_for(checkpoint, settings.default_qr_rotate_minutes)
    window = rotation_window(now_ms, rotate_minutes)
    payload = build_scan_payload(base_payload(checkpoint), dynamic, window.token)
    configured_size = checkpoint.qr_config.size if checkpoint.qr_config is not None else 0
    size = max(settings.qr_display_min_size, configured_size or settings.qr_display_min_size)

    return QrDisplayRead(
        checkpoint_id=checkpoint.id,
        checkpoint_name=checkpoint.name,
        zone_name=checkpoint.zone_name,
        location=checkpoint.location,
        has_qr=ScanType.QR in checkpoint.scan_types or ScanType.DYNAMIC_QR in checkpoint.scan_types,
        is_dynamic=dynamic,
        rotate_every_minutes=rotate_minutes,
        token=window.token if dynamic else None,
        seconds_left=window.seconds_left,
        cycle_seconds=window.cycle_seconds,
        progress_percent=window.progress_percent,
        payload=payload,
        qr_image_url=qr_image_url(settings.qr_image_endpoint, payload, size),
        generated_at=datetime.fromtimestamp(now_ms / 1000, timezone.utc),
    )


def verify_scanned_payload(
    checkpoint: Checkpoint,
    scanned: str,
    now_ms: int,
    grace_slots: int = 1,
    default_rotate_minutes: int = 10,
) -> bool:
    base = base_payload(checkpoint)
    if not is_dynamic(checkpoint):
        return scanned == base

    prefix, separator, token_str = scanned.rpartition(TOKEN_SEPARATOR)
    if not separator or prefix != base:
        return False
    try:
        token = int(token_str)
    except ValueError:
        return False

    current = current_token(now_ms, rotate_minutes_for(checkpoint, default_rotate_minutes))
    return current - max(0, grace_slots) <= token <= current
