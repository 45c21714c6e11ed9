from __future__ import annotations

from typing import Any

from guardwise.settings import get_settings
from guardwise.store import (
    AUDIT_LOG_STORAGE_KEY,
    AVAILABILITY_STORAGE_KEY,
    CHECKPOINT_STORAGE_KEY,
    GUARD_STORAGE_KEY,
    PATROL_HISTORY_STORAGE_KEY,
    ROSTER_STORAGE_KEY,
    SCHEDULE_STORAGE_KEY,
    ZONE_STORAGE_KEY,
    DefaultsFactory,
)

DEMO_CHECKPOINTS_PER_GUARD = 10
BASE_TIME_MINUTES = (6 * 60, 10 * 60, 14 * 60, 18 * 60)
DEMO_DATE_RANGES = (
    ("2026-02-01", "2026-02-07"),
    ("2026-02-08", "2026-02-14"),
    ("2026-02-15", "2026-02-21"),
)


def _guard(
    guard_id: str,
    name: str,
    employee_no: str,
    phone: str,
    status: str,
    created_at: str,
    zone: str | None = None,
) -> dict[str, Any]:
    return {
        "id": guard_id,
        "name": name,
        "employee_id": employee_no,
        "phone": phone,
        "email": f"{name.split()[0].lower()}@madina.com",
        "status": status,
        "assigned_zone": zone,
        "created_at": created_at,
    }


def demo_guards() -> list[dict[str, Any]]:
    return [
        _guard("g1", "Rahim Uddin", "GRD-001", "+880 1712345678", "on-duty", "2025-12-01", "Main Building"),
        _guard("g2", "Kamal Hossain", "GRD-002", "+880 1723456789", "active", "2025-12-05", "Warehouse"),
        _guard("g3", "Jamal Ahmed", "GRD-003", "+880 1734567890", "on-duty", "2025-12-10", "Main Building"),
        _guard("g4", "Saiful Islam", "GRD-004", "+880 1745678901", "active", "2026-01-02", "Parking Area"),
        _guard("g5", "Noor Mohammad", "GRD-005", "+880 1756789012", "inactive", "2026-01-10"),
        _guard("g6", "Faruk Hasan", "GRD-006", "+880 1767890123", "on-duty", "2026-01-15", "Warehouse"),
    ]


def demo_zones() -> list[dict[str, Any]]:
    return [
        {"id": "z1", "name": "Main Building", "description": "Headquarters main building covering all floors",
         "location": "Madina Square, Block A", "latitude": 23.7846, "longitude": 90.4072, "status": "active"},
        {"id": "z2", "name": "Warehouse", "description": "Storage and logistics warehouse area",
         "location": "Madina Square, Block C", "latitude": 23.7857, "longitude": 90.4058, "status": "active"},
        {"id": "z3", "name": "Parking Area", "description": "Vehicle parking and entry/exit gates",
         "location": "Madina Square, Ground Level", "latitude": 23.7839, "longitude": 90.4066, "status": "active"},
        {"id": "z4", "name": "Residential Block", "description": "Staff residential quarters",
         "location": "Madina Square, Block D", "status": "inactive"},
    ]


def _checkpoint(
    checkpoint_id: str,
    name: str,
    zone_id: str,
    zone_name: str,
    scan_types: list[str],
    tag_id: str,
    location: str,
    created_at: str,
    **extra: Any,
) -> dict[str, Any]:
    row = {
        "id": checkpoint_id,
        "name": name,
        "zone_id": zone_id,
        "zone_name": zone_name,
        "scan_types": scan_types,
        "tag_id": tag_id,
        "location": location,
        "status": "active",
        "created_at": created_at,
    }
    row.update(extra)
    return row


def demo_checkpoints() -> list[dict[str, Any]]:
    return [
        _checkpoint(
            "c1", "Main Gate", "z1", "Main Building", ["nfc", "qr"], "NFC-001", "Ground Floor Entrance", "2025-11-15",
            latitude=23.78455,
            longitude=90.40728,
            nfc_config={"payload": "checkpoint:c1|tag:NFC-001", "configured": True,
                        "tag_serial": "04A1B2C3D4", "last_configured_at": "2026-02-01"},
            qr_config={"payload": "checkpoint:c1|tag:NFC-001|zone:Main Building", "size": 220, "dynamic": False,
                       "rotate_every_minutes": 10, "configured": True, "last_generated_at": "2026-02-01"},
        ),
        _checkpoint(
            "c2", "Lobby", "z1", "Main Building", ["dynamic-qr"], "QR-002", "Ground Floor Lobby", "2025-11-15",
            qr_config={"payload": "checkpoint:c2|tag:QR-002|zone:Main Building", "size": 220, "dynamic": True,
                       "rotate_every_minutes": 10, "configured": True, "last_generated_at": "2026-02-01"},
        ),
        _checkpoint(
            "c3", "Server Room", "z1", "Main Building", ["nfc"], "NFC-003", "3rd Floor", "2025-11-20",
            nfc_config={"payload": "checkpoint:c3|tag:NFC-003", "configured": True,
                        "tag_serial": "04D9AA7712", "last_configured_at": "2026-01-29"},
        ),
        _checkpoint("c4", "Rooftop Access", "z1", "Main Building", ["qr"], "QR-004", "8th Floor", "2025-11-20"),
        _checkpoint(
            "c5", "Fire Exit B", "z1", "Main Building", ["nfc"], "NFC-005", "Ground Floor East", "2025-12-01",
            status="inactive",
        ),
        _checkpoint("c6", "Loading Dock", "z2", "Warehouse", ["nfc", "qr"], "NFC-006", "Warehouse Entry", "2025-11-20"),
        _checkpoint("c7", "Storage Hall A", "z2", "Warehouse", ["qr"], "QR-007", "Section A", "2025-11-25"),
        _checkpoint("c8", "Storage Hall B", "z2", "Warehouse", ["nfc"], "NFC-008", "Section B", "2025-11-25"),
        _checkpoint("c9", "Entry Gate", "z3", "Parking Area", ["nfc"], "NFC-009", "Main Entry", "2025-12-01"),
        _checkpoint("c10", "Exit Gate", "z3", "Parking Area", ["qr"], "QR-010", "Main Exit", "2025-12-01"),
        _checkpoint("c11", "Basement Level", "z3", "Parking Area", ["nfc"], "NFC-011", "B1 Parking", "2025-12-05"),
        _checkpoint("c12", "VIP Parking", "z3", "Parking Area", ["qr"], "QR-012", "Ground Level West", "2025-12-05"),
    ]


def _minutes_to_hhmm(total_minutes: int) -> str:
    wrapped = total_minutes % (24 * 60)
    return f"{wrapped // 60:02d}:{wrapped % 60:02d}"


def _demo_slots(guard_index: int, checkpoint_index: int) -> list[dict[str, str]]:
    minute_shift = ((guard_index * 2 + checkpoint_index) % 3) * 5
    return [
        {
            "id": f"ts-{guard_index + 1}-{checkpoint_index + 1}-{slot_index + 1}",
            "time": _minutes_to_hhmm(base + minute_shift),
            "label": f"Round {slot_index + 1}",
        }
        for slot_index, base in enumerate(BASE_TIME_MINUTES)
    ]


def demo_schedules() -> list[dict[str, Any]]:
    active_checkpoints = [row for row in demo_checkpoints() if row["status"] == "active"]
    schedules: list[dict[str, Any]] = []
    for guard_index, guard in enumerate(demo_guards()):
        start_date, end_date = DEMO_DATE_RANGES[guard_index % len(DEMO_DATE_RANGES)]
        for checkpoint_index in range(DEMO_CHECKPOINTS_PER_GUARD):
            checkpoint = active_checkpoints[(guard_index * 2 + checkpoint_index) % len(active_checkpoints)]
            schedules.append(
                {
                    "id": f"s-{guard['id']}-{checkpoint_index + 1}",
                    "guard_id": guard["id"],
                    "guard_name": guard["name"],
                    "checkpoint_id": checkpoint["id"],
                    "checkpoint_name": checkpoint["name"],
                    "zone_name": checkpoint["zone_name"],
                    "start_date": start_date,
                    "end_date": end_date,
                    "time_slots": _demo_slots(guard_index, checkpoint_index),
                    "grace_time_minutes": 8 + ((guard_index + checkpoint_index) % 8),
                    "status": "inactive" if checkpoint_index % 9 == 8 else "active",
                }
            )
    return schedules


def _history(
    history_id: str,
    day: str,
    guard_id: str,
    guard_name: str,
    zone_name: str,
    checkpoint_name: str,
    status: str,
    scan_method: str,
    grace: int,
    **extra: Any,
) -> dict[str, Any]:
    row = {
        "id": history_id,
        "date": day,
        "guard_id": guard_id,
        "guard_name": guard_name,
        "zone_name": zone_name,
        "checkpoint_name": checkpoint_name,
        "status": status,
        "scan_method": scan_method,
        "grace_time_minutes": grace,
    }
    row.update(extra)
    return row


def demo_patrol_history() -> list[dict[str, Any]]:
    return [
        _history("p1", "2026-02-01", "g1", "Rahim Uddin", "Main Building", "Main Gate", "completed", "nfc", 10),
        _history("p2", "2026-02-01", "g1", "Rahim Uddin", "Main Building", "Lobby", "late", "qr", 10,
                 late_by_minutes=7),
        _history("p3", "2026-02-02", "g2", "Kamal Hossain", "Warehouse", "Loading Dock", "completed", "nfc", 12),
        _history("p4", "2026-02-02", "g6", "Faruk Hasan", "Warehouse", "Storage Hall A", "missed", "qr", 15),
        _history("p5", "2026-02-03", "g3", "Jamal Ahmed", "Main Building", "Server Room", "completed", "nfc", 8),
        _history("p5b", "2026-02-03", "g3", "Jamal Ahmed", "Main Building", "Lobby", "skipped", "qr", 8,
                 skip_reason="training"),
        _history("p6", "2026-02-03", "g4", "Saiful Islam", "Parking Area", "Entry Gate", "late", "nfc", 10,
                 late_by_minutes=4),
        _history("p7", "2026-02-04", "g4", "Saiful Islam", "Parking Area", "VIP Parking", "completed", "qr", 10),
        _history("p7b", "2026-02-04", "g2", "Kamal Hossain", "Warehouse", "Storage Hall B", "skipped", "nfc", 12,
                 skip_reason="leave"),
        _history("p8", "2026-02-05", "g1", "Rahim Uddin", "Main Building", "Main Gate", "completed", "qr", 10),
        _history("p9", "2026-02-06", "g2", "Kamal Hossain", "Warehouse", "Storage Hall B", "missed", "nfc", 12),
    ]


def demo_availability() -> list[dict[str, Any]]:
    return [
        {"id": "ga1", "guard_id": "g2", "guard_name": "Kamal Hossain", "mode": "date-range", "type": "leave",
         "start_date": "2026-02-04", "end_date": "2026-02-06", "note": "Annual leave"},
        {"id": "ga2", "guard_id": "g3", "guard_name": "Jamal Ahmed", "mode": "date-range", "type": "training",
         "start_date": "2026-02-03", "end_date": "2026-02-03", "note": "Safety drill"},
        {"id": "ga3", "guard_id": "g4", "guard_name": "Saiful Islam", "mode": "weekly-off", "type": "off-roster",
         "start_date": "2026-01-01", "end_date": "2026-12-31", "weekdays": [5], "note": "Friday weekly off"},
    ]


def demo_rosters() -> list[dict[str, Any]]:
    return [
        {"id": "r1", "title": "Main Building Friday Off", "zone_name": "Main Building", "guard_ids": ["g1", "g3"],
         "day_off_weekdays": [5], "effective_from": "2026-01-01", "effective_to": "2026-12-31",
         "created_at": "2026-01-01T09:00:00Z"},
        {"id": "r2", "title": "Warehouse Sunday Off", "zone_name": "Warehouse", "guard_ids": ["g2", "g6"],
         "day_off_weekdays": [0], "effective_from": "2026-01-01", "effective_to": "2026-12-31",
         "created_at": "2026-01-02T10:15:00Z"},
        {"id": "r3", "title": "Parking Split Off Days", "zone_name": "Parking Area", "guard_ids": ["g4"],
         "day_off_weekdays": [2, 6], "effective_from": "2026-02-01", "effective_to": "2026-12-31",
         "created_at": "2026-02-01T08:30:00Z"},
    ]


def demo_audit_logs() -> list[dict[str, Any]]:
    return [
        {"id": "al1", "actor": "Admin", "module": "schedules", "action": "update", "entity_type": "schedule",
         "entity_id": "s-g1-2", "summary": "Updated grace time and visit slots for Rahim Uddin at Lobby",
         "created_at": "2026-02-06T09:20:00Z"},
        {"id": "al2", "actor": "Admin", "module": "checkpoints", "action": "update", "entity_type": "checkpoint",
         "entity_id": "c2", "summary": "Configured Dynamic QR for Lobby", "created_at": "2026-02-06T10:05:00Z"},
        {"id": "al3", "actor": "Admin", "module": "alerts", "action": "toggle", "entity_type": "notification-type",
         "entity_id": "nt-5", "summary": "Enabled Dynamic QR Issue notification type",
         "created_at": "2026-02-06T11:40:00Z"},
        {"id": "al4", "actor": "Admin", "module": "users", "action": "create", "entity_type": "user",
         "entity_id": "u4", "summary": "Created management user Farhana Karim", "created_at": "2026-02-06T12:15:00Z"},
    ]


def demo_seeds() -> dict[str, DefaultsFactory]:
    return {
        GUARD_STORAGE_KEY: demo_guards,
        ZONE_STORAGE_KEY: demo_zones,
        CHECKPOINT_STORAGE_KEY: demo_checkpoints,
        SCHEDULE_STORAGE_KEY: demo_schedules,
        AVAILABILITY_STORAGE_KEY: demo_availability,
        ROSTER_STORAGE_KEY: demo_rosters,
        PATROL_HISTORY_STORAGE_KEY: demo_patrol_history,
        AUDIT_LOG_STORAGE_KEY: demo_audit_logs,
    }


def configured_seeds() -> dict[str, DefaultsFactory]:
    if not get_settings().seed_demo_data:
        return {}
    return demo_seeds()
