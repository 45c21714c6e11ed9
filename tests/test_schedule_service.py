from __future__ import annotations

import unittest
from datetime import date

from guardwise.models import RecordStatus
from guardwise.schemas import ScheduleBatchCreateRequest, ScheduleUpdateRequest
from guardwise.services.schedule_validation import (
    ExistingCheckpointTimeConflict,
    ExistingGuardTimeConflict,
    GuardUnavailable,
)
from guardwise.services.schedules import (
    ScheduleServiceError,
    create_schedule_batch,
    delete_schedule,
    update_schedule,
)
from guardwise.store import (
    AVAILABILITY_STORAGE_KEY,
    CHECKPOINT_STORAGE_KEY,
    GUARD_STORAGE_KEY,
    SCHEDULE_STORAGE_KEY,
    build_memory_repository,
)


def _seeds() -> dict:
    guards = [
        {"id": "g1", "name": "Rahim Uddin", "employee_id": "GRD-001", "assigned_zone": "Main Building"},
        {"id": "g2", "name": "Kamal Hossain", "employee_id": "GRD-002", "status": "inactive"},
        {"id": "g3", "name": "Jamal Ahmed", "employee_id": "GRD-003"},
    ]
    checkpoints = [
        {"id": "c1", "name": "Main Gate", "zone_id": "z1", "zone_name": "Main Building",
         "scan_types": ["nfc"], "tag_id": "NFC-001"},
        {"id": "c2", "name": "Lobby", "zone_id": "z1", "zone_name": "Main Building",
         "scan_types": ["dynamic-qr"], "tag_id": "QR-002"},
        {"id": "c3", "name": "Fire Exit", "zone_id": "z1", "zone_name": "Main Building",
         "scan_types": ["nfc"], "tag_id": "NFC-003", "status": "inactive"},
    ]
    schedules = [
        {"id": "s-existing", "guard_id": "g1", "guard_name": "Rahim Uddin", "checkpoint_id": "c1",
         "checkpoint_name": "Main Gate", "zone_name": "Main Building", "start_date": "2026-02-10",
         "end_date": "2026-02-10", "time_slots": [{"id": "ts-1", "time": "09:00"}], "grace_time_minutes": 10},
    ]
    availability = [
        {"id": "ga1", "guard_id": "g3", "guard_name": "Jamal Ahmed", "type": "training",
         "start_date": "2026-02-12", "end_date": "2026-02-12"},
    ]
    return {
        GUARD_STORAGE_KEY: lambda: guards,
        CHECKPOINT_STORAGE_KEY: lambda: checkpoints,
        SCHEDULE_STORAGE_KEY: lambda: schedules,
        AVAILABILITY_STORAGE_KEY: lambda: availability,
    }


def _batch(guard_id: str, checkpoint_id: str, times: list[str], **overrides) -> ScheduleBatchCreateRequest:  # type: ignore[no-untyped-def]
    fields = {
        "guard_id": guard_id,
        "start_date": date(2026, 2, 10),
        "end_date": date(2026, 2, 10),
        "rows": [{"checkpoint_id": checkpoint_id, "time_slots": [{"time": value} for value in times]}],
    }
    fields.update(overrides)
    return ScheduleBatchCreateRequest(**fields)


class ScheduleBatchServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = build_memory_repository(_seeds())

    def test_same_guard_same_time_on_other_checkpoint_is_rejected(self) -> None:
        with self.assertRaises(ExistingGuardTimeConflict):
            create_schedule_batch(self.repo, _batch("g1", "c2", ["09:00"]), actor="Admin")
        self.assertEqual(len(self.repo.schedules.load()), 1)
        self.assertEqual(self.repo.audit_logs.load(), [])

    def test_shifted_time_is_accepted_and_audited(self) -> None:
        created = create_schedule_batch(self.repo, _batch("g1", "c2", ["09:30"]), actor="Admin")

        self.assertEqual(len(created), 1)
        schedule = created[0]
        self.assertTrue(schedule.id.startswith("s-"))
        self.assertEqual(schedule.checkpoint_name, "Lobby")
        self.assertEqual(schedule.zone_name, "Main Building")
        self.assertEqual(schedule.grace_time_minutes, 10)
        self.assertEqual(schedule.time_slots[0].label, "Visit at 9:30 AM")
        self.assertEqual(len(self.repo.schedules.load()), 2)

        audit = self.repo.audit_logs.load()
        self.assertEqual(len(audit), 1)
        self.assertEqual(audit[0].entity_type, "schedule-bulk")
        self.assertEqual(audit[0].entity_id, schedule.id)
        self.assertEqual(audit[0].summary, "Created 1 schedules for Rahim Uddin from 2026-02-10 to 2026-02-10")

    def test_other_guard_cannot_take_checkpoint_time(self) -> None:
        with self.assertRaises(ExistingCheckpointTimeConflict):
            create_schedule_batch(self.repo, _batch("g3", "c1", ["09:00"]), actor="Admin")

    def test_slots_are_sorted_and_row_grace_wins(self) -> None:
        payload = _batch("g1", "c2", ["18:00", "06:00"], grace_time_minutes=5)
        payload.rows[0].grace_time_minutes = 12

        created = create_schedule_batch(self.repo, payload, actor="Admin")

        self.assertEqual([slot.time for slot in created[0].time_slots], ["06:00", "18:00"])
        self.assertEqual(created[0].grace_time_minutes, 12)

    def test_guard_on_training_is_rejected(self) -> None:
        payload = _batch("g3", "c2", ["10:00"], start_date=date(2026, 2, 11), end_date=date(2026, 2, 13))
        with self.assertRaises(GuardUnavailable) as ctx:
            create_schedule_batch(self.repo, payload, actor="Admin")
        self.assertEqual(ctx.exception.day, date(2026, 2, 12))

    def test_inactive_guard_and_checkpoint_are_rejected(self) -> None:
        with self.assertRaises(ScheduleServiceError) as ctx:
            create_schedule_batch(self.repo, _batch("g2", "c2", ["10:00"]), actor="Admin")
        self.assertEqual(ctx.exception.code, "GUARD_INACTIVE")

        with self.assertRaises(ScheduleServiceError) as ctx:
            create_schedule_batch(self.repo, _batch("g1", "c3", ["10:00"]), actor="Admin")
        self.assertEqual(ctx.exception.code, "CHECKPOINT_INACTIVE")

        with self.assertRaises(ScheduleServiceError) as ctx:
            create_schedule_batch(self.repo, _batch("g1", "c404", ["10:00"]), actor="Admin")
        self.assertEqual(ctx.exception.code, "CHECKPOINT_NOT_FOUND")


class ScheduleEditServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = build_memory_repository(_seeds())
        self.created = create_schedule_batch(self.repo, _batch("g1", "c2", ["10:00"]), actor="Admin")[0]

    def test_update_rejects_time_taken_by_same_guard(self) -> None:
        with self.assertRaises(ExistingGuardTimeConflict):
            update_schedule(
                self.repo,
                self.created.id,
                ScheduleUpdateRequest(time_slots=[{"time": "09:00"}]),
                actor="Admin",
            )

    def test_update_can_deactivate_and_change_grace(self) -> None:
        updated = update_schedule(
            self.repo,
            self.created.id,
            ScheduleUpdateRequest(status=RecordStatus.INACTIVE, grace_time_minutes=3),
            actor="Admin",
        )
        self.assertEqual(updated.status, RecordStatus.INACTIVE)
        self.assertEqual(updated.grace_time_minutes, 3)
        self.assertEqual(self.repo.audit_logs.load()[0].summary, "Updated schedule for Rahim Uddin at Lobby")

    def test_delete_schedule(self) -> None:
        delete_schedule(self.repo, self.created.id, actor="Admin")
        self.assertEqual([schedule.id for schedule in self.repo.schedules.load()], ["s-existing"])

        with self.assertRaises(ScheduleServiceError) as ctx:
            delete_schedule(self.repo, self.created.id, actor="Admin")
        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == "__main__":
    unittest.main()
