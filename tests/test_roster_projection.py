from __future__ import annotations

import unittest
from datetime import date

from guardwise.models import AvailabilityMode, AvailabilityType
from guardwise.schemas import Guard, GuardRoster, RosterAvailability, RosterUpsertRequest
from guardwise.seed import demo_seeds
from guardwise.services.availability import (
    is_unavailable,
    read_availability,
    read_manual_availability,
    write_manual_availability,
)
from guardwise.services.rosters import (
    RosterError,
    create_roster,
    delete_roster,
    project_rosters,
    roster_status,
    update_roster,
)
from guardwise.store import build_memory_repository


def _roster(**overrides) -> GuardRoster:  # type: ignore[no-untyped-def]
    fields = {
        "id": "r9",
        "title": "Night Team Off",
        "zone_name": "Warehouse",
        "guard_ids": ["g1", "g-unknown"],
        "day_off_weekdays": [1, 3],
        "effective_from": date(2026, 3, 1),
        "effective_to": date(2026, 3, 31),
    }
    fields.update(overrides)
    return GuardRoster(**fields)


class RosterProjectionTests(unittest.TestCase):
    def test_projection_emits_one_weekly_off_row_per_member(self) -> None:
        guards = [Guard(id="g1", name="Rahim Uddin", employee_id="GRD-001")]

        rows = project_rosters([_roster()], guards)

        self.assertEqual([row.id for row in rows], ["roster-r9-g1", "roster-r9-g-unknown"])
        first = rows[0]
        self.assertEqual(first.mode, AvailabilityMode.WEEKLY_OFF)
        self.assertEqual(first.type, AvailabilityType.OFF_ROSTER)
        self.assertEqual(first.weekdays, [1, 3])
        self.assertEqual(first.note, "roster:r9:Night Team Off")
        self.assertEqual(first.guard_name, "Rahim Uddin")
        self.assertEqual(rows[1].guard_name, "g-unknown")

    def test_projection_is_deterministic(self) -> None:
        guards = [Guard(id="g1", name="Rahim Uddin", employee_id="GRD-001")]
        rosters = [_roster(), _roster(id="r10", guard_ids=["g1"])]

        self.assertEqual(project_rosters(rosters, guards), project_rosters(rosters, guards))

    def test_roster_status(self) -> None:
        roster = _roster()
        self.assertEqual(roster_status(roster, date(2026, 2, 28)), "upcoming")
        self.assertEqual(roster_status(roster, date(2026, 3, 15)), "active")
        self.assertEqual(roster_status(roster, date(2026, 4, 1)), "expired")


class RosterServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = build_memory_repository(demo_seeds())

    def _payload(self, **overrides) -> RosterUpsertRequest:  # type: ignore[no-untyped-def]
        fields = {
            "title": "Parking Monday Off",
            "zone_name": "Parking Area",
            "guard_ids": ["g4", "g4"],
            "day_off_weekdays": [1],
            "effective_from": date(2026, 3, 1),
            "effective_to": date(2026, 3, 31),
        }
        fields.update(overrides)
        return RosterUpsertRequest(**fields)

    def test_merged_view_contains_manual_and_roster_rows(self) -> None:
        records = read_availability(self.repo)
        ids = {record.id for record in records}

        self.assertIn("ga1", ids)
        self.assertIn("roster-r1-g1", ids)
        self.assertIn("roster-r2-g6", ids)

    def test_seed_friday_off_blocks_guard(self) -> None:
        records = read_availability(self.repo)
        hit = is_unavailable(records, "g1", date(2026, 2, 6))

        self.assertIsNotNone(hit)
        assert hit is not None
        self.assertEqual(hit.id, "roster-r1-g1")
        self.assertIsNone(is_unavailable(records, "g1", date(2026, 2, 7)))

    def test_create_roster_is_visible_on_next_read(self) -> None:
        self.assertIsNone(is_unavailable(read_availability(self.repo), "g4", date(2026, 3, 2)))

        roster = create_roster(self.repo, self._payload(), actor="Admin")

        self.assertEqual(roster.guard_ids, ["g4"])
        hit = is_unavailable(read_availability(self.repo), "g4", date(2026, 3, 2))
        self.assertIsNotNone(hit)
        assert hit is not None
        self.assertEqual(hit.id, f"roster-{roster.id}-g4")
        self.assertEqual(self.repo.audit_logs.load()[0].entity_type, "roster")

    def test_update_and_delete_roster(self) -> None:
        roster = create_roster(self.repo, self._payload(), actor="Admin")

        updated = update_roster(self.repo, roster.id, self._payload(day_off_weekdays=[3, 2, 3]), actor="Admin")
        self.assertEqual(updated.day_off_weekdays, [2, 3])
        self.assertEqual(updated.created_at, roster.created_at)

        delete_roster(self.repo, roster.id, actor="Admin")
        ids = {record.id for record in read_availability(self.repo)}
        self.assertNotIn(f"roster-{roster.id}-g4", ids)

    def test_create_roster_validation(self) -> None:
        cases = [
            (self._payload(title="  "), "TITLE_REQUIRED"),
            (self._payload(zone_name=""), "ZONE_REQUIRED"),
            (self._payload(day_off_weekdays=[]), "DAY_OFF_REQUIRED"),
            (self._payload(guard_ids=[]), "GUARDS_REQUIRED"),
            (self._payload(effective_from=date(2026, 4, 1)), "INVALID_DATE_RANGE"),
            (self._payload(guard_ids=["ghost"]), "GUARD_NOT_FOUND"),
        ]
        for payload, code in cases:
            with self.subTest(code=code):
                with self.assertRaises(RosterError) as ctx:
                    create_roster(self.repo, payload, actor="Admin")
                self.assertEqual(ctx.exception.code, code)

    def test_writes_never_persist_roster_rows_as_manual(self) -> None:
        merged = read_availability(self.repo)
        write_manual_availability(self.repo, merged)

        manual = read_manual_availability(self.repo)
        self.assertTrue(all(not record.id.startswith("roster-") for record in manual))
        self.assertFalse(any(isinstance(record, RosterAvailability) for record in self.repo.availability.load()))


if __name__ == "__main__":
    unittest.main()
