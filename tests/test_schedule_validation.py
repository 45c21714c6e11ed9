from __future__ import annotations

import unittest
from datetime import date

from guardwise.models import AvailabilityMode, AvailabilityType, RecordStatus
from guardwise.schemas import ManualAvailability, Schedule, TimeSlot
from guardwise.services.schedule_validation import (
    DuplicateGuardTime,
    ExistingCheckpointTimeConflict,
    ExistingGuardTimeConflict,
    GuardUnavailable,
    IncompleteRow,
    InvalidDateRange,
    ProposalRow,
    SchedulePlanProposal,
    format_12h,
    parse_hhmm,
    ranges_overlap,
    validate_batch,
    validate_schedule_edit,
)


def _schedule(schedule_id: str, guard_id: str, checkpoint_id: str, times: list[str], **overrides) -> Schedule:  # type: ignore[no-untyped-def]
    fields = {
        "id": schedule_id,
        "guard_id": guard_id,
        "guard_name": guard_id.upper(),
        "checkpoint_id": checkpoint_id,
        "checkpoint_name": checkpoint_id.upper(),
        "zone_name": "Main Building",
        "start_date": date(2026, 2, 1),
        "end_date": date(2026, 2, 7),
        "time_slots": [TimeSlot(id=f"ts-{schedule_id}-{index}", time=value) for index, value in enumerate(times)],
        "grace_time_minutes": 10,
    }
    fields.update(overrides)
    return Schedule(**fields)


def _proposal(rows: list[ProposalRow], **overrides) -> SchedulePlanProposal:  # type: ignore[no-untyped-def]
    fields = {
        "guard_id": "g1",
        "guard_name": "Rahim Uddin",
        "start_date": date(2026, 2, 3),
        "end_date": date(2026, 2, 5),
        "rows": rows,
    }
    fields.update(overrides)
    return SchedulePlanProposal(**fields)


class TimeHelperTests(unittest.TestCase):
    def test_parse_hhmm(self) -> None:
        self.assertEqual(parse_hhmm("09:30"), (9, 30))
        with self.assertRaises(ValueError):
            parse_hhmm("24:00")
        with self.assertRaises(ValueError):
            parse_hhmm("nine")

    def test_format_12h(self) -> None:
        self.assertEqual(format_12h("00:05"), "12:05 AM")
        self.assertEqual(format_12h("09:00"), "9:00 AM")
        self.assertEqual(format_12h("12:00"), "12:00 PM")
        self.assertEqual(format_12h("18:45"), "6:45 PM")

    def test_ranges_overlap_is_inclusive(self) -> None:
        self.assertTrue(ranges_overlap(date(2026, 2, 1), date(2026, 2, 7), date(2026, 2, 7), date(2026, 2, 9)))
        self.assertFalse(ranges_overlap(date(2026, 2, 1), date(2026, 2, 7), date(2026, 2, 8), date(2026, 2, 9)))


class ValidateBatchTests(unittest.TestCase):
    def test_accepts_non_conflicting_proposal(self) -> None:
        existing = [_schedule("s1", "g1", "c1", ["09:00"])]
        validate_batch(existing, [], _proposal([ProposalRow(checkpoint_id="c2", times=["09:30", "14:00"])]))

    def test_rejects_inverted_range_first(self) -> None:
        proposal = _proposal([], start_date=date(2026, 2, 9), end_date=date(2026, 2, 1))
        with self.assertRaises(InvalidDateRange) as ctx:
            validate_batch([], [], proposal)
        self.assertEqual(ctx.exception.status_code, 422)

    def test_rejects_guard_on_leave_before_row_checks(self) -> None:
        leave = ManualAvailability(
            id="ga1",
            guard_id="g1",
            guard_name="Rahim Uddin",
            type=AvailabilityType.LEAVE,
            start_date=date(2026, 2, 4),
            end_date=date(2026, 2, 4),
        )
        with self.assertRaises(GuardUnavailable) as ctx:
            validate_batch([], [leave], _proposal([]))

        self.assertEqual(ctx.exception.day, date(2026, 2, 4))
        self.assertEqual(ctx.exception.details()["record_id"], "ga1")
        self.assertIn("Leave", ctx.exception.message)

    def test_weekly_off_outside_range_weekday_does_not_block(self) -> None:
        # 2026-02-03..05 is Tue..Thu, Friday off never falls inside.
        off = ManualAvailability(
            id="ga3",
            guard_id="g1",
            guard_name="Rahim Uddin",
            mode=AvailabilityMode.WEEKLY_OFF,
            type=AvailabilityType.OFF_ROSTER,
            start_date=date(2026, 1, 1),
            end_date=date(2026, 12, 31),
            weekdays=[5],
        )
        validate_batch([], [off], _proposal([ProposalRow(checkpoint_id="c1", times=["09:00"])]))

    def test_rejects_empty_and_incomplete_rows(self) -> None:
        with self.assertRaises(IncompleteRow) as ctx:
            validate_batch([], [], _proposal([]))
        self.assertEqual(ctx.exception.row_index, 0)

        with self.assertRaises(IncompleteRow) as ctx:
            validate_batch(
                [],
                [],
                _proposal([ProposalRow(checkpoint_id="c1", times=["09:00"]), ProposalRow(checkpoint_id="", times=["10:00"])]),
            )
        self.assertEqual(ctx.exception.row_index, 1)

        with self.assertRaises(IncompleteRow):
            validate_batch([], [], _proposal([ProposalRow(checkpoint_id="c1", times=[])]))

    def test_rejects_same_time_twice_for_guard(self) -> None:
        rows = [
            ProposalRow(checkpoint_id="c1", times=["09:00", "14:00"]),
            ProposalRow(checkpoint_id="c2", times=["14:00"]),
        ]
        with self.assertRaises(DuplicateGuardTime) as ctx:
            validate_batch([], [], _proposal(rows))
        self.assertEqual(ctx.exception.times, ["14:00"])
        self.assertIn("2:00 PM", ctx.exception.message)

    def test_rejects_guard_time_clash_with_existing_schedule(self) -> None:
        existing = [_schedule("s1", "g1", "c1", ["09:00"])]
        with self.assertRaises(ExistingGuardTimeConflict) as ctx:
            validate_batch(existing, [], _proposal([ProposalRow(checkpoint_id="c2", times=["09:00"])]))
        self.assertEqual(ctx.exception.details(), {"times": ["09:00"]})

    def test_rejects_checkpoint_time_taken_by_another_guard(self) -> None:
        existing = [_schedule("s1", "g2", "c1", ["09:00"])]
        with self.assertRaises(ExistingCheckpointTimeConflict) as ctx:
            validate_batch(existing, [], _proposal([ProposalRow(checkpoint_id="c1", times=["09:00"], checkpoint_name="Main Gate")]))
        self.assertEqual(ctx.exception.checkpoint_id, "c1")
        self.assertIn("Main Gate", ctx.exception.message)

    def test_ignores_inactive_and_non_overlapping_schedules(self) -> None:
        existing = [
            _schedule("s1", "g1", "c1", ["09:00"], status=RecordStatus.INACTIVE),
            _schedule("s2", "g1", "c1", ["09:00"], start_date=date(2026, 2, 8), end_date=date(2026, 2, 14)),
        ]
        validate_batch(existing, [], _proposal([ProposalRow(checkpoint_id="c1", times=["09:00"])]))

    def test_availability_is_checked_before_existing_conflicts(self) -> None:
        existing = [_schedule("s1", "g1", "c1", ["09:00"])]
        leave = ManualAvailability(
            id="ga1",
            guard_id="g1",
            guard_name="Rahim Uddin",
            type=AvailabilityType.TRAINING,
            start_date=date(2026, 2, 5),
            end_date=date(2026, 2, 5),
        )
        with self.assertRaises(GuardUnavailable):
            validate_batch(existing, [leave], _proposal([ProposalRow(checkpoint_id="c1", times=["09:00"])]))


class ValidateScheduleEditTests(unittest.TestCase):
    def test_edit_does_not_conflict_with_itself(self) -> None:
        current = _schedule("s1", "g1", "c1", ["09:00", "14:00"])
        validate_schedule_edit([current], current)

    def test_edit_detects_clash_with_other_schedule(self) -> None:
        other = _schedule("s2", "g1", "c2", ["14:00"])
        current = _schedule("s1", "g1", "c1", ["09:00", "14:00"])
        with self.assertRaises(ExistingGuardTimeConflict):
            validate_schedule_edit([current, other], current)

    def test_deactivating_skips_existing_checks(self) -> None:
        other = _schedule("s2", "g1", "c2", ["14:00"])
        current = _schedule("s1", "g1", "c1", ["14:00"], status=RecordStatus.INACTIVE)
        validate_schedule_edit([current, other], current)

    def test_edit_rejects_duplicate_times(self) -> None:
        current = _schedule("s1", "g1", "c1", ["09:00", "09:00"])
        with self.assertRaises(DuplicateGuardTime):
            validate_schedule_edit([], current)


if __name__ == "__main__":
    unittest.main()
