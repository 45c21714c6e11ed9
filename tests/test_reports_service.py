from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from io import BytesIO

from openpyxl import load_workbook

from guardwise.models import PatrolStatus, RecordStatus, ScanMethod
from guardwise.schemas import Schedule, TimeSlot
from guardwise.seed import demo_seeds
from guardwise.services.exports import build_location_wise_xlsx_bytes
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
from guardwise.store import build_memory_repository


def _schedule(schedule_id: str, guard_name: str, zone_name: str, slots: int, **overrides) -> Schedule:  # type: ignore[no-untyped-def]
    fields = {
        "id": schedule_id,
        "guard_id": guard_name.lower(),
        "guard_name": guard_name,
        "checkpoint_id": f"c-{schedule_id}",
        "checkpoint_name": f"Checkpoint {schedule_id}",
        "zone_name": zone_name,
        "start_date": date(2026, 2, 1),
        "end_date": date(2026, 2, 7),
        "time_slots": [TimeSlot(id=f"{schedule_id}-{i}", time=f"{8 + i:02d}:00") for i in range(slots)],
    }
    fields.update(overrides)
    return Schedule(**fields)


class ScheduleReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.schedules = [
            _schedule("s1", "Zara", "Warehouse", 2),
            _schedule("s2", "adam", "Main Building", 4),
            _schedule("s3", "Zara", "Main Building", 1, start_date=date(2026, 2, 8), end_date=date(2026, 2, 14)),
            _schedule("s4", "adam", "Warehouse", 3, status=RecordStatus.INACTIVE),
        ]

    def test_empty_inputs(self) -> None:
        self.assertEqual(group_schedules_by_guard([]), [])
        self.assertEqual(zone_load([]), [])
        self.assertEqual(location_summary([]), [])
        self.assertEqual(schedule_stats([]).assignments, 0)

    def test_group_by_guard_sorts_case_insensitively(self) -> None:
        groups = group_schedules_by_guard(self.schedules)

        self.assertEqual([group.guard_name for group in groups], ["adam", "Zara"])
        self.assertEqual(groups[0].checkpoint_count, 2)
        self.assertEqual(groups[0].daily_visits, 7)
        self.assertEqual(groups[1].zone_names, ["Warehouse", "Main Building"])

    def test_group_by_range(self) -> None:
        groups = group_schedules_by_range(self.schedules)
        self.assertEqual([(group.start_date, len(group.schedules)) for group in groups], [
            (date(2026, 2, 1), 3),
            (date(2026, 2, 8), 1),
        ])

    def test_zone_load_counts_active_schedules_only(self) -> None:
        load = zone_load(self.schedules)
        self.assertEqual([(row.zone_name, row.visits, row.checkpoints) for row in load], [
            ("Main Building", 5, 2),
            ("Warehouse", 2, 1),
        ])

    def test_filter_and_stats(self) -> None:
        rows = filter_schedules(self.schedules, search="ware", status=RecordStatus.ACTIVE)
        self.assertEqual([row.id for row in rows], ["s1"])

        stats = schedule_stats(self.schedules)
        self.assertEqual(stats.assignments, 4)
        self.assertEqual(stats.guards, 2)
        self.assertEqual(stats.active, 3)
        self.assertEqual(stats.visits, 10)


class HistoryReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = build_memory_repository(demo_seeds())
        self.history = self.repo.patrol_history.load()

    def test_filter_history_by_range_and_method(self) -> None:
        rows = filter_history(
            self.history,
            from_date=date(2026, 2, 2),
            to_date=date(2026, 2, 4),
            scan_method=ScanMethod.QR,
        )
        self.assertEqual([row.id for row in rows], ["p4", "p5b", "p7"])

    def test_late_missed_threshold(self) -> None:
        rows = late_missed(self.history, min_late_minutes=5)
        self.assertEqual([row.id for row in rows], ["p2", "p4", "p5b", "p7b", "p9"])

    def test_location_summary_buckets(self) -> None:
        summary = {(row.zone_name, row.checkpoint_name): row for row in location_summary(self.history)}

        main_gate = summary[("Main Building", "Main Gate")]
        self.assertEqual((main_gate.total, main_gate.completed), (2, 2))
        hall_b = summary[("Warehouse", "Storage Hall B")]
        self.assertEqual((hall_b.total, hall_b.missed, hall_b.skipped), (2, 1, 1))

    def test_dashboard_summary_for_a_friday(self) -> None:
        dashboard = dashboard_summary(
            self.repo,
            date(2026, 2, 6),
            now=datetime(2026, 2, 6, 20, 0, tzinfo=timezone.utc),
        )

        self.assertEqual(dashboard.guards.active, 2)
        self.assertEqual(dashboard.guards.on_duty, 3)
        self.assertEqual(dashboard.guards.inactive, 1)
        self.assertEqual(dashboard.leave_today, 1)
        self.assertEqual(dashboard.off_roster_today, 3)
        self.assertEqual(dashboard.dynamic_qr_checkpoints, 1)
        self.assertEqual(dashboard.nfc_configured_checkpoints, 2)
        self.assertEqual(dashboard.audit_last_24h, 4)
        self.assertEqual(len(dashboard.patrol_trend), 6)
        self.assertEqual(dashboard.patrol_summary.actionable, 9)
        self.assertEqual(dashboard.patrol_summary.compliance, 56)
        self.assertEqual(len(dashboard.recent_audit), 4)


class LocationWiseExportTests(unittest.TestCase):
    def test_export_writes_summary_and_visit_sheets(self) -> None:
        history = build_memory_repository(demo_seeds()).patrol_history.load()
        rows = location_summary(history)

        payload = build_location_wise_xlsx_bytes(
            rows,
            history,
            from_date=date(2026, 2, 1),
            to_date=date(2026, 2, 6),
            generated_at=datetime(2026, 2, 7, 8, 0, tzinfo=timezone.utc),
        )

        workbook = load_workbook(BytesIO(payload))
        self.assertEqual(workbook.sheetnames, ["Location Wise", "Visits"])
        summary_ws = workbook["Location Wise"]
        self.assertEqual(summary_ws.cell(row=1, column=1).value, "Location-wise Patrol Report")
        self.assertEqual(summary_ws.cell(row=6, column=2).value, 56)
        total_row = 8 + len(rows) + 1
        self.assertEqual(summary_ws.cell(row=total_row, column=1).value, "Total")
        self.assertEqual(summary_ws.cell(row=total_row, column=3).value, len(history))

        visits_ws = workbook["Visits"]
        self.assertEqual(visits_ws.max_row, len(history) + 1)
        statuses = {visits_ws.cell(row=i, column=5).value for i in range(2, visits_ws.max_row + 1)}
        self.assertEqual(statuses, {status.value for status in PatrolStatus})


if __name__ == "__main__":
    unittest.main()
