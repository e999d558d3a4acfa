import unittest
from datetime import date, datetime, timedelta

from komedi.reminders.contracts import KIND_IMMEDIATE, KIND_NEXT_DAY, KIND_NORMAL, Medication
from komedi.reminders.planner import IMMEDIATE_GRACE, plan_occurrences

from reminder_fixtures import JST


def _med(*times, med_id=1):
    return Medication(id=med_id, name="Aspirin", schedule_times=tuple(times))


class TestPlanOccurrences(unittest.TestCase):
    def test_before_notify_time_plans_normal_and_next_day(self):
        now = datetime(2026, 6, 10, 7, 0, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00"), 15)

        self.assertEqual(plan.failures, [])
        self.assertEqual([o.kind for o in plan.occurrences], [KIND_NORMAL, KIND_NEXT_DAY])
        normal, next_day = plan.occurrences
        self.assertEqual(normal.fire_at, datetime(2026, 6, 10, 7, 45, tzinfo=JST))
        self.assertEqual(normal.calendar_date, date(2026, 6, 10))
        self.assertEqual(next_day.fire_at, datetime(2026, 6, 11, 7, 45, tzinfo=JST))
        self.assertEqual(next_day.calendar_date, date(2026, 6, 11))
        self.assertEqual(next_day.time_of_day, "08:00")

    def test_inside_lead_window_plans_immediate(self):
        now = datetime(2026, 6, 10, 7, 50, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00"), 15)

        self.assertEqual([o.kind for o in plan.occurrences], [KIND_IMMEDIATE, KIND_NEXT_DAY])
        self.assertEqual(plan.occurrences[0].fire_at, now + IMMEDIATE_GRACE)
        self.assertEqual(plan.occurrences[0].calendar_date, date(2026, 6, 10))

    def test_exactly_at_notify_time_is_immediate(self):
        now = datetime(2026, 6, 10, 7, 45, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00"), 15)
        self.assertEqual(plan.occurrences[0].kind, KIND_IMMEDIATE)

    def test_after_dose_time_plans_only_next_day(self):
        for now in (datetime(2026, 6, 10, 8, 30, tzinfo=JST), datetime(2026, 6, 10, 8, 0, tzinfo=JST)):
            with self.subTest(now=now):
                plan = plan_occurrences(now, _med("08:00"), 15)
                self.assertEqual([o.kind for o in plan.occurrences], [KIND_NEXT_DAY])
                self.assertEqual(plan.occurrences[0].fire_at, datetime(2026, 6, 11, 7, 45, tzinfo=JST))

    def test_invalid_time_is_skipped_and_reported(self):
        now = datetime(2026, 6, 10, 7, 0, tzinfo=JST)
        plan = plan_occurrences(now, _med("25:99", "08:00"), 15)

        self.assertEqual(len(plan.failures), 1)
        self.assertEqual(plan.failures[0].time_of_day, "25:99")
        self.assertEqual(plan.failures[0].medication_id, 1)
        self.assertEqual(len(plan.occurrences), 2)
        self.assertTrue(all(o.time_of_day == "08:00" for o in plan.occurrences))

    def test_notify_time_rolling_into_previous_day(self):
        # 00:10 - 15分 = 前日 23:55（必ず now より前）
        now = datetime(2026, 6, 10, 0, 5, tzinfo=JST)
        plan = plan_occurrences(now, _med("00:10"), 15)

        self.assertEqual([o.kind for o in plan.occurrences], [KIND_IMMEDIATE, KIND_NEXT_DAY])
        next_day = plan.occurrences[1]
        self.assertEqual(next_day.calendar_date, date(2026, 6, 11))
        self.assertEqual(next_day.fire_at, datetime(2026, 6, 10, 23, 55, tzinfo=JST))

    def test_rollover_after_dose_plans_only_next_day(self):
        now = datetime(2026, 6, 10, 0, 20, tzinfo=JST)
        plan = plan_occurrences(now, _med("00:10"), 15)
        self.assertEqual([o.kind for o in plan.occurrences], [KIND_NEXT_DAY])

    def test_zero_lead_notifies_at_dose_time(self):
        now = datetime(2026, 6, 10, 7, 0, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00"), 0)
        self.assertEqual(plan.occurrences[0].fire_at, datetime(2026, 6, 10, 8, 0, tzinfo=JST))

    def test_multiple_times_each_get_next_day(self):
        now = datetime(2026, 6, 10, 12, 0, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00", "20:00"), 15)

        kinds = [(o.time_of_day, o.kind) for o in plan.occurrences]
        self.assertEqual(
            kinds,
            [("08:00", KIND_NEXT_DAY), ("20:00", KIND_NORMAL), ("20:00", KIND_NEXT_DAY)],
        )

    def test_no_times_no_occurrences(self):
        plan = plan_occurrences(datetime(2026, 6, 10, 7, 0, tzinfo=JST), _med(), 15)
        self.assertEqual(plan.occurrences, [])
        self.assertEqual(plan.failures, [])

    def test_next_day_crosses_month_end(self):
        now = datetime(2026, 6, 30, 9, 0, tzinfo=JST)
        plan = plan_occurrences(now, _med("08:00"), 15)
        self.assertEqual(plan.occurrences[0].calendar_date, date(2026, 7, 1))
        self.assertEqual(plan.occurrences[0].fire_at - now, timedelta(hours=22, minutes=45))


if __name__ == "__main__":
    unittest.main(verbosity=2)
