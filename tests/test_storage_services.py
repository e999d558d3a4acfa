import unittest
from datetime import date, datetime, timedelta

from komedi.reminders.alarm_service import LocalAlarmService
from komedi.reminders.errors import AlarmServiceUnavailable, SchedulingPermissionDenied
from komedi.reminders.guard import DuplicateGuard
from komedi.reminders.ledger import IssuedKeyLedger
from komedi.reminders.repo import SqlMedicationLogStore, SqlMedicationStore, SqlSettingsStore
from komedi.storage.models import PendingAlarm

from reminder_fixtures import JST, add_medication, new_session_factory


class TestDuplicateGuard(unittest.TestCase):
    def setUp(self):
        self.guard = DuplicateGuard(new_session_factory())

    def test_mark_once(self):
        d = date(2026, 6, 10)
        self.assertFalse(self.guard.is_notified(d, "med-a"))
        self.assertTrue(self.guard.try_mark(d, "med-a", now_utc_ts=1))
        self.assertFalse(self.guard.try_mark(d, "med-a", now_utc_ts=2))
        self.assertTrue(self.guard.is_notified(d, "med-a"))

    def test_same_key_on_other_date_is_separate(self):
        self.assertTrue(self.guard.try_mark(date(2026, 6, 10), "med-a", now_utc_ts=1))
        self.assertTrue(self.guard.try_mark(date(2026, 6, 11), "med-a", now_utc_ts=2))

    def test_keeps_today_and_yesterday_only(self):
        today = date(2026, 6, 10)
        self.guard.try_mark(today - timedelta(days=3), "old", now_utc_ts=1)
        self.guard.try_mark(today - timedelta(days=1), "yesterday", now_utc_ts=1)
        self.guard.try_mark(today, "today", now_utc_ts=2)

        self.assertFalse(self.guard.is_notified(today - timedelta(days=3), "old"))
        self.assertTrue(self.guard.is_notified(today - timedelta(days=1), "yesterday"))
        self.assertTrue(self.guard.is_notified(today, "today"))


class TestIssuedKeyLedger(unittest.TestCase):
    def test_record_forget_purge(self):
        ledger = IssuedKeyLedger(new_session_factory())
        ledger.record(key="k1", medication_id=1, time_of_day="08:00", calendar_date=date(2026, 6, 8), now_utc_ts=0)
        ledger.record(key="k2", medication_id=1, time_of_day="08:00", calendar_date=date(2026, 6, 10), now_utc_ts=0)
        ledger.record(key="k2", medication_id=1, time_of_day="08:00", calendar_date=date(2026, 6, 10), now_utc_ts=5)
        self.assertEqual(ledger.all_keys(), ["k1", "k2"])

        self.assertEqual(ledger.purge_before(date(2026, 6, 9)), 1)
        self.assertEqual(ledger.all_keys(), ["k2"])

        ledger.forget(["k2", "missing"])
        self.assertEqual(ledger.all_keys(), [])


class TestLocalAlarmService(unittest.TestCase):
    def setUp(self):
        self.factory = new_session_factory()
        self.service = LocalAlarmService(self.factory, now_utc_ts=lambda: 0)
        self.base = datetime(2026, 6, 10, 7, 45, tzinfo=JST)

    def test_schedule_replaces_same_key(self):
        self.service.schedule("k", self.base, {"n": 1})
        self.service.schedule("k", self.base + timedelta(minutes=5), {"n": 2})

        pending = self.service.list_pending()
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0].fire_at_utc, int((self.base + timedelta(minutes=5)).timestamp()))
        self.assertEqual(pending[0].payload, {"n": 2})

    def test_cancel_unknown_key_is_noop(self):
        self.service.cancel("nothing")
        self.assertEqual(self.service.list_pending(), [])

    def test_exact_requires_permission(self):
        self.service.set_exact_alarms_allowed(False)
        with self.assertRaises(SchedulingPermissionDenied):
            self.service.schedule("k", self.base, {})
        self.service.schedule("k", self.base, {}, exact=False)
        self.assertEqual([a.key for a in self.service.list_pending()], ["k"])

    def test_fire_due_hands_over_due_alarms_in_order(self):
        self.service.schedule("late", self.base + timedelta(hours=1), {})
        self.service.schedule("b", self.base, {})
        self.service.schedule("a", self.base - timedelta(minutes=1), {})

        seen = []
        fired = self.service.fire_due(now_utc_ts=int(self.base.timestamp()), handler=lambda a: seen.append(a.key))

        self.assertEqual(fired, 2)
        self.assertEqual(seen, ["a", "b"])
        self.assertEqual([a.key for a in self.service.list_pending()], ["late"])

    def test_failed_handler_keeps_alarm(self):
        self.service.schedule("k", self.base, {})

        def boom(_alarm):
            raise RuntimeError("handler failed")

        self.assertEqual(self.service.fire_due(now_utc_ts=int(self.base.timestamp()), handler=boom), 0)
        self.assertEqual([a.key for a in self.service.list_pending()], ["k"])

    def test_rescheduled_during_handler_is_kept(self):
        self.service.schedule("k", self.base, {})
        later = self.base + timedelta(days=1)

        def reschedule(alarm):
            self.service.schedule(alarm.key, later, {})

        self.service.fire_due(now_utc_ts=int(self.base.timestamp()), handler=reschedule)
        pending = self.service.list_pending()
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0].fire_at_utc, int(later.timestamp()))

    def test_db_failure_is_unavailable(self):
        PendingAlarm.__table__.drop(bind=self.factory.kw["bind"])
        with self.assertRaises(AlarmServiceUnavailable):
            self.service.schedule("k", self.base, {})
        with self.assertRaises(AlarmServiceUnavailable):
            self.service.fire_due(now_utc_ts=0, handler=lambda a: None)


class TestSettingsStore(unittest.TestCase):
    def test_defaults_and_update(self):
        store = SqlSettingsStore(new_session_factory(default_lead_minutes=10))
        self.assertEqual(
            store.snapshot(),
            {"notifications_enabled": True, "lead_minutes": 10, "display_name": "", "dark_mode": False},
        )
        after = store.update(values={"notifications_enabled": False, "lead_minutes": 30}, now_utc_ts=1)
        self.assertFalse(after["notifications_enabled"])
        self.assertEqual(store.get("lead_minutes"), 30)
        self.assertIs(store.get("notifications_enabled"), False)
        self.assertEqual(store.get("unknown", "fallback"), "fallback")

    def test_rejects_bad_values(self):
        store = SqlSettingsStore(new_session_factory())
        with self.assertRaises(ValueError):
            store.update(values={"lead_minutes": -1}, now_utc_ts=1)
        with self.assertRaises(ValueError):
            store.update(values={"volume": 3}, now_utc_ts=1)

class TestMedicationStoreSearch(unittest.TestCase):
    def test_partial_name_match_sorted_by_name(self):
        factory = new_session_factory()
        for name in ("Vitamin D", "Aspirin", "vitamin C", "50%_off"):
            add_medication(factory, name=name)
        store = SqlMedicationStore(factory)

        self.assertEqual([r.name for r in store.search("vitamin")], ["Vitamin D", "vitamin C"])
        self.assertEqual([r.name for r in store.search("%_")], ["50%_off"])
        self.assertEqual(store.search("zzz"), [])


class TestMedicationLogStore(unittest.TestCase):
    def setUp(self):
        self.factory = new_session_factory()
        self.store = SqlMedicationLogStore(self.factory)
        self.med = add_medication(self.factory, times=("08:00", "20:00"))

    def record(self, time_text, day=date(2026, 6, 10), **values):
        params = dict(taken=True, skipped=False, notes="", taken_at=100)
        params.update(values)
        return self.store.record(medication_id=self.med.id, scheduled_time=time_text, calendar_date=day, **params)

    def test_same_slot_is_updated_in_place(self):
        first = self.record("08:00")
        second = self.record("08:00", taken=False, skipped=True, notes="nausea", taken_at=200)

        self.assertEqual(first.id, second.id)
        got = self.store.get_for_scheduled_time(self.med.id, date(2026, 6, 10), "08:00")
        self.assertEqual((got.taken, got.skipped, got.notes, got.taken_at), (0, 1, "nausea", 200))

    def test_lists_by_date_and_by_medication(self):
        self.record("20:00", taken_at=300)
        self.record("08:00", taken_at=100)
        self.record("08:00", day=date(2026, 6, 11), taken_at=500)

        on_day = self.store.list_for_date(date(2026, 6, 10))
        self.assertEqual([r.scheduled_time for r in on_day], ["08:00", "20:00"])
        newest_first = self.store.list_for_medication(self.med.id)
        self.assertEqual([r.taken_at for r in newest_first], [500, 300, 100])
        self.assertIsNone(self.store.get_for_scheduled_time(self.med.id, date(2026, 6, 12), "08:00"))

    def test_deleting_medication_removes_its_logs(self):
        other = add_medication(self.factory, name="Other")
        self.record("08:00")
        self.store.record(
            medication_id=other.id,
            scheduled_time="08:00",
            calendar_date=date(2026, 6, 10),
            taken=True,
            skipped=False,
            notes="",
            taken_at=1,
        )

        self.assertTrue(SqlMedicationStore(self.factory).delete(self.med.id))

        remaining = self.store.list_for_date(date(2026, 6, 10))
        self.assertEqual([r.medication_id for r in remaining], [other.id])
        self.assertEqual(self.store.list_for_medication(self.med.id), [])

    def test_delete_log(self):
        row = self.record("08:00")
        self.assertTrue(self.store.delete(row.id))
        self.assertFalse(self.store.delete(row.id))


if __name__ == "__main__":
    unittest.main(verbosity=2)
