import unittest
from datetime import datetime, timedelta

from komedi.clock import ClockService
from komedi.reminders.keys import derive_occurrence_key
from komedi.reminders.service import build_reminder_service

from reminder_fixtures import RecordingPresenter, add_medication, new_session_factory


class TestReminderServiceTick(unittest.TestCase):
    """ローカル時刻で組み立て、domain 時計を進めて発火を確認する。"""

    def setUp(self):
        self.start = datetime(2026, 6, 10, 7, 0).astimezone()
        self.clock = ClockService(time_source=lambda: self.start.timestamp())
        self.factory = new_session_factory()
        self.presenter = RecordingPresenter()
        self.service = build_reminder_service(self.factory, clock=self.clock, presenter=self.presenter)

    def test_tick_fires_due_alarm_once_and_keeps_tomorrow(self):
        med = add_medication(self.factory, times=("08:00",))
        result = self.service.maintenance()
        self.assertEqual(len(result.medications[0].scheduled_keys), 2)

        # まだ早い
        self.assertEqual(self.service.tick(), 0)
        self.assertEqual(self.presenter.shown, [])

        # 07:45 へ進める
        self.clock.advance_domain_seconds(seconds=45 * 60)
        self.assertEqual(self.service.tick(), 1)
        self.assertEqual(len(self.presenter.shown), 1)
        self.assertEqual(self.service.tick(), 0)

        pending = [a.key for a in self.service.alarm_service.list_pending()]
        tomorrow = self.start.date().replace(day=11)
        self.assertEqual(pending, [derive_occurrence_key(med.id, "08:00", tomorrow)])

    def test_restart_reschedule_does_not_renotify(self):
        med = add_medication(self.factory, times=("08:00",))
        self.clock.advance_domain_seconds(seconds=50 * 60)  # 07:50（リード時間内）
        self.service.maintenance()

        self.clock.advance_domain_seconds(seconds=5)
        self.assertEqual(self.service.tick(), 1)

        # 同じ日のうちに再起動して予約し直しても、通知は1回
        self.service.maintenance()
        self.clock.advance_domain_seconds(seconds=5)
        self.service.tick()
        self.assertEqual(len(self.presenter.shown), 1)
        self.assertEqual(self.presenter.shown[0]["medication_id"], med.id)

    def test_dose_just_after_midnight_is_rearmed_and_notified_once(self):
        # 00:10 の服薬（リード15分）。12:00 に予約すると、通知は当日 23:55 に来る
        med = add_medication(self.factory, times=("00:10",))
        self.clock.advance_domain_seconds(seconds=5 * 60 * 60)  # 12:00
        self.service.maintenance()

        today = self.start.date()
        tomorrow = today + timedelta(days=1)
        day_after = today + timedelta(days=2)
        pending = [a.key for a in self.service.alarm_service.list_pending()]
        self.assertEqual(pending, [derive_occurrence_key(med.id, "00:10", tomorrow)])

        # 23:55:01 に発火 → 通知は「明日」分。明後日分が残る
        self.clock.advance_domain_seconds(seconds=(11 * 60 + 55) * 60 + 1)
        self.assertEqual(self.service.tick(), 1)
        self.assertEqual([s["calendar_date"] for s in self.presenter.shown], [tomorrow.isoformat()])
        pending = [a.key for a in self.service.alarm_service.list_pending()]
        self.assertEqual(pending, [derive_occurrence_key(med.id, "00:10", day_after)])

        # 00:05 に予約し直すと同じ服薬の即時アラームが出るが、通知は増えない
        self.clock.advance_domain_seconds(seconds=10 * 60)
        self.service.maintenance()
        self.clock.advance_domain_seconds(seconds=6)
        self.service.tick()
        self.assertEqual(len(self.presenter.shown), 1)
        pending = [a.key for a in self.service.alarm_service.list_pending()]
        self.assertEqual(pending, [derive_occurrence_key(med.id, "00:10", day_after)])


if __name__ == "__main__":
    unittest.main(verbosity=2)
