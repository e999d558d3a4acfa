import unittest
from datetime import datetime

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from komedi.clock import ClockService
from komedi.config import Config
from komedi.main import create_app
from komedi.runtime import event_stream

from reminder_fixtures import RecordingPresenter


def _config(**overrides):
    values = dict(
        port=55611,
        token="test-token",
        log_level="WARNING",
        log_file_enabled=False,
        log_file_path="",
        log_file_max_bytes=200_000,
        db_path=":memory:",
        alarm_tick_seconds=1.0,
        maintenance_interval_seconds=21600.0,
        exact_alarms_allowed=True,
        default_lead_minutes=15,
    )
    values.update(overrides)
    return Config(**values)


class ApiTestBase(unittest.TestCase):
    def setUp(self):
        start = datetime(2026, 6, 10, 7, 0).astimezone().timestamp()
        self.clock = ClockService(time_source=lambda: start)
        self.presenter = RecordingPresenter()
        # startup フック（定期 tick）は動かさない
        self.client = TestClient(create_app(_config(), clock=self.clock, presenter=self.presenter))
        self.headers = {"Authorization": "Bearer test-token"}

    def create(self, **body):
        payload = {"name": "Aspirin", "dosage_amount": "20mg", "schedule_times": ["08:00"]}
        payload.update(body)
        return self.client.post("/api/medications", json=payload, headers=self.headers)

    def pending_keys(self):
        res = self.client.get("/api/alarms", headers=self.headers)
        self.assertEqual(res.status_code, 200)
        return [a["key"] for a in res.json()]


class TestAuthAndHealth(ApiTestBase):
    def test_health_is_public(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"status": "healthy"})

    def test_requires_bearer(self):
        self.assertEqual(self.client.get("/api/medications").status_code, 401)
        res = self.client.get("/api/medications", headers={"Authorization": "Bearer wrong"})
        self.assertEqual(res.status_code, 401)


class TestMedicationsApi(ApiTestBase):
    def test_create_schedules_alarms(self):
        res = self.create(schedule_times=["08:00", "20:00", "08:00"])
        self.assertEqual(res.status_code, 201)
        body = res.json()
        self.assertEqual(body["schedule_times"], ["08:00", "20:00"])
        self.assertTrue(body["is_active"])
        self.assertEqual(len(self.pending_keys()), 4)

    def test_rejects_malformed_time(self):
        self.assertEqual(self.create(schedule_times=["8:00"]).status_code, 422)

    def test_deactivate_cancels_alarms(self):
        med_id = self.create().json()["id"]
        res = self.client.put(f"/api/medications/{med_id}", json={"is_active": False}, headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.json()["is_active"])
        self.assertEqual(self.pending_keys(), [])

    def test_change_times_replaces_alarms(self):
        med_id = self.create().json()["id"]
        before = set(self.pending_keys())
        self.client.put(f"/api/medications/{med_id}", json={"schedule_times": ["21:00"]}, headers=self.headers)
        after = set(self.pending_keys())
        self.assertEqual(len(after), 2)
        self.assertFalse(before & after)

    def test_delete(self):
        med_id = self.create().json()["id"]
        res = self.client.delete(f"/api/medications/{med_id}", headers=self.headers)
        self.assertEqual(res.status_code, 204)
        self.assertEqual(self.pending_keys(), [])
        self.assertEqual(self.client.get(f"/api/medications/{med_id}", headers=self.headers).status_code, 404)

    def test_list_and_get(self):
        med_id = self.create().json()["id"]
        listed = self.client.get("/api/medications", headers=self.headers).json()
        self.assertEqual([m["id"] for m in listed], [med_id])
        got = self.client.get(f"/api/medications/{med_id}", headers=self.headers).json()
        self.assertEqual(got["dosage_amount"], "20mg")

    def test_search_by_name(self):
        self.create(name="Vitamin D")
        self.create(name="Aspirin")
        res = self.client.get("/api/medications", params={"q": "vita"}, headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual([m["name"] for m in res.json()], ["Vitamin D"])


class TestMedicationLogsApi(ApiTestBase):
    def log(self, med_id, **body):
        return self.client.post(f"/api/medications/{med_id}/logs", json=body, headers=self.headers)

    def test_record_defaults_to_today_and_overwrites_slot(self):
        med_id = self.create(schedule_times=["08:00", "20:00"]).json()["id"]

        res = self.log(med_id, scheduled_time="08:00")
        self.assertEqual(res.status_code, 200)
        first = res.json()
        self.assertTrue(first["taken"])
        self.assertEqual(first["calendar_date"], "2026-06-10")

        again = self.log(med_id, scheduled_time="08:00", taken=False, skipped=True, notes="felt sick").json()
        self.assertEqual(again["id"], first["id"])
        self.assertTrue(again["skipped"])

        self.log(med_id, scheduled_time="20:00", calendar_date="2026-06-11")
        listed = self.client.get(f"/api/medications/{med_id}/logs", headers=self.headers).json()
        self.assertEqual(len(listed), 2)
        on_day = self.client.get("/api/logs", params={"date": "2026-06-10"}, headers=self.headers).json()
        self.assertEqual([(l["scheduled_time"], l["notes"]) for l in on_day], [("08:00", "felt sick")])

    def test_rejects_bad_requests(self):
        med_id = self.create().json()["id"]
        self.assertEqual(self.log(med_id, scheduled_time="8:00").status_code, 422)
        self.assertEqual(self.log(med_id, scheduled_time="08:00", taken=True, skipped=True).status_code, 422)
        self.assertEqual(self.log(999, scheduled_time="08:00").status_code, 404)
        self.assertEqual(self.client.get("/api/logs", headers=self.headers).status_code, 422)

    def test_deleting_medication_removes_logs(self):
        med_id = self.create().json()["id"]
        self.log(med_id, scheduled_time="08:00")
        self.client.delete(f"/api/medications/{med_id}", headers=self.headers)

        on_day = self.client.get("/api/logs", params={"date": "2026-06-10"}, headers=self.headers).json()
        self.assertEqual(on_day, [])

    def test_delete_log(self):
        med_id = self.create().json()["id"]
        log_id = self.log(med_id, scheduled_time="08:00").json()["id"]
        self.assertEqual(self.client.delete(f"/api/logs/{log_id}", headers=self.headers).status_code, 204)
        self.assertEqual(self.client.delete(f"/api/logs/{log_id}", headers=self.headers).status_code, 404)


class TestSettingsAndAlarmsApi(ApiTestBase):
    def test_disabling_notifications_cancels_all(self):
        self.create()
        self.assertEqual(len(self.pending_keys()), 2)

        res = self.client.put("/api/settings", json={"notifications_enabled": False}, headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.json()["notifications_enabled"])
        self.assertEqual(self.pending_keys(), [])

        res = self.client.put("/api/settings", json={"notifications_enabled": True}, headers=self.headers)
        self.assertEqual(len(self.pending_keys()), 2)

    def test_lead_minutes_change_reschedules(self):
        self.create()
        res = self.client.put("/api/settings", json={"lead_minutes": 90}, headers=self.headers)
        self.assertEqual(res.json()["lead_minutes"], 90)
        kinds = sorted(a["payload"]["kind"] for a in self.client.get("/api/alarms", headers=self.headers).json())
        # 07:00 は 08:00 の90分前を過ぎている
        self.assertEqual(kinds, ["immediate", "next_day"])

    def test_manual_fire_is_deduplicated(self):
        med_id = self.create().json()["id"]
        body = {"medication_id": med_id, "time_of_day": "08:00"}
        first = self.client.post("/api/alarms/fire", json=body, headers=self.headers).json()
        second = self.client.post("/api/alarms/fire", json=body, headers=self.headers).json()
        self.assertEqual(first["outcome"], "notified")
        self.assertEqual(second["outcome"], "duplicate")
        self.assertEqual(len(self.presenter.shown), 1)

    def test_reschedule(self):
        self.create(schedule_times=["08:00", "20:00"])
        res = self.client.post("/api/alarms/reschedule", headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["scheduled_count"], 4)
        self.assertEqual(len(self.pending_keys()), 4)

    def test_clock_advance(self):
        res = self.client.post("/api/clock/advance", json={"seconds": 3600}, headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["domain_offset_seconds"], 3600)
        self.assertEqual(self.client.post("/api/clock/advance", json={"seconds": 0}, headers=self.headers).status_code, 422)


class TestLifecycleAndEvents(ApiTestBase):
    def test_startup_installs_event_stream(self):
        with TestClient(create_app(_config(), clock=self.clock, presenter=self.presenter)) as client:
            self.assertEqual(client.get("/api/health").status_code, 200)
            self.assertTrue(event_stream.publish(type="test.ping"))
        self.assertFalse(event_stream.publish(type="test.ping"))

    def test_events_stream_rejects_missing_token(self):
        with self.client.websocket_connect("/api/events/stream") as ws:
            with self.assertRaises(WebSocketDisconnect):
                ws.receive_text()


if __name__ == "__main__":
    unittest.main(verbosity=2)
