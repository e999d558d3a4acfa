"""
アラームスケジューラ。

役割:
    - 有効な薬ごとに計画（planner）を立て、キー（keys）を付けてアラームサービスへ予約する。
    - 発火時は重複を抑止して通知し、同じ (薬, 時刻) の明日分を予約し直す。
    - 薬の停止/削除時は、呼び出し側が cancel_medication_alarms を呼ぶ（ここでは監視しない）。

方針:
    - 状態はアラームサービス側の予約だけ。スケジューラ自身は依存を受け取るだけのサービス。
    - 同じ薬への操作は薬ごとのロックで直列化する（予約/取消の交錯を防ぐ）。
    - schedule_all_alarms はグローバルロックで直列化する（同時起動の重複作業を防ぐ）。
    - 1件の時刻/薬の失敗で、他の計画を止めない。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, Sequence

from komedi.clock import ClockService
from komedi.reminders.alarm_service import DueAlarm
from komedi.reminders.contracts import (
    DEFAULT_INSTRUCTIONS,
    DEFAULT_LEAD_MINUTES,
    DEFAULT_NOTIFICATIONS_ENABLED,
    SETTING_LEAD_MINUTES,
    SETTING_NOTIFICATIONS_ENABLED,
    AlarmService,
    Medication,
    MedicationStore,
    NotificationPresenter,
    Occurrence,
    PlanFailure,
    SettingsStore,
)
from komedi.reminders.errors import (
    AlarmServiceUnavailable,
    InvalidTimeFormat,
    MedicationNotFound,
    SchedulingPermissionDenied,
)
from komedi.reminders.guard import DuplicateGuard
from komedi.reminders.keys import derive_occurrence_key
from komedi.reminders.ledger import IssuedKeyLedger
from komedi.reminders.planner import next_day_occurrence, plan_occurrences
from komedi.reminders.times import parse_time_of_day
from komedi.time_utils import to_utc_ts


logger = logging.getLogger(__name__)


# --- 発火処理の結果 ---
FIRE_NOTIFIED = "notified"
FIRE_DUPLICATE = "duplicate"
FIRE_DISABLED = "notifications_disabled"
FIRE_NOT_FOUND = "not_found"
FIRE_INACTIVE = "inactive"
FIRE_STALE = "stale"
FIRE_EXPIRED = "expired"


@dataclass
class MedicationScheduleResult:
    """1つの薬の予約結果。"""

    medication_id: int
    scheduled_keys: list[str] = field(default_factory=list)
    skipped_keys: list[str] = field(default_factory=list)  # 権限不足で予約できなかった
    failures: list[PlanFailure] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)


@dataclass
class ScheduleAllResult:
    """全件予約の結果。"""

    notifications_enabled: bool
    medications: list[MedicationScheduleResult] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    cancelled_count: int = 0


class AlarmScheduler:
    """服薬リマインダーの予約/取消/発火処理。"""

    def __init__(
        self,
        *,
        medication_store: MedicationStore,
        settings_store: SettingsStore,
        alarm_service: AlarmService,
        presenter: NotificationPresenter,
        guard: DuplicateGuard,
        ledger: IssuedKeyLedger,
        clock: ClockService,
    ) -> None:
        self._medications = medication_store
        self._settings = settings_store
        self._alarms = alarm_service
        self._presenter = presenter
        self._guard = guard
        self._ledger = ledger
        self._clock = clock

        # --- ロック（全件予約 / 薬ごと） ---
        self._schedule_all_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._medication_locks: dict[int, threading.RLock] = {}

    # --- 設定 ---

    def notifications_enabled(self) -> bool:
        """通知が有効かを返す。"""
        return bool(self._settings.get(SETTING_NOTIFICATIONS_ENABLED, DEFAULT_NOTIFICATIONS_ENABLED))

    def resolve_lead_minutes(self, medication: Medication) -> int:
        """薬ごとの上書きがあればそれを、無ければグローバル設定のリード時間を返す。"""
        if medication.lead_minutes is not None:
            return max(0, int(medication.lead_minutes))
        return max(0, int(self._settings.get(SETTING_LEAD_MINUTES, DEFAULT_LEAD_MINUTES)))

    def _medication_lock(self, medication_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._medication_locks.get(int(medication_id))
            if lock is None:
                lock = threading.RLock()
                self._medication_locks[int(medication_id)] = lock
            return lock

    # --- 予約 ---

    def schedule_all_alarms(self, now: Optional[datetime] = None) -> ScheduleAllResult:
        """
        有効な全薬のアラームを予約する。

        - 通知が無効なら、発行済みの全アラームを取り消して終わる。
        - 1つの薬の失敗は記録して次へ進む。
        """

        with self._schedule_all_lock:
            now = now or self._clock.now_local()

            if not self.notifications_enabled():
                cancelled = self.cancel_all_alarms()
                logger.info("notifications disabled; cancelled all alarms: count=%s", cancelled)
                return ScheduleAllResult(notifications_enabled=False, cancelled_count=cancelled)

            medications = list(self._medications.list_active())
            logger.info("scheduling all medication alarms: medications=%s", len(medications))

            result = ScheduleAllResult(notifications_enabled=True)
            for medication in medications:
                try:
                    lead = self.resolve_lead_minutes(medication)
                    result.medications.append(self.schedule_medication_alarms(medication, lead, now=now))
                except Exception as exc:  # noqa: BLE001
                    # --- 薬単位で隔離する ---
                    logger.exception("failed to schedule medication alarms: medication_id=%s", medication.id)
                    result.failed[int(medication.id)] = str(exc)

            # --- 前日より古い台帳は発火済み/期限切れ ---
            self._ledger.purge_before(now.date() - timedelta(days=1))
            return result

    def schedule_medication_alarms(
        self,
        medication: Medication,
        lead_minutes: int,
        *,
        now: Optional[datetime] = None,
    ) -> MedicationScheduleResult:
        """
        1つの薬のアラームを予約する（今日分 + 明日分）。

        同じ引数で何度呼んでも、同じキー集合が予約される（置き換え）。
        通知が無効なら何も予約しない（判定は薬ごとのロックの中で行う）。

        Raises:
            AlarmServiceUnavailable: アラームサービスに到達できない場合。
        """

        with self._medication_lock(medication.id):
            if not self.notifications_enabled():
                logger.info("notifications disabled; medication alarms not scheduled: medication_id=%s", medication.id)
                return MedicationScheduleResult(medication_id=int(medication.id))

            now = now or self._clock.now_local()
            plan = plan_occurrences(now, medication, lead_minutes)
            result = MedicationScheduleResult(
                medication_id=int(medication.id),
                failures=list(plan.failures),
                occurrences=list(plan.occurrences),
            )
            for occurrence in plan.occurrences:
                key = self._issue(medication, occurrence)
                if key is None:
                    result.skipped_keys.append(
                        derive_occurrence_key(occurrence.medication_id, occurrence.time_of_day, occurrence.calendar_date)
                    )
                    continue
                result.scheduled_keys.append(key)

            logger.info(
                "scheduled medication alarms: medication_id=%s lead_minutes=%s scheduled=%s skipped=%s invalid_times=%s",
                medication.id,
                int(lead_minutes),
                len(result.scheduled_keys),
                len(result.skipped_keys),
                len(result.failures),
            )
            return result

    def schedule_next_day_alarm(
        self,
        medication: Medication,
        time_of_day: str,
        *,
        today: date,
        tzinfo: Any = None,
        after: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        発火後に、同じ (薬, 時刻) の明日分だけを予約する。

        after を渡した場合、通知時刻が after 以前になる日は飛ばす
        （遅れて届いたアラームから過去の通知を予約しない）。

        Returns:
            予約したキー（権限不足/通知無効で予約しなかった場合は None）。
        """

        with self._medication_lock(medication.id):
            if not self.notifications_enabled():
                logger.info("notifications disabled; next day alarm not scheduled: medication_id=%s", medication.id)
                return None

            tod = parse_time_of_day(time_of_day)
            tz = tzinfo if tzinfo is not None else self._clock.now_local().tzinfo
            lead = self.resolve_lead_minutes(medication)
            day = today + timedelta(days=1)
            while True:
                occurrence = next_day_occurrence(
                    medication_id=int(medication.id), tod=tod, day=day, lead_minutes=lead, tzinfo=tz
                )
                if after is None or occurrence.fire_at > after:
                    break
                day += timedelta(days=1)
            key = self._issue(medication, occurrence)
            logger.info(
                "scheduled next day alarm: medication_id=%s time=%s fire_at=%s",
                medication.id,
                occurrence.time_of_day,
                occurrence.fire_at.isoformat(timespec="seconds"),
            )
            return key

    def _issue(self, medication: Medication, occurrence: Occurrence) -> Optional[str]:
        """
        1件の発火予定をアラームサービスへ予約する。

        exact → inexact の順に試し、どちらも権限で拒否されたら諦めて None を返す。
        """

        key = derive_occurrence_key(occurrence.medication_id, occurrence.time_of_day, occurrence.calendar_date)
        payload = build_alarm_payload(medication, occurrence, key=key)

        try:
            self._alarms.schedule(key, occurrence.fire_at, payload, exact=True)
        except SchedulingPermissionDenied:
            logger.warning(
                "exact alarm not permitted; falling back to inexact: medication_id=%s time=%s",
                medication.id,
                occurrence.time_of_day,
            )
            try:
                self._alarms.schedule(key, occurrence.fire_at, payload, exact=False)
            except SchedulingPermissionDenied:
                logger.error(
                    "alarm scheduling not permitted; skipped: medication_id=%s time=%s date=%s",
                    medication.id,
                    occurrence.time_of_day,
                    occurrence.calendar_date.isoformat(),
                )
                return None

        self._ledger.record(
            key=key,
            medication_id=int(occurrence.medication_id),
            time_of_day=occurrence.time_of_day,
            calendar_date=occurrence.calendar_date,
            now_utc_ts=int(self._clock.now_domain_utc_ts()),
        )
        logger.debug(
            "alarm scheduled: key=%s kind=%s fire_at=%s",
            key,
            occurrence.kind,
            occurrence.fire_at.isoformat(timespec="seconds"),
        )
        return key

    # --- 取消 ---

    def cancel_medication_alarms(
        self,
        medication_id: int,
        times: Sequence[str],
        *,
        today: Optional[date] = None,
    ) -> list[str]:
        """
        薬の今日/明日分のアラームを取り消す。

        存在しないキーの取消は何もしない。

        Returns:
            取消を依頼したキー。
        """

        with self._medication_lock(medication_id):
            today = today or self._clock.now_local().date()
            keys: list[str] = []
            for raw in times:
                time_text = _canonical_time_text(raw)
                for day in (today, today + timedelta(days=1)):
                    key = derive_occurrence_key(int(medication_id), time_text, day)
                    self._alarms.cancel(key)
                    keys.append(key)
            self._ledger.forget(keys)
            logger.info("cancelled medication alarms: medication_id=%s keys=%s", medication_id, len(keys))
            return keys

    def cancel_all_alarms(self) -> int:
        """
        台帳に記録された全アラームを取り消し、件数を返す。

        薬ごとのロックを取ってから、その薬のキーを台帳から読み直す。
        有効な薬のロックも取るので、台帳にまだ載っていない予約途中の薬も待つ。
        途中で台帳に現れた薬も、取り切るまで繰り返す。
        """

        done: set[int] = set()
        cancelled = 0
        pending_ids = set(self._ledger.medication_ids()) | {int(m.id) for m in self._medications.list_active()}
        while pending_ids:
            for medication_id in sorted(pending_ids):
                with self._medication_lock(medication_id):
                    cancelled += self._cancel_keys(self._ledger.keys_for_medication(medication_id))
                done.add(medication_id)
            pending_ids = set(self._ledger.medication_ids()) - done
        return cancelled

    def _cancel_keys(self, keys: list[str]) -> int:
        cancelled: list[str] = []
        try:
            for key in keys:
                self._alarms.cancel(key)
                cancelled.append(key)
        finally:
            self._ledger.forget(cancelled)
        return len(cancelled)

    # --- 発火 ---

    def on_alarm_fired(
        self,
        medication_id: int,
        time_of_day: str,
        fired_at: datetime,
        *,
        calendar_date: Optional[date] = None,
    ) -> str:
        """
        アラーム発火時の処理。

        1. 通知無効 / 薬が無い / 停止中 / 時刻が外れている → 何もしない
        2. 発火予定の日付が前日より古い → 何もしない（重複抑止の保持期間外）
        3. 同じ日の同じ発火予定が通知済み → 何もしない
        4. 通知済みとして記録し、通知を表示し、翌日分を予約する

        calendar_date は予約時の発火予定の日付（アラームの payload から渡す）。
        渡されない場合（手動発火）は fired_at の日付を使う。
        通知時刻が日付をまたいで前日に来る発火予定は、発火日と予定日が異なる。

        Returns:
            FIRE_* のいずれか。
        """

        # --- naive はローカル時刻として扱う ---
        if fired_at.tzinfo is None:
            fired_at = fired_at.astimezone()

        with self._medication_lock(medication_id):
            if not self.notifications_enabled():
                logger.info("notifications disabled; alarm ignored: medication_id=%s", medication_id)
                return FIRE_DISABLED

            try:
                medication = self._require_medication(medication_id)
            except MedicationNotFound:
                logger.info("medication not found at fire time; nothing to reschedule: medication_id=%s", medication_id)
                return FIRE_NOT_FOUND
            if not medication.is_active:
                logger.info("medication inactive at fire time: medication_id=%s", medication_id)
                return FIRE_INACTIVE

            time_text = _canonical_time_text(time_of_day)
            if time_text not in {_canonical_time_text(t) for t in medication.schedule_times}:
                logger.info("stale alarm (time removed): medication_id=%s time=%s", medication_id, time_of_day)
                return FIRE_STALE

            occurrence_date = calendar_date or fired_at.date()
            if occurrence_date < fired_at.date() - timedelta(days=1):
                logger.info(
                    "expired alarm dropped: medication_id=%s time=%s date=%s fired_at=%s",
                    medication_id,
                    time_text,
                    occurrence_date,
                    fired_at.isoformat(timespec="seconds"),
                )
                return FIRE_EXPIRED

            # --- 重複抑止（予約時と同じキー） ---
            key = derive_occurrence_key(int(medication_id), time_text, occurrence_date)
            if not self._guard.try_mark(occurrence_date, key, now_utc_ts=to_utc_ts(fired_at)):
                logger.info(
                    "duplicate alarm suppressed: medication_id=%s time=%s date=%s", medication_id, time_text, occurrence_date
                )
                return FIRE_DUPLICATE

            # --- 通知 ---
            self._presenter.show(
                build_notification_payload(medication, key=key, time_of_day=time_text, calendar_date=occurrence_date)
            )

            # --- 翌日分（失敗しても通知は済んでいるので、保守の再スケジュールに任せる） ---
            try:
                self.schedule_next_day_alarm(
                    medication,
                    time_text,
                    today=occurrence_date,
                    tzinfo=fired_at.tzinfo,
                    after=fired_at,
                )
            except (AlarmServiceUnavailable, InvalidTimeFormat) as exc:
                logger.error("failed to schedule next day alarm: medication_id=%s error=%s", medication_id, str(exc))
            return FIRE_NOTIFIED

    def handle_due_alarm(self, alarm: DueAlarm) -> str | None:
        """アラームサービスから渡された予約を on_alarm_fired へ渡す。"""

        payload = alarm.payload
        raw_id = payload.get("medication_id")
        time_of_day = str(payload.get("scheduled_time") or "")
        if not isinstance(raw_id, int) or not time_of_day:
            logger.warning("malformed alarm payload dropped: key=%s", alarm.key)
            return None

        calendar_date: Optional[date] = None
        raw_date = payload.get("calendar_date")
        if raw_date:
            try:
                calendar_date = date.fromisoformat(str(raw_date))
            except ValueError:
                logger.warning("alarm payload has invalid calendar_date; using fire date: key=%s value=%r", alarm.key, raw_date)
        return self.on_alarm_fired(int(raw_id), time_of_day, self._clock.now_local(), calendar_date=calendar_date)

    def _require_medication(self, medication_id: int) -> Medication:
        medication = self._medications.get_by_id(int(medication_id))
        if medication is None:
            raise MedicationNotFound(int(medication_id))
        return medication


def _canonical_time_text(raw: str) -> str:
    """解析できる時刻は HH:MM に正規化し、できないものはそのまま返す。"""
    try:
        return str(parse_time_of_day(raw))
    except InvalidTimeFormat:
        return str(raw)


def build_notification_payload(
    medication: Medication,
    *,
    key: str,
    time_of_day: str,
    calendar_date: date,
) -> dict[str, Any]:
    """通知に載せる値を作る。"""

    return {
        "key": str(key),
        "medication_id": int(medication.id),
        "medication_name": str(medication.name),
        "dosage": str(medication.dosage_amount or ""),
        "scheduled_time": str(time_of_day),
        "calendar_date": calendar_date.isoformat(),
        "instructions": str(medication.instructions or "").strip() or DEFAULT_INSTRUCTIONS,
    }


def build_alarm_payload(medication: Medication, occurrence: Occurrence, *, key: str) -> dict[str, Any]:
    """アラームに載せる値（通知の値 + 発火予定の種別）を作る。"""

    payload = build_notification_payload(
        medication,
        key=key,
        time_of_day=occurrence.time_of_day,
        calendar_date=occurrence.calendar_date,
    )
    payload["kind"] = str(occurrence.kind)
    return payload
