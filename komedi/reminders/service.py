"""
リマインダーサービス（アプリ配線）。

役割:
    - スケジューラ/アラームサービス/ストア（薬・設定・服薬記録）を1つに束ね、アプリ全体で共有する。
    - 定期 tick で期限の来たアラームを発火させる。
    - 保守（maintenance）で全件を予約し直し、消えた予約を補う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from komedi.clock import ClockService
from komedi.reminders.alarm_service import LocalAlarmService
from komedi.reminders.contracts import NotificationPresenter
from komedi.reminders.guard import DuplicateGuard
from komedi.reminders.ledger import IssuedKeyLedger
from komedi.reminders.notifier import EventStreamNotificationPresenter
from komedi.reminders.repo import SqlMedicationLogStore, SqlMedicationStore, SqlSettingsStore
from komedi.reminders.scheduler import AlarmScheduler, ScheduleAllResult


logger = logging.getLogger(__name__)


@dataclass
class ReminderService:
    """リマインダー機能の部品一式。"""

    clock: ClockService
    medication_store: SqlMedicationStore
    settings_store: SqlSettingsStore
    alarm_service: LocalAlarmService
    scheduler: AlarmScheduler
    log_store: SqlMedicationLogStore

    def tick(self) -> int:
        """期限の来たアラームを発火させ、処理件数を返す。"""

        fired = self.alarm_service.fire_due(
            now_utc_ts=int(self.clock.now_domain_utc_ts()),
            handler=self.scheduler.handle_due_alarm,
        )
        if fired:
            logger.info("reminder tick fired alarms: count=%s", fired)
        return fired

    def maintenance(self) -> ScheduleAllResult:
        """全件を予約し直す（起動時/定期保守/設定変更時）。"""

        return self.scheduler.schedule_all_alarms(self.clock.now_local())


def build_reminder_service(
    session_factory: sessionmaker,
    *,
    clock: ClockService,
    exact_alarms_allowed: bool = True,
    presenter: NotificationPresenter | None = None,
) -> ReminderService:
    """依存を組み立てて ReminderService を返す。"""

    medication_store = SqlMedicationStore(session_factory)
    settings_store = SqlSettingsStore(session_factory)
    alarm_service = LocalAlarmService(
        session_factory,
        exact_alarms_allowed=exact_alarms_allowed,
        now_utc_ts=clock.now_domain_utc_ts,
    )
    scheduler = AlarmScheduler(
        medication_store=medication_store,
        settings_store=settings_store,
        alarm_service=alarm_service,
        presenter=presenter or EventStreamNotificationPresenter(),
        guard=DuplicateGuard(session_factory),
        ledger=IssuedKeyLedger(session_factory),
        clock=clock,
    )
    return ReminderService(
        clock=clock,
        medication_store=medication_store,
        settings_store=settings_store,
        alarm_service=alarm_service,
        scheduler=scheduler,
        log_store=SqlMedicationLogStore(session_factory),
    )


_reminder_service: ReminderService | None = None


def set_reminder_service(service: ReminderService | None) -> None:
    """共有 ReminderService を設定する。起動時に一度だけ呼び出される。"""
    global _reminder_service
    _reminder_service = service


def get_reminder_service() -> ReminderService:
    """
    共有 ReminderService を取得する。
    初期化されていない場合はRuntimeErrorを発生させる。
    """
    if _reminder_service is None:
        raise RuntimeError("ReminderService not initialized")
    return _reminder_service
