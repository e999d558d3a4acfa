"""
/alarms・/clock エンドポイント

予約中アラームの確認、手動の全件再スケジュール、手動発火、
検証用の domain 時計操作を提供する。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from komedi import schemas
from komedi.app_bootstrap.dependencies import get_reminder_service_dep
from komedi.reminders.errors import AlarmServiceUnavailable
from komedi.reminders.service import ReminderService
from komedi.time_utils import format_iso8601_local_with_tz


logger = logging.getLogger(__name__)

router = APIRouter(tags=["alarms"])


@router.get("/alarms", response_model=list[schemas.PendingAlarmResponse])
def list_pending_alarms(service: ReminderService = Depends(get_reminder_service_dep)):
    """予約中アラームを発火時刻順で返す。"""

    try:
        pending = service.alarm_service.list_pending()
    except AlarmServiceUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="alarm service unavailable") from exc
    return [
        schemas.PendingAlarmResponse(
            key=a.key,
            fire_at_utc=int(a.fire_at_utc),
            fire_at_local=format_iso8601_local_with_tz(a.fire_at_utc),
            payload=a.payload,
        )
        for a in pending
    ]


@router.post("/alarms/reschedule", response_model=schemas.RescheduleResponse)
def reschedule_all(service: ReminderService = Depends(get_reminder_service_dep)):
    """全件を今すぐ予約し直す。"""

    try:
        result = service.maintenance()
    except AlarmServiceUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="alarm service unavailable") from exc

    return schemas.RescheduleResponse(
        notifications_enabled=bool(result.notifications_enabled),
        scheduled_count=sum(len(m.scheduled_keys) for m in result.medications),
        skipped_count=sum(len(m.skipped_keys) for m in result.medications),
        invalid_times=[
            {"medication_id": f.medication_id, "time_of_day": f.time_of_day, "reason": f.reason}
            for m in result.medications
            for f in m.failures
        ],
        failed={str(k): v for k, v in result.failed.items()},
        cancelled_count=int(result.cancelled_count),
    )


@router.post("/alarms/fire", response_model=schemas.FireAlarmResponse)
def fire_alarm(
    request: schemas.FireAlarmRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """アラームを手動で発火させる（通知の確認用）。"""

    outcome = service.scheduler.on_alarm_fired(
        int(request.medication_id),
        str(request.time_of_day),
        service.clock.now_local(),
    )
    logger.info("manual alarm fire: medication_id=%s outcome=%s", request.medication_id, outcome)
    return schemas.FireAlarmResponse(outcome=outcome)


def _clock_response(service: ReminderService) -> schemas.ClockResponse:
    snap = service.clock.snapshot()
    return schemas.ClockResponse(
        system_now_utc_ts=snap.system_now_utc_ts,
        domain_now_utc_ts=snap.domain_now_utc_ts,
        domain_offset_seconds=snap.domain_offset_seconds,
        domain_now_local=format_iso8601_local_with_tz(snap.domain_now_utc_ts),
    )


@router.get("/clock", response_model=schemas.ClockResponse)
def get_clock(service: ReminderService = Depends(get_reminder_service_dep)):
    """時計状態を返す。"""

    return _clock_response(service)


@router.post("/clock/advance", response_model=schemas.ClockResponse)
def advance_clock(
    request: schemas.ClockAdvanceRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """domain 時刻を進める（検証用）。"""

    service.clock.advance_domain_seconds(seconds=int(request.seconds))
    return _clock_response(service)
