"""
服薬記録エンドポイント

- GET/POST /medications/{id}/logs: 薬ごとの記録の参照/記録
- GET /logs?date=YYYY-MM-DD: 日付ごとの記録
- DELETE /logs/{log_id}: 記録の削除

記録はアラームの予約と連動しない（通知済みかどうかとも無関係）。
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from komedi import schemas
from komedi.app_bootstrap.dependencies import get_reminder_service_dep
from komedi.reminders.service import ReminderService
from komedi.reminders.times import parse_time_of_day
from komedi.storage.models import MedicationLogRow
from komedi.time_utils import format_iso8601_local_with_tz


logger = logging.getLogger(__name__)

router = APIRouter(tags=["logs"])


def _to_response(row: MedicationLogRow) -> schemas.MedicationLogResponse:
    return schemas.MedicationLogResponse(
        id=int(row.id),
        medication_id=int(row.medication_id),
        scheduled_time=str(row.scheduled_time),
        calendar_date=str(row.calendar_date),
        taken_at=int(row.taken_at),
        taken_at_local=format_iso8601_local_with_tz(row.taken_at),
        taken=bool(row.taken),
        skipped=bool(row.skipped),
        notes=str(row.notes or ""),
    )


def _require_medication(service: ReminderService, medication_id: int) -> None:
    if service.medication_store.get_by_id(medication_id) is None:
        raise HTTPException(status_code=404, detail="medication not found")


@router.get("/medications/{medication_id}/logs", response_model=list[schemas.MedicationLogResponse])
def list_medication_logs(
    medication_id: int,
    on_date: Optional[date] = Query(default=None, alias="date"),
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """薬の記録を返す（date 指定時はその日の分だけ、予定時刻順）。"""

    _require_medication(service, medication_id)
    if on_date is not None:
        rows = service.log_store.list_for_date(on_date, medication_id=medication_id)
    else:
        rows = service.log_store.list_for_medication(medication_id)
    return [_to_response(r) for r in rows]


@router.post("/medications/{medication_id}/logs", response_model=schemas.MedicationLogResponse)
def record_medication_log(
    medication_id: int,
    request: schemas.MedicationLogRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """服薬を記録する。同じ日/予定時刻の記録があれば上書きする。"""

    _require_medication(service, medication_id)
    row = service.log_store.record(
        medication_id=medication_id,
        scheduled_time=str(parse_time_of_day(request.scheduled_time)),
        calendar_date=request.calendar_date or service.clock.now_local().date(),
        taken=request.taken,
        skipped=request.skipped,
        notes=request.notes,
        taken_at=int(service.clock.now_domain_utc_ts()),
    )
    return _to_response(row)


@router.get("/logs", response_model=list[schemas.MedicationLogResponse])
def list_logs_for_date(
    on_date: date = Query(alias="date"),
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """指定日の全記録を予定時刻順で返す。"""

    return [_to_response(r) for r in service.log_store.list_for_date(on_date)]


@router.delete("/logs/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_log(log_id: int, service: ReminderService = Depends(get_reminder_service_dep)) -> Response:
    """記録を1件削除する。"""

    if not service.log_store.delete(log_id):
        raise HTTPException(status_code=404, detail="log not found")
    logger.info("medication log deleted: id=%s", log_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
