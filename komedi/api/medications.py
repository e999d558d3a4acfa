"""
/medications エンドポイント

薬の登録/更新/削除を受け付け、アラームの予約/取消を連動させる。

方針:
    - 更新/削除の前に、必ず旧時刻の今日/明日分を取り消す（スケジューラは停止を監視しない）。
    - 有効かつ通知ONなら、更新後の内容で予約し直す。
    - アラームサービスに届かない場合は 503 を返す（薬自体は保存済み。保守の再スケジュールで補う）。
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from komedi import schemas
from komedi.app_bootstrap.dependencies import get_reminder_service_dep
from komedi.reminders.contracts import Medication
from komedi.reminders.errors import AlarmServiceUnavailable
from komedi.reminders.repo import medication_from_row
from komedi.reminders.service import ReminderService
from komedi.storage import json_columns
from komedi.storage.models import MedicationRow


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/medications", tags=["medications"])


def _to_response(row: MedicationRow) -> schemas.MedicationResponse:
    """ORM行をレスポンスへ変換する。"""

    return schemas.MedicationResponse(
        id=int(row.id),
        name=str(row.name),
        description=str(row.description or ""),
        dosage_amount=str(row.dosage_amount or ""),
        dosage_unit=str(row.dosage_unit or ""),
        frequency=int(row.frequency or 0),
        schedule_times=json_columns.decode_schedule_times(row.schedule_times_json),
        instructions=str(row.instructions or ""),
        lead_minutes=(int(row.lead_minutes) if row.lead_minutes is not None else None),
        is_active=bool(row.is_active),
        notes=str(row.notes or ""),
        created_at=int(row.created_at),
        updated_at=int(row.updated_at),
    )


def _schedule_if_active(service: ReminderService, medication: Medication) -> None:
    """有効かつ通知ONなら予約する。"""

    scheduler = service.scheduler
    if not medication.is_active or not scheduler.notifications_enabled():
        return
    try:
        scheduler.schedule_medication_alarms(medication, scheduler.resolve_lead_minutes(medication))
    except AlarmServiceUnavailable as exc:
        logger.error("alarm service unavailable: medication_id=%s error=%s", medication.id, str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="alarm service unavailable; medication saved, alarms will be rescheduled later",
        ) from exc


def _cancel_existing(service: ReminderService, medication: Medication) -> None:
    """旧時刻の今日/明日分を取り消す。"""

    try:
        service.scheduler.cancel_medication_alarms(medication.id, list(medication.schedule_times))
    except AlarmServiceUnavailable as exc:
        logger.error("alarm service unavailable on cancel: medication_id=%s error=%s", medication.id, str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="alarm service unavailable") from exc


@router.get("", response_model=list[schemas.MedicationResponse])
def list_medications(
    q: Optional[str] = Query(default=None, max_length=200),
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """薬の一覧を返す（q 指定時は名前の部分一致、名前順）。"""

    rows = service.medication_store.search(q) if q else service.medication_store.list_all()
    return [_to_response(r) for r in rows]


@router.post("", response_model=schemas.MedicationResponse, status_code=status.HTTP_201_CREATED)
def create_medication(
    request: schemas.MedicationCreateRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """薬を登録し、アラームを予約する。"""

    row = service.medication_store.create(
        values=request.model_dump(),
        now_utc_ts=int(service.clock.now_system_utc_ts()),
    )
    logger.info("medication created: id=%s", row.id)
    _schedule_if_active(service, medication_from_row(row))
    return _to_response(row)


@router.get("/{medication_id}", response_model=schemas.MedicationResponse)
def get_medication(medication_id: int, service: ReminderService = Depends(get_reminder_service_dep)):
    """薬を1件返す。"""

    row = service.medication_store.get_row(medication_id)
    if row is None:
        raise HTTPException(status_code=404, detail="medication not found")
    return _to_response(row)


@router.put("/{medication_id}", response_model=schemas.MedicationResponse)
def update_medication(
    medication_id: int,
    request: schemas.MedicationUpdateRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """薬を更新し、アラームを予約し直す。"""

    current = service.medication_store.get_by_id(medication_id)
    if current is None:
        raise HTTPException(status_code=404, detail="medication not found")

    # --- 先に旧時刻を取り消す（停止/時刻変更のどちらでも残さない） ---
    _cancel_existing(service, current)

    # --- null を許すのは lead_minutes だけ（null = グローバル設定に戻す） ---
    values = {
        k: v for k, v in request.model_dump(exclude_unset=True).items() if v is not None or k == "lead_minutes"
    }
    row = service.medication_store.update(
        medication_id,
        values=values,
        now_utc_ts=int(service.clock.now_system_utc_ts()),
    )
    if row is None:
        raise HTTPException(status_code=404, detail="medication not found")
    logger.info("medication updated: id=%s fields=%s", medication_id, sorted(values.keys()))
    _schedule_if_active(service, medication_from_row(row))
    return _to_response(row)


@router.delete("/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_medication(medication_id: int, service: ReminderService = Depends(get_reminder_service_dep)) -> Response:
    """アラームを取り消してから薬を削除する。"""

    current = service.medication_store.get_by_id(medication_id)
    if current is None:
        raise HTTPException(status_code=404, detail="medication not found")
    _cancel_existing(service, current)
    service.medication_store.delete(medication_id)
    logger.info("medication deleted: id=%s", medication_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
