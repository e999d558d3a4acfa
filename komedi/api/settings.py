"""
/settings エンドポイント

ユーザー設定（通知ON/OFF、リード時間、表示名、ダークモード）の取得/更新。
通知ON/OFF・リード時間が変わったら、全件を予約し直す（OFFなら全件取消）。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from komedi import schemas
from komedi.app_bootstrap.dependencies import get_reminder_service_dep
from komedi.reminders.errors import AlarmServiceUnavailable
from komedi.reminders.service import ReminderService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])

# 変わったら再スケジュールが必要な設定
_SCHEDULE_AFFECTING_KEYS = {"notifications_enabled", "lead_minutes"}


@router.get("", response_model=schemas.SettingsResponse)
def get_settings(service: ReminderService = Depends(get_reminder_service_dep)):
    """現在の設定を返す。"""

    return schemas.SettingsResponse(**service.settings_store.snapshot())


@router.put("", response_model=schemas.SettingsResponse)
def update_settings(
    request: schemas.SettingsUpdateRequest,
    service: ReminderService = Depends(get_reminder_service_dep),
):
    """設定を部分更新する。"""

    values = {k: v for k, v in request.model_dump(exclude_unset=True).items() if v is not None}
    before = service.settings_store.snapshot()
    after = service.settings_store.update(values=values, now_utc_ts=int(service.clock.now_system_utc_ts()))
    logger.info("settings updated: fields=%s", sorted(values.keys()))

    # --- 予約に効く設定が変わったら全件を予約し直す ---
    if any(before.get(k) != after.get(k) for k in _SCHEDULE_AFFECTING_KEYS):
        try:
            service.maintenance()
        except AlarmServiceUnavailable as exc:
            logger.error("alarm service unavailable on settings change: %s", str(exc))
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="alarm service unavailable") from exc
    return schemas.SettingsResponse(**after)
