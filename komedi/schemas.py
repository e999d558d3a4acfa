"""
API リクエスト/レスポンスの Pydantic モデル

FastAPI エンドポイントで使用するリクエスト/レスポンスのスキーマ定義。
バリデーション、シリアライゼーション、OpenAPI ドキュメント生成に使用される。
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from komedi.reminders.times import is_valid_time_of_day


def _validate_schedule_times(v: List[str]) -> List[str]:
    """服薬時刻リストの検証（HH:MM のみ、重複は除く）。"""
    out: List[str] = []
    for t in v:
        if not is_valid_time_of_day(t):
            raise ValueError(f"invalid schedule time (expected HH:MM): {t!r}")
        if t not in out:
            out.append(t)
    return out


# --- 薬 ---


class MedicationCreateRequest(BaseModel):
    """
    POST /medications 用リクエスト。
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    dosage_amount: str = ""               # 例: "20mg"
    dosage_unit: str = "pill"
    frequency: int = Field(default=1, ge=1, le=24)  # 1日の回数（目安）
    schedule_times: List[str] = Field(default_factory=list, max_length=24)  # ["08:00", "20:00"]
    instructions: str = ""
    lead_minutes: Optional[int] = Field(default=None, ge=0, le=720)  # None: グローバル設定を使う
    is_active: bool = True
    notes: str = ""

    @field_validator("schedule_times")
    @classmethod
    def _validate_times(cls, v: List[str]) -> List[str]:
        return _validate_schedule_times(v)


class MedicationUpdateRequest(BaseModel):
    """
    PUT /medications/{id} 用リクエスト（部分更新）。
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    dosage_amount: Optional[str] = None
    dosage_unit: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=1, le=24)
    schedule_times: Optional[List[str]] = Field(default=None, max_length=24)
    instructions: Optional[str] = None
    lead_minutes: Optional[int] = Field(default=None, ge=0, le=720)
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("schedule_times")
    @classmethod
    def _validate_times(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return _validate_schedule_times(v)


class MedicationResponse(BaseModel):
    """薬の表示用レスポンス。"""

    id: int
    name: str
    description: str
    dosage_amount: str
    dosage_unit: str
    frequency: int
    schedule_times: List[str]
    instructions: str
    lead_minutes: Optional[int]
    is_active: bool
    notes: str
    created_at: int
    updated_at: int


# --- 服薬記録 ---


class MedicationLogRequest(BaseModel):
    """
    POST /medications/{id}/logs 用リクエスト。

    calendar_date を省略すると今日（domain 時刻）として記録する。
    """
    model_config = ConfigDict(extra="forbid")

    scheduled_time: str                    # "08:00"
    calendar_date: Optional[date] = None
    taken: bool = True
    skipped: bool = False
    notes: str = Field(default="", max_length=1000)

    @field_validator("scheduled_time")
    @classmethod
    def _validate_scheduled_time(cls, v: str) -> str:
        if not is_valid_time_of_day(v):
            raise ValueError(f"invalid scheduled time (expected HH:MM): {v!r}")
        return v

    @model_validator(mode="after")
    def _validate_state(self) -> "MedicationLogRequest":
        if self.taken and self.skipped:
            raise ValueError("taken and skipped cannot both be true")
        return self


class MedicationLogResponse(BaseModel):
    """服薬記録の表示用レスポンス。"""

    id: int
    medication_id: int
    scheduled_time: str
    calendar_date: str
    taken_at: int
    taken_at_local: Optional[str]
    taken: bool
    skipped: bool
    notes: str


# --- 設定 ---


class SettingsResponse(BaseModel):
    """GET /settings 用レスポンス。"""

    notifications_enabled: bool
    lead_minutes: int
    display_name: str
    dark_mode: bool


class SettingsUpdateRequest(BaseModel):
    """PUT /settings 用リクエスト（部分更新）。"""
    model_config = ConfigDict(extra="forbid")

    notifications_enabled: Optional[bool] = None
    lead_minutes: Optional[int] = Field(default=None, ge=0, le=720)
    display_name: Optional[str] = Field(default=None, max_length=100)
    dark_mode: Optional[bool] = None


# --- アラーム ---


class PendingAlarmResponse(BaseModel):
    """予約中アラーム。"""

    key: str
    fire_at_utc: int
    fire_at_local: Optional[str]
    payload: Dict[str, Any]


class RescheduleResponse(BaseModel):
    """POST /alarms/reschedule 用レスポンス。"""

    notifications_enabled: bool
    scheduled_count: int
    skipped_count: int
    invalid_times: List[Dict[str, Any]]
    failed: Dict[str, str]
    cancelled_count: int


class FireAlarmRequest(BaseModel):
    """POST /alarms/fire 用リクエスト（手動発火）。"""
    model_config = ConfigDict(extra="forbid")

    medication_id: int
    time_of_day: str


class FireAlarmResponse(BaseModel):
    """POST /alarms/fire 用レスポンス。"""

    outcome: str


# --- 時計 ---


class ClockAdvanceRequest(BaseModel):
    """POST /clock/advance 用リクエスト。"""
    model_config = ConfigDict(extra="forbid")

    seconds: int = Field(ge=1)


class ClockResponse(BaseModel):
    """時計状態。"""

    system_now_utc_ts: int
    domain_now_utc_ts: int
    domain_offset_seconds: int
    domain_now_local: Optional[str]
