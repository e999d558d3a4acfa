"""
アプリDB（komedi.db）のORMモデル定義

薬（medications）・服薬記録（medication_logs）・設定（app_settings）に加えて、
アラーム予約（pending_alarms）・発行済みキー（issued_alarm_keys）・
通知済み記録（notified_occurrences）を定義する。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from komedi.storage.db import KomediBase


class MedicationRow(KomediBase):
    """薬（ユーザーが登録する）。"""

    __tablename__ = "medications"

    # --- 主キーと基本情報 ---
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dosage_amount: Mapped[str] = mapped_column(Text, nullable=False, default="")  # 例: "20mg"
    dosage_unit: Mapped[str] = mapped_column(Text, nullable=False, default="pill")
    instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")  # 例: "After breakfast"

    # --- スケジュール ---
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1日の回数（目安）
    schedule_times_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # ["08:00","20:00"]
    lead_minutes: Mapped[Optional[int]] = mapped_column(Integer)  # None: グローバル設定を使う

    # --- 状態 ---
    is_active: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


class MedicationLogRow(KomediBase):
    """
    服薬記録（飲んだ/飛ばした）。

    - (薬, 日付, 予定時刻) ごとに1行。記録し直しは同じ行を更新する。
    - 薬を削除すると一緒に消える（ON DELETE CASCADE）。
    """

    __tablename__ = "medication_logs"
    __table_args__ = (
        UniqueConstraint("medication_id", "calendar_date", "scheduled_time", name="uq_medication_logs_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medication_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_time: Mapped[str] = mapped_column(Text, nullable=False)  # "08:00"
    calendar_date: Mapped[str] = mapped_column(Text, nullable=False, index=True)  # YYYY-MM-DD
    taken_at: Mapped[int] = mapped_column(Integer, nullable=False)  # 記録した時刻（UTC epoch 秒）
    taken: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")


class AppSettings(KomediBase):
    """ユーザー設定（単一行）。"""

    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    notifications_enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    lead_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    display_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dark_mode: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PendingAlarm(KomediBase):
    """
    アラーム予約（ローカルアラームサービスの保持分）。

    - key が主キー（同じ key の予約は置き換える）。
    - 発火後のハンドラ完了で削除する。
    """

    __tablename__ = "pending_alarms"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    fire_at_utc: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    exact: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


class IssuedAlarmKey(KomediBase):
    """スケジューラが発行したキーの台帳（全件キャンセル用）。"""

    __tablename__ = "issued_alarm_keys"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    medication_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    time_of_day: Mapped[str] = mapped_column(Text, nullable=False)
    calendar_date: Mapped[str] = mapped_column(Text, nullable=False)  # YYYY-MM-DD
    issued_at: Mapped[int] = mapped_column(Integer, nullable=False)


class NotifiedOccurrence(KomediBase):
    """通知済みの発火予定（当日と前日のみ保持）。"""

    __tablename__ = "notified_occurrences"
    __table_args__ = (
        UniqueConstraint("calendar_date", "occurrence_key", name="uq_notified_occurrences_date_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    calendar_date: Mapped[str] = mapped_column(Text, nullable=False, index=True)  # YYYY-MM-DD
    occurrence_key: Mapped[str] = mapped_column(Text, nullable=False)
    notified_at: Mapped[int] = mapped_column(Integer, nullable=False)
