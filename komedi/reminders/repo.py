"""
薬ストア/設定ストア/服薬記録ストア（komedi.db 実装）。

スケジューラは MedicationStore / SettingsStore の Protocol だけを見る。
ここでは HTTP API とスケジューラの両方から使う SQLAlchemy 実装を提供する。
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session, sessionmaker

from komedi.storage import json_columns
from komedi.reminders.contracts import (
    DEFAULT_LEAD_MINUTES,
    DEFAULT_NOTIFICATIONS_ENABLED,
    Medication,
)
from komedi.storage.db import session_scope
from komedi.storage.models import AppSettings, MedicationLogRow, MedicationRow


logger = logging.getLogger(__name__)

_SETTINGS_ROW_ID = 1
_SETTINGS_KEYS = {"notifications_enabled", "lead_minutes", "display_name", "dark_mode"}
_BOOL_SETTINGS = {"notifications_enabled", "dark_mode"}


def medication_from_row(row: MedicationRow) -> Medication:
    """ORM行をスケジューラ用の Medication へ変換する。"""

    return Medication(
        id=int(row.id),
        name=str(row.name),
        dosage_amount=str(row.dosage_amount or ""),
        instructions=str(row.instructions or ""),
        schedule_times=tuple(json_columns.decode_schedule_times(row.schedule_times_json)),
        frequency=int(row.frequency or 0),
        is_active=bool(row.is_active),
        lead_minutes=(int(row.lead_minutes) if row.lead_minutes is not None else None),
    )


class SqlMedicationStore:
    """medications テーブル専用のリポジトリ。"""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def list_active(self) -> list[Medication]:
        """有効な薬を id 順で返す。"""

        with session_scope(self._session_factory) as db:
            rows = db.query(MedicationRow).filter(MedicationRow.is_active == 1).order_by(MedicationRow.id).all()
            return [medication_from_row(r) for r in rows]

    def list_all(self) -> list[MedicationRow]:
        """全件を返す（API表示用。セッション外でも読めるよう expunge する）。"""

        with session_scope(self._session_factory) as db:
            rows = db.query(MedicationRow).order_by(MedicationRow.id).all()
            for r in rows:
                db.expunge(r)
            return rows

    def search(self, query: str) -> list[MedicationRow]:
        """名前の部分一致で検索し、名前順で返す。"""

        with session_scope(self._session_factory) as db:
            rows = (
                db.query(MedicationRow)
                .filter(MedicationRow.name.contains(str(query), autoescape=True))
                .order_by(MedicationRow.name, MedicationRow.id)
                .all()
            )
            for r in rows:
                db.expunge(r)
            return rows

    def get_by_id(self, medication_id: int) -> Optional[Medication]:
        """id で薬を返す（無ければ None）。"""

        with session_scope(self._session_factory) as db:
            row = db.get(MedicationRow, int(medication_id))
            return medication_from_row(row) if row is not None else None

    def get_row(self, medication_id: int) -> Optional[MedicationRow]:
        """id でORM行を返す（API表示用）。"""

        with session_scope(self._session_factory) as db:
            row = db.get(MedicationRow, int(medication_id))
            if row is not None:
                db.expunge(row)
            return row

    def create(self, *, values: dict[str, Any], now_utc_ts: int) -> MedicationRow:
        """薬を登録して返す。"""

        with session_scope(self._session_factory) as db:
            row = MedicationRow(created_at=int(now_utc_ts), updated_at=int(now_utc_ts))
            _apply_values(row, values)
            db.add(row)
            db.flush()
            db.refresh(row)
            db.expunge(row)
            return row

    def update(self, medication_id: int, *, values: dict[str, Any], now_utc_ts: int) -> Optional[MedicationRow]:
        """薬を更新して返す（無ければ None）。"""

        with session_scope(self._session_factory) as db:
            row = db.get(MedicationRow, int(medication_id))
            if row is None:
                return None
            _apply_values(row, values)
            row.updated_at = int(now_utc_ts)
            db.flush()
            db.refresh(row)
            db.expunge(row)
            return row

    def delete(self, medication_id: int) -> bool:
        """薬を削除する。削除したら True。"""

        with session_scope(self._session_factory) as db:
            row = db.get(MedicationRow, int(medication_id))
            if row is None:
                return False
            db.delete(row)
            return True


def _apply_values(row: MedicationRow, values: dict[str, Any]) -> None:
    """API入力（dict）をORM行へ反映する。"""

    for name, value in values.items():
        if name == "schedule_times":
            row.schedule_times_json = json_columns.encode_schedule_times(value)
        elif name == "is_active":
            row.is_active = 1 if bool(value) else 0
        else:
            setattr(row, name, value)


class SqlSettingsStore:
    """app_settings（単一行）のキー/値アクセス。"""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, key: str, default: Any = None) -> Any:
        """設定値を返す（行やキーが無ければ default）。"""

        if key not in _SETTINGS_KEYS:
            return default
        with session_scope(self._session_factory) as db:
            row = db.get(AppSettings, _SETTINGS_ROW_ID)
            if row is None:
                return default
            value = getattr(row, key)
        if key in _BOOL_SETTINGS:
            return bool(value)
        return value

    def snapshot(self) -> dict[str, Any]:
        """全設定を dict で返す。"""

        return {
            "notifications_enabled": bool(self.get("notifications_enabled", DEFAULT_NOTIFICATIONS_ENABLED)),
            "lead_minutes": int(self.get("lead_minutes", DEFAULT_LEAD_MINUTES)),
            "display_name": str(self.get("display_name", "") or ""),
            "dark_mode": bool(self.get("dark_mode", False)),
        }

    def update(self, *, values: dict[str, Any], now_utc_ts: int) -> dict[str, Any]:
        """設定を部分更新し、更新後の全設定を返す。"""

        unknown = sorted(set(values.keys()) - _SETTINGS_KEYS)
        if unknown:
            raise ValueError(f"unknown setting key(s): {', '.join(unknown)}")
        if "lead_minutes" in values and int(values["lead_minutes"]) < 0:
            raise ValueError("lead_minutes must be >= 0")

        with session_scope(self._session_factory) as db:
            row = _ensure_settings_row(db)
            for name, value in values.items():
                if name in _BOOL_SETTINGS:
                    setattr(row, name, 1 if bool(value) else 0)
                else:
                    setattr(row, name, value)
            row.updated_at = int(now_utc_ts)
        return self.snapshot()


def _ensure_settings_row(db: Session, *, default_lead_minutes: int = DEFAULT_LEAD_MINUTES) -> AppSettings:
    row = db.get(AppSettings, _SETTINGS_ROW_ID)
    if row is None:
        row = AppSettings(
            id=_SETTINGS_ROW_ID,
            notifications_enabled=1 if DEFAULT_NOTIFICATIONS_ENABLED else 0,
            lead_minutes=int(default_lead_minutes),
            display_name="",
            dark_mode=0,
            updated_at=0,
        )
        db.add(row)
        db.flush()
    return row


def ensure_initial_settings(db: Session, *, default_lead_minutes: int) -> None:
    """設定の初期行を作成する（既にあれば何もしない）。"""

    if db.get(AppSettings, _SETTINGS_ROW_ID) is not None:
        return
    _ensure_settings_row(db, default_lead_minutes=default_lead_minutes)
    logger.info("initial app settings created: lead_minutes=%s", int(default_lead_minutes))


class SqlMedicationLogStore:
    """
    medication_logs テーブル専用のリポジトリ。

    記録は (薬, 日付, 予定時刻) ごとに1行で、同じ枠への記録は上書きする。
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def list_for_medication(self, medication_id: int) -> list[MedicationLogRow]:
        """薬の記録を新しい順で返す。"""

        with session_scope(self._session_factory) as db:
            rows = (
                db.query(MedicationLogRow)
                .filter(MedicationLogRow.medication_id == int(medication_id))
                .order_by(MedicationLogRow.taken_at.desc(), MedicationLogRow.id.desc())
                .all()
            )
            for r in rows:
                db.expunge(r)
            return rows

    def list_for_date(self, calendar_date: date, *, medication_id: Optional[int] = None) -> list[MedicationLogRow]:
        """日付の記録を予定時刻順で返す。"""

        with session_scope(self._session_factory) as db:
            q = db.query(MedicationLogRow).filter(MedicationLogRow.calendar_date == calendar_date.isoformat())
            if medication_id is not None:
                q = q.filter(MedicationLogRow.medication_id == int(medication_id))
            rows = q.order_by(MedicationLogRow.scheduled_time, MedicationLogRow.medication_id).all()
            for r in rows:
                db.expunge(r)
            return rows

    def get_for_scheduled_time(
        self, medication_id: int, calendar_date: date, scheduled_time: str
    ) -> Optional[MedicationLogRow]:
        with session_scope(self._session_factory) as db:
            row = _find_log(db, medication_id, calendar_date, scheduled_time)
            if row is not None:
                db.expunge(row)
            return row

    def record(
        self,
        *,
        medication_id: int,
        scheduled_time: str,
        calendar_date: date,
        taken: bool,
        skipped: bool,
        notes: str,
        taken_at: int,
    ) -> MedicationLogRow:
        """服薬を記録する（同じ枠に記録があれば更新する）。"""

        with session_scope(self._session_factory) as db:
            row = _find_log(db, medication_id, calendar_date, scheduled_time)
            if row is None:
                row = MedicationLogRow(
                    medication_id=int(medication_id),
                    scheduled_time=str(scheduled_time),
                    calendar_date=calendar_date.isoformat(),
                )
                db.add(row)
            row.taken = 1 if taken else 0
            row.skipped = 1 if skipped else 0
            row.notes = str(notes or "")
            row.taken_at = int(taken_at)
            db.flush()
            db.refresh(row)
            db.expunge(row)
        logger.info(
            "medication log recorded: medication_id=%s date=%s time=%s taken=%s skipped=%s",
            medication_id,
            calendar_date.isoformat(),
            scheduled_time,
            bool(taken),
            bool(skipped),
        )
        return row

    def delete(self, log_id: int) -> bool:
        """記録を削除する。削除したら True。"""

        with session_scope(self._session_factory) as db:
            row = db.get(MedicationLogRow, int(log_id))
            if row is None:
                return False
            db.delete(row)
            return True


def _find_log(db: Session, medication_id: int, calendar_date: date, scheduled_time: str) -> Optional[MedicationLogRow]:
    return (
        db.query(MedicationLogRow)
        .filter(
            MedicationLogRow.medication_id == int(medication_id),
            MedicationLogRow.calendar_date == calendar_date.isoformat(),
            MedicationLogRow.scheduled_time == str(scheduled_time),
        )
        .first()
    )
