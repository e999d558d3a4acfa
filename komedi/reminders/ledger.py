"""
発行済みアラームキーの台帳。

アラームサービス側は予約の一覧を返せない前提なので、
スケジューラが発行したキーをここへ記録し、全件キャンセルで使う。
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import sessionmaker

from komedi.storage.db import session_scope
from komedi.storage.models import IssuedAlarmKey


class IssuedKeyLedger:
    """issued_alarm_keys テーブル専用のリポジトリ。"""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def record(self, *, key: str, medication_id: int, time_of_day: str, calendar_date: date, now_utc_ts: int) -> None:
        """発行したキーを記録する（同じキーは上書き）。"""

        with session_scope(self._session_factory) as db:
            db.merge(
                IssuedAlarmKey(
                    key=str(key),
                    medication_id=int(medication_id),
                    time_of_day=str(time_of_day),
                    calendar_date=calendar_date.isoformat(),
                    issued_at=int(now_utc_ts),
                )
            )

    def forget(self, keys: list[str]) -> None:
        """キーを台帳から外す。"""

        if not keys:
            return
        with session_scope(self._session_factory) as db:
            db.query(IssuedAlarmKey).filter(IssuedAlarmKey.key.in_([str(k) for k in keys])).delete(
                synchronize_session=False
            )

    def all_keys(self) -> list[str]:
        """記録済みの全キーを返す。"""

        with session_scope(self._session_factory) as db:
            return [str(r.key) for r in db.query(IssuedAlarmKey.key).order_by(IssuedAlarmKey.key).all()]

    def medication_ids(self) -> list[int]:
        """キーが記録されている薬IDを返す。"""

        with session_scope(self._session_factory) as db:
            rows = db.query(IssuedAlarmKey.medication_id).distinct().order_by(IssuedAlarmKey.medication_id).all()
            return [int(r.medication_id) for r in rows]

    def keys_for_medication(self, medication_id: int) -> list[str]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(IssuedAlarmKey.key)
                .filter(IssuedAlarmKey.medication_id == int(medication_id))
                .order_by(IssuedAlarmKey.key)
                .all()
            )
            return [str(r.key) for r in rows]

    def purge_before(self, calendar_date: date) -> int:
        """指定日より前の記録を削除する（発火済み/期限切れのキー）。"""

        with session_scope(self._session_factory) as db:
            n = (
                db.query(IssuedAlarmKey)
                .filter(IssuedAlarmKey.calendar_date < calendar_date.isoformat())
                .delete(synchronize_session=False)
            )
        return int(n or 0)
