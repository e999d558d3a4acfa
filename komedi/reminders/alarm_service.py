"""
ローカルアラームサービス（pending_alarms テーブル実装）。

OSのアラーム機構の代わりに、予約を komedi.db に保持し、
定期 tick で期限の来た予約をハンドラへ渡す。

方針:
    - 同じ key の schedule は置き換える（UPSERT）。
    - 存在しない key の cancel は何もしない。
    - exact 予約が許可されていない場合は SchedulingPermissionDenied を投げる
      （呼び出し側が inexact で再試行する）。
    - DB 例外は AlarmServiceUnavailable に包んで呼び出し側へ伝える。
    - 発火した予約はハンドラ完了後に削除する（at-least-once。重複は DuplicateGuard が吸収する）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from komedi.storage import json_columns
from komedi.reminders.errors import AlarmServiceUnavailable, SchedulingPermissionDenied
from komedi.storage.db import session_scope
from komedi.storage.models import PendingAlarm
from komedi.time_utils import to_utc_ts


logger = logging.getLogger(__name__)

# 1回の tick で処理する最大件数（遅延時に1回の処理が膨らまないように）
_MAX_FIRE_PER_TICK = 50


@dataclass(frozen=True)
class DueAlarm:
    """発火対象の予約。"""

    key: str
    fire_at_utc: int
    payload: dict[str, Any]


class LocalAlarmService:
    """komedi.db に予約を保持するアラームサービス。"""

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        exact_alarms_allowed: bool = True,
        now_utc_ts: Callable[[], int] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._exact_alarms_allowed = bool(exact_alarms_allowed)
        self._now_utc_ts = now_utc_ts or (lambda: int(datetime.now().timestamp()))

    @property
    def exact_alarms_allowed(self) -> bool:
        """exact 予約が許可されているかを返す。"""
        return self._exact_alarms_allowed

    def set_exact_alarms_allowed(self, allowed: bool) -> None:
        """exact 予約の許可を切り替える（OS権限の変化に相当）。"""
        self._exact_alarms_allowed = bool(allowed)

    def schedule(self, key: str, fire_at: datetime, payload: dict[str, Any], *, exact: bool = True) -> None:
        """予約する（同じ key は置き換える）。"""

        if exact and not self._exact_alarms_allowed:
            raise SchedulingPermissionDenied("exact alarms are not permitted")

        try:
            with session_scope(self._session_factory) as db:
                db.merge(
                    PendingAlarm(
                        key=str(key),
                        fire_at_utc=to_utc_ts(fire_at),
                        exact=1 if exact else 0,
                        payload_json=json_columns.encode_payload(payload),
                        updated_at=int(self._now_utc_ts()),
                    )
                )
        except SQLAlchemyError as exc:
            raise AlarmServiceUnavailable(f"failed to schedule alarm: key={key}") from exc

    def cancel(self, key: str) -> None:
        """予約を取り消す（無ければ何もしない）。"""

        try:
            with session_scope(self._session_factory) as db:
                db.query(PendingAlarm).filter(PendingAlarm.key == str(key)).delete(synchronize_session=False)
        except SQLAlchemyError as exc:
            raise AlarmServiceUnavailable(f"failed to cancel alarm: key={key}") from exc

    def list_pending(self) -> list[DueAlarm]:
        """予約を発火時刻順で返す。"""

        try:
            with session_scope(self._session_factory) as db:
                rows = db.query(PendingAlarm).order_by(PendingAlarm.fire_at_utc, PendingAlarm.key).all()
                return [
                    DueAlarm(
                        key=str(r.key),
                        fire_at_utc=int(r.fire_at_utc),
                        payload=json_columns.decode_payload(r.payload_json),
                    )
                    for r in rows
                ]
        except SQLAlchemyError as exc:
            raise AlarmServiceUnavailable("failed to list alarms") from exc

    def fire_due(self, *, now_utc_ts: int, handler: Callable[[DueAlarm], None]) -> int:
        """
        期限の来た予約をハンドラへ渡す。

        - ハンドラが例外を投げた予約は残す（次の tick で再送）。
        - ハンドラ中に同じ key が別時刻で置き換えられた場合は削除しない。

        Returns:
            ハンドラを正常完了した件数。
        """

        # --- 期限の来た予約を取り出す ---
        try:
            with session_scope(self._session_factory) as db:
                rows = (
                    db.query(PendingAlarm)
                    .filter(PendingAlarm.fire_at_utc <= int(now_utc_ts))
                    .order_by(PendingAlarm.fire_at_utc, PendingAlarm.key)
                    .limit(int(_MAX_FIRE_PER_TICK))
                    .all()
                )
                due = [
                    DueAlarm(
                        key=str(r.key),
                        fire_at_utc=int(r.fire_at_utc),
                        payload=json_columns.decode_payload(r.payload_json),
                    )
                    for r in rows
                ]
        except SQLAlchemyError as exc:
            raise AlarmServiceUnavailable("failed to read due alarms") from exc

        fired = 0
        for alarm in due:
            try:
                handler(alarm)
            except Exception as exc:  # noqa: BLE001
                # --- 1件の失敗で他の発火を止めない ---
                logger.exception("alarm handler failed: key=%s error=%s", alarm.key, str(exc))
                continue

            # --- ハンドラ完了後に削除（置き換え済みなら残す） ---
            try:
                with session_scope(self._session_factory) as db:
                    db.query(PendingAlarm).filter(
                        PendingAlarm.key == alarm.key,
                        PendingAlarm.fire_at_utc == int(alarm.fire_at_utc),
                    ).delete(synchronize_session=False)
            except SQLAlchemyError as exc:
                raise AlarmServiceUnavailable(f"failed to complete alarm: key={alarm.key}") from exc
            fired += 1
        return fired
