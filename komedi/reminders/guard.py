"""
重複通知の抑止（DuplicateGuard）。

アラームサービスが同じ発火予定でハンドラを2回以上呼んでも、
ユーザーに見える通知は1回にする。

方針:
    - (calendar_date, occurrence_key) の一意制約で「通知済み」を記録する。
    - 当日と前日だけを保持し、それより古い行は記録のついでに消す。
    - 参照/更新するのは発火ハンドラだけ（計画側は読まない）。
"""

from __future__ import annotations

import logging
import threading
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from komedi.storage.db import session_scope
from komedi.storage.models import NotifiedOccurrence


logger = logging.getLogger(__name__)


class DuplicateGuard:
    """通知済み発火予定の記録。"""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()

    def is_notified(self, calendar_date: date, occurrence_key: str) -> bool:
        """通知済みかを返す。"""

        with session_scope(self._session_factory) as db:
            row = (
                db.query(NotifiedOccurrence.id)
                .filter(
                    NotifiedOccurrence.calendar_date == calendar_date.isoformat(),
                    NotifiedOccurrence.occurrence_key == str(occurrence_key),
                )
                .first()
            )
            return row is not None

    def try_mark(self, calendar_date: date, occurrence_key: str, *, now_utc_ts: int) -> bool:
        """
        通知済みとして記録する。

        Returns:
            True: 今回はじめて記録した（通知してよい）
            False: 既に記録済み（重複なので通知しない）
        """

        day = calendar_date.isoformat()
        with self._lock:
            try:
                with session_scope(self._session_factory) as db:
                    # --- 前日より古い記録を掃除する ---
                    cutoff = (calendar_date - timedelta(days=1)).isoformat()
                    db.query(NotifiedOccurrence).filter(NotifiedOccurrence.calendar_date < cutoff).delete(
                        synchronize_session=False
                    )

                    exists = (
                        db.query(NotifiedOccurrence.id)
                        .filter(
                            NotifiedOccurrence.calendar_date == day,
                            NotifiedOccurrence.occurrence_key == str(occurrence_key),
                        )
                        .first()
                    )
                    if exists is not None:
                        return False
                    db.add(
                        NotifiedOccurrence(
                            calendar_date=day,
                            occurrence_key=str(occurrence_key),
                            notified_at=int(now_utc_ts),
                        )
                    )
            except IntegrityError:
                # --- 別プロセスが先に記録した ---
                logger.info("duplicate notification suppressed: date=%s key=%s", day, occurrence_key)
                return False
        return True
