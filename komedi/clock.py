"""
アプリ内時計。

リマインダーの「今」は domain 時刻（= system 時刻 + オフセット）で決める。
オフセットは /api/clock/advance から進められるので、翌朝のアラームなども
実時間を待たずに確認できる。
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable


@dataclass(frozen=True)
class ClockSnapshot:
    """同一時点の system / domain 時刻。"""

    system_now_utc_ts: int
    domain_now_utc_ts: int
    domain_offset_seconds: int


class ClockService:
    """system 時刻と、前進だけできる domain 時刻を持つ時計。"""

    def __init__(self, time_source: Callable[[], float] | None = None) -> None:
        self._time_source = time_source or time.time
        self._offset_lock = threading.Lock()
        self._offset_seconds = 0

    def _read(self) -> tuple[int, int]:
        with self._offset_lock:
            offset = self._offset_seconds
        return int(self._time_source()), offset

    def now_system_utc_ts(self) -> int:
        """OS の現在時刻（UTC epoch 秒）。"""
        return self._read()[0]

    def now_domain_utc_ts(self) -> int:
        """リマインダーが使う現在時刻（UTC epoch 秒）。"""
        system_now, offset = self._read()
        return system_now + offset

    def now_local(self) -> datetime:
        """domain 時刻を、実行環境のタイムゾーン付き datetime で返す。"""
        return datetime.fromtimestamp(self.now_domain_utc_ts()).astimezone()

    def advance_domain_seconds(self, *, seconds: int) -> int:
        """
        domain 時刻を seconds 秒進め、変更後のオフセットを返す。

        Raises:
            ValueError: seconds が 1 未満（巻き戻しは通知済み記録と矛盾するため不可）。
        """
        step = int(seconds)
        if step < 1:
            raise ValueError("seconds must be >= 1")
        with self._offset_lock:
            self._offset_seconds += step
            return self._offset_seconds

    def snapshot(self) -> ClockSnapshot:
        system_now, offset = self._read()
        return ClockSnapshot(
            system_now_utc_ts=system_now,
            domain_now_utc_ts=system_now + offset,
            domain_offset_seconds=offset,
        )


_clock_service = ClockService()


def get_clock_service() -> ClockService:
    """アプリ共有の時計を返す。"""
    return _clock_service
