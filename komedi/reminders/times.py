"""
服薬時刻（HH:MM）の解析。

許可する形式は「2桁の時(00..23) + ':' + 2桁の分(00..59)」のみ。
"8:00" や "08:00:00"、前後の空白も受け付けない（保存値を正とするため）。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time

from komedi.reminders.errors import InvalidTimeFormat


_TIME_OF_DAY_RE = re.compile(r"([01][0-9]|2[0-3]):([0-5][0-9])")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """1日のうちの時刻（時・分）。(hour, minute) の順で比較できる。"""

    hour: int
    minute: int

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_time(self) -> time:
        """datetime.time へ変換する。"""
        return time(self.hour, self.minute)


def parse_time_of_day(text: str) -> TimeOfDay:
    """
    HH:MM 形式の文字列を TimeOfDay へ変換する。

    Raises:
        InvalidTimeFormat: 形式が不正な場合。
    """
    if not isinstance(text, str):
        raise InvalidTimeFormat(str(text))
    m = _TIME_OF_DAY_RE.fullmatch(text)
    if m is None:
        raise InvalidTimeFormat(text)
    return TimeOfDay(hour=int(m.group(1)), minute=int(m.group(2)))


def is_valid_time_of_day(text: str) -> bool:
    """HH:MM として解析できるかを返す。"""
    try:
        parse_time_of_day(text)
    except InvalidTimeFormat:
        return False
    return True
