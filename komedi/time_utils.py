"""
時刻変換ユーティリティ。

DB には UTC epoch 秒を保存し、リマインダーの計画はローカル日時で行う。
ここではその境目の変換だけを扱う（ローカル = 実行環境のタイムゾーン）。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def format_iso8601_local_with_tz(ts_utc: Optional[int]) -> Optional[str]:
    """
    UTC epoch 秒を、タイムゾーン表記付きのローカル ISO 8601（秒精度）にする。

    例: 1781049600 -> "2026-06-10T09:00:00+09:00"（JST 環境）

    None や 0 以下は未設定として None を返す。
    """

    if ts_utc is None or int(ts_utc) <= 0:
        return None
    return datetime.fromtimestamp(int(ts_utc), tz=timezone.utc).astimezone().isoformat(timespec="seconds")


def to_utc_ts(dt: datetime) -> int:
    """datetime を UTC epoch 秒にする（naive はローカル時刻として扱う）。"""

    return int(dt.timestamp())
