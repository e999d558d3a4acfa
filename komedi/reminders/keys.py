"""
発火予定のキー導出。

同じ (medication_id, time_of_day, calendar_date) からは常に同じキーを作る。
アラームサービスの「同じキーなら置き換え」と、重複通知の抑止の両方で使う。
"""

from __future__ import annotations

import hashlib
from datetime import date


KEY_PREFIX = "med-"
_DIGEST_CHARS = 32


def canonical_occurrence_text(medication_id: int, time_of_day: str, calendar_date: date) -> str:
    """
    キーの元になる正規化文字列を返す。

    区切り文字を入れるので、フィールド境界がずれても同じ文字列にならない
    （例: id=1,"200" と id=12,"00"）。
    """
    return f"{int(medication_id)}|{str(time_of_day)}|{calendar_date.isoformat()}"


def derive_occurrence_key(medication_id: int, time_of_day: str, calendar_date: date) -> str:
    """発火予定のキーを返す（sha256 の先頭32桁）。"""
    src = canonical_occurrence_text(medication_id, time_of_day, calendar_date)
    digest = hashlib.sha256(src.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]
    return f"{KEY_PREFIX}{digest}"
