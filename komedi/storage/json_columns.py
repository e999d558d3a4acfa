"""
JSON を入れる Text 列の読み書き。

対象は2つだけ:
    - pending_alarms.payload_json（アラームに載せる dict）
    - medications.schedule_times_json（服薬時刻の list）

壊れた値は空として読む（1行の破損で一覧や発火を止めない）。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable


logger = logging.getLogger(__name__)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def _loads(text_in: str | None) -> Any:
    s = str(text_in or "").strip()
    if not s:
        return None
    try:
        return json.loads(s)
    except ValueError:
        logger.warning("broken json column ignored: %r", s[:80])
        return None


def encode_payload(payload: dict[str, Any] | None) -> str:
    """アラーム payload を保存用文字列にする。"""
    return _dumps(dict(payload or {}))


def decode_payload(text_in: str | None) -> dict[str, Any]:
    """保存済み payload を dict で返す（dict 以外は空）。"""
    obj = _loads(text_in)
    return obj if isinstance(obj, dict) else {}


def encode_schedule_times(times: Iterable[Any] | None) -> str:
    """服薬時刻リストを保存用文字列にする（順序は保つ）。"""
    return _dumps([str(t) for t in (times or [])])


def decode_schedule_times(text_in: str | None) -> list[str]:
    """
    保存済みの服薬時刻リストを返す。

    NOTE: 値は正規化しない。不正な時刻は計画時に1件ずつ失敗として扱う。
    """
    obj = _loads(text_in)
    if not isinstance(obj, list):
        return []
    return [str(t) for t in obj if t is not None]
