"""
リマインダー機能の例外定義。

方針:
    - 例外は「何を諦めたか」が呼び出し側で判別できる粒度に分ける。
    - どれもユーザーへ直接見せるものではない（ログか、スキップとして扱う）。
"""

from __future__ import annotations


class ReminderError(Exception):
    """リマインダー機能の例外の基底クラス。"""


class InvalidTimeFormat(ReminderError, ValueError):
    """服薬時刻の文字列が HH:MM 形式ではない（その時刻だけスキップする）。"""

    def __init__(self, text: str) -> None:
        self.text = str(text)
        super().__init__(f"invalid time of day (expected HH:MM): {text!r}")


class SchedulingPermissionDenied(ReminderError):
    """アラームサービスが要求された精度での予約を許可しなかった。"""


class AlarmServiceUnavailable(ReminderError):
    """アラームサービスに到達できない（呼び出し側へ伝える）。"""


class MedicationNotFound(ReminderError, LookupError):
    """発火時に薬が見つからない（再予約するものが無いので何もしない）。"""

    def __init__(self, medication_id: int) -> None:
        self.medication_id = int(medication_id)
        super().__init__(f"medication not found: id={int(medication_id)}")
