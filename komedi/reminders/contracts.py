"""
リマインダー契約モデル。

目的:
    - スケジューラが読む「薬」と、計画結果の「発火予定（occurrence）」の形を1箇所に固定する。
    - 外部協調者（薬ストア/設定ストア/アラームサービス/通知表示）の入口を Protocol で定義する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Protocol, Sequence


# --- occurrence の種別 ---
KIND_NORMAL = "normal"
KIND_IMMEDIATE = "immediate"
KIND_NEXT_DAY = "next_day"

# --- 設定キー（SettingsStore.get に渡す） ---
SETTING_NOTIFICATIONS_ENABLED = "notifications_enabled"
SETTING_LEAD_MINUTES = "lead_minutes"
DEFAULT_NOTIFICATIONS_ENABLED = True
DEFAULT_LEAD_MINUTES = 15

DEFAULT_INSTRUCTIONS = "Time to take your medication"


@dataclass(frozen=True)
class Medication:
    """
    スケジューラが参照する薬（読み取り専用）。

    - schedule_times を正とする（frequency と件数がずれていても times に従う）。
    - lead_minutes が None のときはグローバル設定を使う。
    """

    id: int
    name: str
    dosage_amount: str = ""
    instructions: str = ""
    schedule_times: tuple[str, ...] = ()
    frequency: int = 1
    is_active: bool = True
    lead_minutes: Optional[int] = None


@dataclass(frozen=True)
class Occurrence:
    """計画された1回分のリマインダー（永続化しない）。"""

    medication_id: int
    time_of_day: str
    calendar_date: date
    fire_at: datetime
    kind: str


@dataclass(frozen=True)
class PlanFailure:
    """計画時に解析できなかった服薬時刻。"""

    medication_id: int
    time_of_day: str
    reason: str


@dataclass(frozen=True)
class Plan:
    """1つの薬に対する計画結果。"""

    occurrences: list[Occurrence] = field(default_factory=list)
    failures: list[PlanFailure] = field(default_factory=list)


class MedicationStore(Protocol):
    """薬ストア（読み取りのみ使う）。"""

    def list_active(self) -> Sequence[Medication]: ...

    def get_by_id(self, medication_id: int) -> Optional[Medication]: ...


class SettingsStore(Protocol):
    """ユーザー設定ストア（キー/値）。"""

    def get(self, key: str, default: Any = None) -> Any: ...


class AlarmService(Protocol):
    """
    指定時刻にコールバックするアラームサービス。

    - 同じ key で schedule した場合は置き換える（重複させない）。
    - 存在しない key の cancel は何もしない。
    """

    def schedule(self, key: str, fire_at: datetime, payload: dict[str, Any], *, exact: bool = True) -> None: ...

    def cancel(self, key: str) -> None: ...


class NotificationPresenter(Protocol):
    """ユーザーへ通知を見せる。"""

    def show(self, payload: dict[str, Any]) -> None: ...
