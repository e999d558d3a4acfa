"""
リマインダー計画（純粋関数）。

「今」と薬の服薬時刻リスト、通知リード時間（分）から、
今日/明日に存在すべき発火予定（occurrence）を決める。

時刻ごとの判定（この優先順で評価する）:
    1. 今日の通知時刻（服薬時刻 - リード）がまだ先 → normal（その時刻）
    2. 通知時刻は過ぎたが服薬時刻はまだ先 → immediate（now + 5秒）
    3. どちらも過ぎた → 今日分は無し
    加えて、今日の判定に関係なく明日分の next_day を必ず1件出す。

NOTE:
    - 通知時刻は実際の日時で引き算する。日付を跨いで前日に落ちた場合は
      必ず now より前になるため、1. には入らず 2./3. で判定される。
    - 不正な時刻はその1件だけスキップし、失敗として結果に残す。
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from komedi.reminders.contracts import (
    KIND_IMMEDIATE,
    KIND_NEXT_DAY,
    KIND_NORMAL,
    Medication,
    Occurrence,
    Plan,
    PlanFailure,
)
from komedi.reminders.errors import InvalidTimeFormat
from komedi.reminders.times import TimeOfDay, parse_time_of_day


logger = logging.getLogger(__name__)

# 同じイベント処理の中で発火させないための猶予
IMMEDIATE_GRACE = timedelta(seconds=5)


def _at(day, tod: TimeOfDay, tzinfo) -> datetime:
    """日付と時刻を now と同じ tzinfo の datetime にする。"""
    return datetime.combine(day, tod.to_time(), tzinfo=tzinfo)


def plan_occurrences(now: datetime, medication: Medication, lead_minutes: int) -> Plan:
    """
    1つの薬について、今日と明日の発火予定を計画する。

    Args:
        now: 現在日時（ローカル）。calendar date は now.date() を今日とする。
        medication: 対象の薬。schedule_times を正とする。
        lead_minutes: 服薬時刻の何分前に通知するか（0以上）。

    Returns:
        Plan（occurrences と、解析できなかった時刻の failures）。
    """

    lead = timedelta(minutes=max(0, int(lead_minutes)))
    today = now.date()
    tomorrow = today + timedelta(days=1)
    tz = now.tzinfo

    occurrences: list[Occurrence] = []
    failures: list[PlanFailure] = []

    for raw in medication.schedule_times:
        # --- 時刻を解析（不正なら1件だけ諦める） ---
        try:
            tod = parse_time_of_day(raw)
        except InvalidTimeFormat as exc:
            logger.warning("skip invalid schedule time: medication_id=%s time=%r", medication.id, raw)
            failures.append(PlanFailure(medication_id=int(medication.id), time_of_day=str(raw), reason=str(exc)))
            continue

        time_text = str(tod)
        dose_today = _at(today, tod, tz)
        notify_today = dose_today - lead

        # --- 今日分 ---
        if notify_today > now:
            occurrences.append(
                Occurrence(
                    medication_id=int(medication.id),
                    time_of_day=time_text,
                    calendar_date=today,
                    fire_at=notify_today,
                    kind=KIND_NORMAL,
                )
            )
        elif dose_today > now:
            occurrences.append(
                Occurrence(
                    medication_id=int(medication.id),
                    time_of_day=time_text,
                    calendar_date=today,
                    fire_at=now + IMMEDIATE_GRACE,
                    kind=KIND_IMMEDIATE,
                )
            )

        # --- 明日分（常に出す） ---
        occurrences.append(
            next_day_occurrence(
                medication_id=int(medication.id),
                tod=tod,
                day=tomorrow,
                lead_minutes=lead_minutes,
                tzinfo=tz,
            )
        )

    return Plan(occurrences=occurrences, failures=failures)


def next_day_occurrence(*, medication_id: int, tod: TimeOfDay, day, lead_minutes: int, tzinfo=None) -> Occurrence:
    """指定日の next_day 発火予定を作る（発火後の再予約でも使う）。"""

    lead = timedelta(minutes=max(0, int(lead_minutes)))
    return Occurrence(
        medication_id=int(medication_id),
        time_of_day=str(tod),
        calendar_date=day,
        fire_at=_at(day, tod, tzinfo) - lead,
        kind=KIND_NEXT_DAY,
    )
