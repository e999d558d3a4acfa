"""
服薬リマインダー通知の表示（イベントストリーム配信）。

UI（WebSocket クライアント）へ medication.reminder イベントとして届ける。
"""

from __future__ import annotations

import logging
from typing import Any

from komedi.reminders.contracts import DEFAULT_INSTRUCTIONS
from komedi.runtime import event_stream


logger = logging.getLogger(__name__)

EVENT_TYPE_MEDICATION_REMINDER = "medication.reminder"


def format_notification(payload: dict[str, Any]) -> dict[str, str]:
    """
    通知の表示文言を作る。

    例:
        - dosage あり: "20mg at 08:00"
        - dosage なし: "Scheduled at 08:00"
    """

    name = str(payload.get("medication_name") or "Medication")
    dosage = str(payload.get("dosage") or "").strip()
    scheduled_time = str(payload.get("scheduled_time") or "")
    instructions = str(payload.get("instructions") or "").strip() or DEFAULT_INSTRUCTIONS

    text = f"{dosage} at {scheduled_time}" if dosage else f"Scheduled at {scheduled_time}"
    return {
        "title": name,
        "text": text,
        "big_text": f"{text}\n{instructions}",
    }


class EventStreamNotificationPresenter:
    """通知を event_stream へ publish する。"""

    def show(self, payload: dict[str, Any]) -> None:
        """通知を配信する（クライアント未接続でも例外にしない）。"""

        data = dict(payload)
        data.update(format_notification(payload))
        queued = event_stream.publish(type=EVENT_TYPE_MEDICATION_REMINDER, data=data)
        logger.info(
            "medication reminder presented: medication_id=%s time=%s queued=%s clients=%s",
            payload.get("medication_id"),
            payload.get("scheduled_time"),
            bool(queued),
            event_stream.get_connected_client_count(),
        )
