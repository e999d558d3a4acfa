"""
依存オブジェクトの生成。

目的:
    - FastAPI の Depends で使う入口を起動配線側に寄せる。
"""

from __future__ import annotations

from komedi.reminders.service import ReminderService, get_reminder_service


def get_reminder_service_dep() -> ReminderService:
    """
    ReminderService を Depends 用に返す。
    """

    # --- 起動時に組み立てた共有サービスを返す ---
    return get_reminder_service()
