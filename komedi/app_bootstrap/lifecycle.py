"""
起動/終了時の処理。

起動順:
    1. uvicorn access log からヘルスチェックを外す
    2. イベント配信（WebSocket）を開始
    3. 全件を予約し直す（再起動でアラームが失われていても復元する）
    4. アラーム tick と保守の定期ジョブを開始

終了は逆順（定期ジョブ → イベント配信）。
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI

from komedi.config import Config
from komedi.reminders.service import ReminderService, get_reminder_service
from komedi.runtime import event_stream
from komedi.runtime.logging import suppress_uvicorn_access_log_paths
from komedi.runtime.periodic import start_periodic_job, stop_periodic_jobs


logger = logging.getLogger(__name__)


async def _restore_alarms(service: ReminderService) -> None:
    """起動時の全件予約。失敗しても起動は続ける（保守ジョブで再試行される）。"""

    try:
        result = await asyncio.to_thread(service.maintenance)
    except Exception as exc:  # noqa: BLE001
        logger.exception("startup alarm scheduling failed: %s", str(exc))
        return
    logger.info(
        "startup alarm scheduling done: notifications_enabled=%s medications=%s failed=%s",
        result.notifications_enabled,
        len(result.medications),
        len(result.failed),
    )


def register_lifecycle_hooks(app: FastAPI, *, toml_config: Config) -> None:
    """startup / shutdown フックを登録する。"""

    @app.on_event("startup")
    async def on_startup() -> None:
        suppress_uvicorn_access_log_paths("/api/health", "/favicon.ico")

        event_stream.install(asyncio.get_running_loop())
        await event_stream.start_dispatcher()

        service = get_reminder_service()
        await _restore_alarms(service)

        # --- publish 先（event_stream）ができてから tick を回す ---
        start_periodic_job(
            app,
            name="alarm_tick",
            interval_seconds=toml_config.alarm_tick_seconds,
            func=service.tick,
        )
        start_periodic_job(
            app,
            name="alarm_maintenance",
            interval_seconds=toml_config.maintenance_interval_seconds,
            func=service.maintenance,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await stop_periodic_jobs(app)
        await event_stream.stop_dispatcher()
        event_stream.uninstall()
        logger.info("komedi shutdown complete")
