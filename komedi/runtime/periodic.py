"""
定期ジョブ（アラーム tick / 再スケジュール保守）の実行。

リマインダー側の処理は同期（SQLAlchemy）なので、1回分の処理はスレッドで動かし、
イベントループ（WebSocket 配信）を止めないようにする。

方針:
    - 間隔は「前回開始時刻 + interval」で数える（処理時間で tick がずれない）。
    - 処理が interval より長引いた場合、溜まった回は捨てて次の枠から再開する。
    - 1回の失敗ではジョブを止めない（ログに残して次の回へ）。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import FastAPI


logger = logging.getLogger(__name__)

_JOBS_STATE_KEY = "komedi_periodic_jobs"


@dataclass
class PeriodicJob:
    """登録済みの定期ジョブ。"""

    name: str
    interval_seconds: float
    task: asyncio.Task[None]
    runs: int = 0
    failures: int = 0


def _jobs(app: "FastAPI") -> dict[str, PeriodicJob]:
    jobs = getattr(app.state, _JOBS_STATE_KEY, None)
    if jobs is None:
        jobs = {}
        setattr(app.state, _JOBS_STATE_KEY, jobs)
    return jobs


def start_periodic_job(
    app: "FastAPI",
    *,
    name: str,
    interval_seconds: float,
    func: Callable[[], Any],
    run_immediately: bool = False,
) -> PeriodicJob:
    """
    同期関数 func を interval_seconds ごとにスレッドで実行するジョブを開始する。

    同じ name のジョブが動いていれば、それを返す（二重起動しない）。
    """

    jobs = _jobs(app)
    existing = jobs.get(name)
    if existing is not None and not existing.task.done():
        return existing

    interval = float(interval_seconds)
    if interval <= 0:
        raise ValueError("interval_seconds must be positive")

    loop = asyncio.get_running_loop()
    job: PeriodicJob

    async def _run() -> None:
        next_at = loop.time() + (0.0 if run_immediately else interval)
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            try:
                await asyncio.to_thread(func)
                job.runs += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                job.failures += 1
                logger.exception("periodic job failed: name=%s error=%s", name, str(exc))

            # --- 遅れた分は詰めずに次の枠へ ---
            next_at += interval
            now = loop.time()
            if next_at < now:
                skipped = int((now - next_at) // interval) + 1
                next_at += skipped * interval
                logger.warning("periodic job overran: name=%s skipped=%s", name, skipped)

    job = PeriodicJob(name=name, interval_seconds=interval, task=loop.create_task(_run(), name=name))
    jobs[name] = job
    logger.info("periodic job started: name=%s interval=%ss", name, interval)
    return job


async def stop_periodic_jobs(app: "FastAPI") -> None:
    """登録済みの定期ジョブをすべて止め、終了を待つ。"""

    jobs = _jobs(app)
    if not jobs:
        return
    for job in jobs.values():
        job.task.cancel()
    await asyncio.gather(*(j.task for j in jobs.values()), return_exceptions=True)
    for job in jobs.values():
        logger.info("periodic job stopped: name=%s runs=%s failures=%s", job.name, job.runs, job.failures)
    jobs.clear()
