"""
WebSocket 向けアプリイベント配信。

服薬リマインダー通知（medication.reminder）を接続中の全クライアントへ届ける。

NOTE:
- publish() はアラーム tick（スレッド）から呼ばれる。イベントループへは
  call_soon_threadsafe で渡し、キュー操作はループ内だけで行う。
- キューは有界。溢れたイベントは捨てる（通知済み記録は残るので再送はしない）。
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import WebSocket


logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 1000
_SEND_TIMEOUT_SECONDS = 2.0


@dataclass
class AppEvent:
    """配信するイベント。"""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    emitted_at: int = field(default_factory=lambda: int(time.time()))

    def to_json(self) -> str:
        return json.dumps(
            {"type": self.type, "emitted_at": self.emitted_at, "data": self.data},
            ensure_ascii=False,
            separators=(",", ":"),
        )


class EventBroadcaster:
    """イベントキューと購読クライアントを持つ配信器。"""

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[AppEvent]] = None
        self._clients: set["WebSocket"] = set()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def installed(self) -> bool:
        return self._queue is not None

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._queue is not None:
            return
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        logger.info("event stream installed")

    def uninstall(self) -> None:
        self._loop = None
        self._queue = None
        self._clients.clear()

    async def start(self) -> None:
        if self._task is not None:
            return
        if self._queue is None:
            raise RuntimeError("event stream is not installed")
        self._task = asyncio.get_running_loop().create_task(self._dispatch(), name="event_stream_dispatch")
        logger.info("event stream dispatcher started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def publish(self, event: AppEvent) -> bool:
        loop = self._loop
        if loop is None or self._queue is None:
            return False
        try:
            loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # --- ループ終了後の publish ---
            return False
        return True

    def _put(self, event: AppEvent) -> None:
        if self._queue is None:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event stream queue full; dropped type=%s", event.type)

    def add(self, ws: "WebSocket") -> None:
        self._clients.add(ws)

    def discard(self, ws: "WebSocket") -> None:
        self._clients.discard(ws)

    def client_count(self) -> int:
        return len(self._clients)

    async def _dispatch(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            event = await queue.get()
            text = event.to_json()
            clients = list(self._clients)
            logger.info("event stream broadcast type=%s clients=%s", event.type, len(clients))

            # --- 遅い/切れたクライアントは購読から外す ---
            for ws in clients:
                try:
                    await asyncio.wait_for(ws.send_text(text), timeout=_SEND_TIMEOUT_SECONDS)
                except Exception as exc:  # noqa: BLE001
                    logger.info("event stream client dropped: %s", type(exc).__name__)
                    self.discard(ws)


_broadcaster = EventBroadcaster()


def install(loop: asyncio.AbstractEventLoop) -> None:
    """配信先のイベントループとキューを用意する（多重呼び出しは無視）。"""
    _broadcaster.install(loop)


def uninstall() -> None:
    """状態を初期化する（アプリ再生成/テスト用）。"""
    _broadcaster.uninstall()


async def start_dispatcher() -> None:
    """配信タスクを起動する。"""
    await _broadcaster.start()


async def stop_dispatcher() -> None:
    """配信タスクを停止する。"""
    await _broadcaster.stop()


def publish(*, type: str, data: Optional[dict[str, Any]] = None) -> bool:
    """
    イベントを配信キューへ渡す（どのスレッドからでも呼べる）。

    Returns:
        受け付けたら True（未初期化/終了済みなら False）。
    """
    return _broadcaster.publish(AppEvent(type=type, data=dict(data or {})))


async def add_client(ws: "WebSocket") -> None:
    """購読クライアントを登録する。"""
    _broadcaster.add(ws)


async def remove_client(ws: "WebSocket") -> None:
    """購読クライアントを解除する。"""
    _broadcaster.discard(ws)


def get_connected_client_count() -> int:
    """接続中クライアント数を返す。"""
    return _broadcaster.client_count()
