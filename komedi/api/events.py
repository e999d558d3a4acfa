"""
WS /events/stream

服薬リマインダー通知（medication.reminder）をリアルタイムに受け取る購読口。
クライアントからの送信内容は使わない（切断検知のためだけに受信する）。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from komedi.api.http_auth import authenticate_ws_bearer
from komedi.runtime import event_stream


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.websocket("/stream")
async def stream_events(websocket: WebSocket) -> None:
    """Bearer 認証に通ったクライアントを購読者として登録する。"""

    await websocket.accept()
    if not authenticate_ws_bearer(websocket):
        logger.info("events websocket rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await event_stream.add_client(websocket)
    logger.info("events websocket subscribed: clients=%s", event_stream.get_connected_client_count())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect as exc:
        logger.info("events websocket closed by client: code=%s", exc.code)
    finally:
        await event_stream.remove_client(websocket)
