"""
HTTP ルート登録。

目的:
    - router 登録の配線をまとめる。
    - `main.py` から HTTP 配線の詳細を外す。
"""

from __future__ import annotations

from fastapi import Depends, FastAPI

from komedi.api import alarms, events, logs, medications, settings
from komedi.api.http_auth import require_bearer_only


def register_http_routes(app: FastAPI) -> None:
    """
    API router を登録する。
    """

    # --- 認証付き API router を登録する ---
    app.include_router(medications.router, dependencies=[Depends(require_bearer_only)], prefix="/api")
    app.include_router(logs.router, dependencies=[Depends(require_bearer_only)], prefix="/api")
    app.include_router(settings.router, dependencies=[Depends(require_bearer_only)], prefix="/api")
    app.include_router(alarms.router, dependencies=[Depends(require_bearer_only)], prefix="/api")

    # --- WebSocket は接続後に自前で認証する ---
    app.include_router(events.router, prefix="/api")

    # --- ヘルスチェックを登録する ---
    @app.get("/api/health")
    async def health() -> dict[str, str]:
        """稼働確認用のヘルスチェックを返す。"""

        return {"status": "healthy"}
