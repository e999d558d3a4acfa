"""
Bearer トークン認証（HTTP / WebSocket 共通）。

`Authorization: Bearer <token>` を setting.toml の token と定数時間比較する。
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, WebSocket, status

from komedi.config import get_token


_SCHEME = "bearer"


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Authorization ヘッダからトークン部分を取り出す（Bearer 以外は None）。"""

    scheme, _, token = str(auth_header or "").strip().partition(" ")
    if scheme.lower() != _SCHEME:
        return None
    return token.strip() or None


def is_authorized(auth_header: str | None) -> bool:
    provided = extract_bearer_token(auth_header)
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), get_token().encode("utf-8"))


def require_bearer_only(request: Request) -> None:
    """HTTP の Depends 用。トークンが合わなければ 401。"""

    if not is_authorized(request.headers.get("Authorization")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def authenticate_ws_bearer(websocket: WebSocket) -> bool:
    """WebSocket のハンドシェイクヘッダを検証する。"""

    return is_authorized(websocket.headers.get("Authorization"))
