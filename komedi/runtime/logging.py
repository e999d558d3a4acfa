"""
ログ設定

コンソール出力と、任意のファイル出力（サイズでローテーション）を設定する。
uvicorn の access log から、ヘルスチェック等のノイズになるパスを除外する。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_BACKUP_COUNT = 3


def setup_logging(
    level: str,
    *,
    log_file_enabled: bool = False,
    log_file_path: str | None = None,
    log_file_max_bytes: int = 200_000,
) -> None:
    """
    ルートロガーを設定する。

    - 既存ハンドラは外してから付け直す（多重呼び出しで重複出力しない）。
    """

    numeric_level = getattr(logging, str(level or "INFO").upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"invalid log level: {level}")

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(_LOG_FORMAT)

    # --- コンソール ---
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    # --- ファイル（任意） ---
    if log_file_enabled and log_file_path:
        path = Path(log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(path),
            maxBytes=int(log_file_max_bytes),
            backupCount=_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


class _PathFilter(logging.Filter):
    """uvicorn.access のレコードから、指定パスへのリクエストを除外する。"""

    def __init__(self, paths: tuple[str, ...]) -> None:
        super().__init__()
        self._paths = paths

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        # uvicorn.access の args: (client_addr, method, path, http_version, status_code)
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            if path in self._paths:
                return False
        return True


def suppress_uvicorn_access_log_paths(*paths: str) -> None:
    """uvicorn の access log から特定パスを除外する。"""

    if not paths:
        return
    logging.getLogger("uvicorn.access").addFilter(_PathFilter(tuple(paths)))
