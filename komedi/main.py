"""
FastAPI エントリポイント

Komedi APIサーバーのメインモジュール。
アプリケーションの初期化、ルーターの登録、起動/終了イベントの登録を行う。
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from komedi.app_bootstrap.config_bootstrap import bootstrap_runtime
from komedi.app_bootstrap.lifecycle import register_lifecycle_hooks
from komedi.app_bootstrap.routers import register_http_routes
from komedi.clock import ClockService
from komedi.config import Config, get_config_store
from komedi.reminders.contracts import NotificationPresenter


logger = logging.getLogger(__name__)


def create_app(
    toml_config: Config | None = None,
    *,
    clock: ClockService | None = None,
    presenter: NotificationPresenter | None = None,
) -> FastAPI:
    """
    アプリ生成と初期化を行う。
    設定 -> DB -> リマインダーサービス -> ルータ登録 -> ライフサイクル登録 の順で実行する。
    """

    # 1. 設定/DB/サービスの初期化
    bootstrap_runtime(toml_config, clock=clock, presenter=presenter)
    cfg = get_config_store().config

    # 2. FastAPIアプリ作成
    app = FastAPI(title="Komedi API")
    register_http_routes(app)
    register_lifecycle_hooks(app, toml_config=cfg)
    logger.info("app created: port=%s db=%s", cfg.port, cfg.db_path)
    return app
