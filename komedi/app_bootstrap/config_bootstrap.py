"""
起動時の設定・DB初期化。

目的:
    - create_app() から初期化の詳細を切り離す。
    - TOML -> ログ -> DB -> 初期設定行 -> リマインダーサービス の順序を1箇所で固定する。
"""

from __future__ import annotations

from komedi.clock import ClockService, get_clock_service
from komedi.config import Config, ConfigStore, load_config, set_global_config_store
from komedi.reminders.contracts import NotificationPresenter
from komedi.reminders.repo import ensure_initial_settings
from komedi.reminders.service import ReminderService, build_reminder_service, set_reminder_service
from komedi.runtime.logging import setup_logging
from komedi.storage.db import init_db, session_scope


def bootstrap_runtime(
    toml_config: Config | None = None,
    *,
    clock: ClockService | None = None,
    presenter: NotificationPresenter | None = None,
) -> ReminderService:
    """
    起動時の初期化を実行し、共有 ReminderService を返す。

    Args:
        toml_config: 読み込み済みの設定（None なら config/setting.toml を読む）。
        clock: 時計サービス（None なら共有シングルトン）。
        presenter: 通知表示（None なら event_stream 配信）。
    """

    # --- 1. TOML 設定を読み込み、ログ設定を先に確定する ---
    toml_config = toml_config or load_config()
    setup_logging(
        toml_config.log_level,
        log_file_enabled=toml_config.log_file_enabled,
        log_file_path=toml_config.log_file_path,
        log_file_max_bytes=toml_config.log_file_max_bytes,
    )
    set_global_config_store(ConfigStore(toml_config))

    # --- 2. DB を初期化し、設定の初期行を作成する ---
    session_factory = init_db(toml_config.db_path)
    with session_scope(session_factory) as session:
        ensure_initial_settings(session, default_lead_minutes=toml_config.default_lead_minutes)

    # --- 3. リマインダーサービスを組み立てて共有する ---
    service = build_reminder_service(
        session_factory,
        clock=clock or get_clock_service(),
        exact_alarms_allowed=toml_config.exact_alarms_allowed,
        presenter=presenter,
    )
    set_reminder_service(service)
    return service
