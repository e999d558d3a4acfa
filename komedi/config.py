"""
起動設定（config/setting.toml）。

起動時に1回だけ読み、以後は ConfigStore 経由で参照する。

NOTE:
- 画面から変える設定（通知ON/OFF、リード時間など）は DB の app_settings 側。
- ここは起動後に変わらない値だけを扱う。
"""

from __future__ import annotations

import os
import pathlib
import threading
from dataclasses import dataclass
from typing import Any, Callable

import tomli


CONFIG_PATH_ENV = "KOMEDI_CONFIG"
DEFAULT_CONFIG_PATH = pathlib.Path("config") / "setting.toml"


@dataclass(frozen=True)
class Config:
    """setting.toml の内容。"""

    port: int                 # API 待受ポート
    token: str                # Bearer トークン
    log_level: str            # DEBUG / INFO / WARNING / ERROR
    log_file_enabled: bool
    log_file_path: str
    log_file_max_bytes: int   # ローテーションサイズ（bytes）
    db_path: str              # komedi.db（":memory:" 可）
    alarm_tick_seconds: float  # 発火判定の間隔
    maintenance_interval_seconds: float  # 全件再スケジュールの間隔
    exact_alarms_allowed: bool
    default_lead_minutes: int   # app_settings 初期行のリード時間


class ConfigStore:
    """起動設定の共有ホルダ。"""

    def __init__(self, toml_config: Config) -> None:
        self._lock = threading.Lock()
        self._config = toml_config

    @property
    def config(self) -> Config:
        with self._lock:
            return self._config

    @property
    def token(self) -> str:
        return self.config.token


# --- キーごとの (必須か, 既定値, 変換) ---
_REQUIRED = object()
_FIELDS: dict[str, tuple[Any, Callable[[Any], Any]]] = {
    "port": (_REQUIRED, int),
    "token": (_REQUIRED, str),
    "log_level": (_REQUIRED, str),
    "log_file_enabled": (False, bool),
    "log_file_path": ("logs/komedi.log", str),
    "log_file_max_bytes": (200_000, int),
    "db_path": ("data/komedi.db", str),
    "alarm_tick_seconds": (1.0, float),
    # 既定6時間（端末側の定期ワーカーと同じ周期）
    "maintenance_interval_seconds": (6 * 60 * 60.0, float),
    "exact_alarms_allowed": (True, bool),
    "default_lead_minutes": (15, int),
}


def resolve_config_path(path: str | pathlib.Path | None = None) -> pathlib.Path:
    """設定ファイルのパスを決める（引数 > 環境変数 KOMEDI_CONFIG > config/setting.toml）。"""

    if path is not None:
        return pathlib.Path(path)
    from_env = os.environ.get(CONFIG_PATH_ENV, "").strip()
    return pathlib.Path(from_env) if from_env else DEFAULT_CONFIG_PATH


def load_config(path: str | pathlib.Path | None = None) -> Config:
    """setting.toml を読み込んで Config を返す。"""

    config_path = resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"config file not found: {config_path}")
    with config_path.open("rb") as f:
        return parse_config(tomli.load(f), base_dir=config_path.parent)


def parse_config(data: dict[str, Any], *, base_dir: pathlib.Path | None = None) -> Config:
    """
    TOML の dict を検証して Config にする。

    - 未知のキー、必須キーの欠落/空、範囲外の値は ValueError。
    - 相対パスは config/ の1つ上（アプリルート）基準で解決する。
    """

    unknown = sorted(set(data) - set(_FIELDS))
    if unknown:
        raise ValueError(f"unknown config key(s): {', '.join(map(repr, unknown))} (allowed: {sorted(_FIELDS)})")

    values: dict[str, Any] = {}
    for key, (default, convert) in _FIELDS.items():
        raw = data.get(key, default)
        if raw is _REQUIRED or raw in (None, ""):
            raise ValueError(f"config key '{key}' is required")
        values[key] = convert(raw)

    # --- 範囲チェック ---
    if not 1 <= values["port"] <= 65535:
        raise ValueError("port must be in 1..65535")
    for key in ("alarm_tick_seconds", "maintenance_interval_seconds"):
        if values[key] <= 0:
            raise ValueError(f"{key} must be positive")
    if values["default_lead_minutes"] < 0:
        raise ValueError("default_lead_minutes must be >= 0")

    # --- パス解決 ---
    app_root = base_dir.parent if base_dir is not None else pathlib.Path(".")
    for key in ("db_path", "log_file_path"):
        raw_path = values[key]
        if raw_path == ":memory:" or pathlib.Path(raw_path).is_absolute():
            continue
        values[key] = str(app_root / raw_path)

    return Config(**values)


_config_store: ConfigStore | None = None


def set_global_config_store(store: ConfigStore) -> None:
    """起動時に共有 ConfigStore を設定する。"""
    global _config_store
    _config_store = store


def get_config_store() -> ConfigStore:
    """共有 ConfigStore を返す（未設定なら RuntimeError）。"""
    if _config_store is None:
        raise RuntimeError("ConfigStore not initialized")
    return _config_store


def get_token() -> str:
    return get_config_store().token
