"""
アプリ起動配線パッケージ。

目的:
    - 起動時の配線を `main.py` から分離する。
    - 初期化手順を責務ごとに読みやすく保つ。

NOTE:
    - api 側が dependencies を import するため、ここでは routers を import しない
      （循環 import を避ける）。
"""

from __future__ import annotations

from komedi.app_bootstrap.config_bootstrap import bootstrap_runtime
from komedi.app_bootstrap.dependencies import get_reminder_service_dep

__all__ = [
    "bootstrap_runtime",
    "get_reminder_service_dep",
]
