"""
実行時基盤パッケージ（ログ設定 / イベント配信 / 定期実行）。
"""

from __future__ import annotations
