"""
リマインダー機能パッケージ。

目的:
    - 時刻解析 / 計画 / キー導出 / 重複抑止 / スケジューラ / 外部協調者の実装を1箇所へ集約する。
    - 計画（planner）とキー導出（keys）は純粋関数で、DBにもアラームにも触れない。
"""

from __future__ import annotations
