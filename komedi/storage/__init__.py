"""
永続化パッケージ。

目的:
    - komedi.db の接続とORMモデルを1箇所へ集約する。
"""

from __future__ import annotations
