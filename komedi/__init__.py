"""
Komedi: 服薬リマインダーのスケジューリングサービス。
"""

from __future__ import annotations
