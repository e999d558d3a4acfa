"""Komedi 起動スクリプト。

開発時の手動起動を想定する。
配布では [komedi/entrypoint.py] を使う。
"""

from __future__ import annotations


def main() -> None:
    """uvicorn で FastAPI アプリを起動する。"""

    # --- 依存の import は main 内に寄せる ---
    import uvicorn

    # --- setting.toml から待受ポートを取得する ---
    from komedi.config import load_config

    toml_config = load_config()

    # --- 開発用: コード変更を自動でリロードする（factory で毎回 app を作る） ---
    uvicorn.run(
        "komedi.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=toml_config.port,
        reload=True,
    )


if __name__ == "__main__":
    main()
