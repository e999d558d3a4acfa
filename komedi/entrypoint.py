"""配布向けのエントリポイント。

設計意図:
- 単一の起動点を用意する（`komedi` コマンド）
- uvicorn の起動はプログラムから行う（CLI依存を減らす）
"""

from __future__ import annotations


def main() -> None:
    """サーバー起動処理。"""

    # --- 設定ファイルが無い場合は、案内して終了 ---
    # 初回起動時に stacktrace を出すよりも、ユーザーが取るべき行動を明確にする。
    from komedi.config import load_config, resolve_config_path

    config_path = resolve_config_path()
    if not config_path.exists():
        print("[Komedi] config/setting.toml が見つかりません。")
        print("[Komedi] config/setting.toml.example をコピーして作成してください。")
        print(f"[Komedi] 期待パス: {config_path}")
        return

    toml_config = load_config(config_path)

    # --- app を直接生成して渡す ---
    from komedi.main import create_app

    app = create_app(toml_config)

    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=toml_config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
