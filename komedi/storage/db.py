"""
アプリDB（komedi.db）接続とセッション管理

薬/設定/アラーム予約/通知済み記録を1つの SQLite に置く。
マイグレーションは行わない（スキーマ変更時は DB を作り直す）。
"""

from __future__ import annotations

import contextlib
import logging
import threading
import weakref
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

# komedi.db 用 Base
KomediBase = declarative_base()

# グローバルセッション（komedi.db 用）
KomediSessionLocal: sessionmaker | None = None

# インメモリDB（StaticPool）は全スレッドで1接続を共有するので、セッションを直列化する
_shared_connection_locks: weakref.WeakKeyDictionary[Engine, threading.RLock] = weakref.WeakKeyDictionary()


def get_db_url(db_path: str | Path) -> str:
    """DBファイルパスから SQLAlchemy URL を返す。"""

    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{p}"


def create_session_factory(db_url: str) -> sessionmaker:
    """
    エンジンとセッションファクトリを作成し、テーブルを作成する。

    NOTE:
    - "sqlite://"（インメモリ）は接続ごとに別DBになるため StaticPool で1接続に固定する。
    """

    if db_url in ("sqlite://", "sqlite:///:memory:"):
        engine: Engine = create_engine(
            db_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _shared_connection_locks[engine] = threading.RLock()
    else:
        connect_args = {"check_same_thread": False, "timeout": 10.0}
        engine = create_engine(db_url, future=True, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_conn, connection_record):
        """接続ごとに外部キーを有効化する（服薬記録は薬の削除で CASCADE 削除される）。"""
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    # テーブル群を作成（モデル import が必要）
    import komedi.storage.models  # noqa: F401

    KomediBase.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(db_path: str | Path) -> sessionmaker:
    """
    komedi.db を初期化する（起動時）。

    - セッションファクトリを作成する
    - テーブルを作成する
    """

    global KomediSessionLocal

    db_url = get_db_url(db_path)
    KomediSessionLocal = create_session_factory(db_url)
    logger.info("komedi DB initialized: %s", db_url)
    return KomediSessionLocal


def get_session_factory() -> sessionmaker:
    """初期化済みのセッションファクトリを返す。"""

    if KomediSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return KomediSessionLocal


@contextlib.contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """
    セッションスコープ（with文用）。

    正常終了時はコミット、例外時はロールバックする。
    """

    factory = factory or get_session_factory()
    bind = factory.kw.get("bind")
    lock = _shared_connection_locks.get(bind) if bind is not None else None
    with lock if lock is not None else contextlib.nullcontext():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
