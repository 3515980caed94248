"""Engine and session plumbing for the blob table."""

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

SessionFactory = Callable[[], Session]


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


def build_engine(database_url: str, **kwargs) -> Engine:
    """Engine for ``database_url``; file-backed SQLite gets WAL and a busy timeout."""
    connect_args = dict(kwargs.pop("connect_args", {}))
    if _is_sqlite(database_url):
        connect_args.setdefault("check_same_thread", False)
    eng = create_engine(database_url, connect_args=connect_args, **kwargs)
    in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
    if _is_sqlite(database_url) and not in_memory:
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)


def create_schema(eng: Engine) -> None:
    # alembic owns real databases; this is for throwaway ones
    import models  # noqa: F401

    Base.metadata.create_all(eng)


engine = build_engine(get_settings().database_url)
SessionLocal = make_session_factory(engine)


@contextmanager
def session_scope(factory: Optional[SessionFactory] = None) -> Iterator[Session]:
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
