from pathlib import Path
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from licensa.core.settings import Settings


def _resolve_database_url(raw_url: str) -> str:
    if not raw_url.startswith("sqlite:///"):
        return raw_url

    sqlite_path = raw_url.replace("sqlite:///", "", 1)
    if sqlite_path == ":memory:":
        return raw_url

    is_windows_abs = len(sqlite_path) > 1 and sqlite_path[1] == ":"
    is_unix_abs = sqlite_path.startswith("/")
    if is_windows_abs or is_unix_abs:
        return raw_url

    sqlite_path = sqlite_path[2:] if sqlite_path.startswith("./") else sqlite_path
    base_dir = Path(__file__).resolve().parents[2]  # project root
    absolute_path = (base_dir / sqlite_path).resolve()
    return f"sqlite:///{absolute_path.as_posix()}"


def build_engine(settings: Settings) -> Engine:
    url = _resolve_database_url(settings.database_url)
    if url.startswith("sqlite"):
        kwargs = {
            "connect_args": {"check_same_thread": False, "timeout": settings.db_connect_timeout},
        }
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=settings.db_pool_timeout,
        connect_args={"connect_timeout": settings.db_connect_timeout},
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
