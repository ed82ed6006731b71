"""Engine and request-session management for the gallery store."""

from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from galleria.settings import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def get_engine_kwargs(database_url: Optional[str] = None) -> dict:
    """Engine kwargs for `database_url` (defaults to the configured one).

    On Postgres every statement is bounded server side by
    `db_statement_timeout_ms`, which also cancels similarity scans whose
    caller has already given up on them.
    """
    url = database_url or settings.database_url
    kwargs = {
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": settings.db_pool_recycle,
    }

    if _is_sqlite(url):
        # Matcher calls run on executor threads.
        kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs

    kwargs["pool_size"] = settings.db_pool_size
    kwargs["max_overflow"] = settings.db_max_overflow
    kwargs["pool_timeout"] = settings.db_pool_timeout

    if url.startswith("postgresql"):
        connect_args = {"connect_timeout": settings.db_connect_timeout}
        if settings.db_statement_timeout_ms > 0:
            connect_args["options"] = f"-c statement_timeout={int(settings.db_statement_timeout_ms)}"
        kwargs["connect_args"] = connect_args

    return kwargs


def build_engine(database_url: Optional[str] = None):
    url = database_url or settings.database_url
    return create_engine(url, **get_engine_kwargs(url))


engine = build_engine()

SessionLocal = sessionmaker(bind=engine)


def get_db():
    """Request-scoped session for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database(db: Session) -> None:
    """Round-trip a trivial query; raises SQLAlchemyError when the store is unreachable."""
    db.execute(text("SELECT 1"))
