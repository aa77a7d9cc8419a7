"""Engine, session factory and the request-scoped session dependency."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

# Server databases keep a small warm pool; SQLite opens connections per use
SERVER_POOL = {"pool_size": 10, "max_overflow": 20, "pool_recycle": 3600}


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    options = {} if is_sqlite else dict(SERVER_POOL)

    new_engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        pool_pre_ping=True,
        echo=echo,
        **options,
    )

    # Payout and dispute rows rely on ON DELETE CASCADE
    if is_sqlite:
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)

    return new_engine


engine = build_engine(settings.database_url, echo=settings.debug and settings.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """One session per request, always closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
