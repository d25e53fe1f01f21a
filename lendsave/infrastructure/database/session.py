"""Database engine and session factory with connection pooling"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def build_engine(database_url: str, busy_timeout_seconds: float = 30.0) -> Engine:
    """
    SQLite waits on its write lock for busy_timeout_seconds so concurrent
    atomic increments queue up instead of failing; server databases get a
    pre-pinged pool recycled hourly to avoid stale connections.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": busy_timeout_seconds},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)

