# foreclosure_staging/db.py
"""Database engine and session utilities.

Centralized SQLAlchemy engine creation and session dependency helper for FastAPI.
PostgreSQL is the production target; SQLite is accepted for local runs and tests.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from .settings import settings


def make_engine(database_url: str, pool_size: int = 5, max_overflow: int = 10):
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory databases live as long as their single connection
        if database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url:
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    # tuned pool settings for cloud DB
    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
    )


engine = make_engine(settings.database_url, settings.db_pool_size, settings.db_max_overflow)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
