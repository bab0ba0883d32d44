"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production. get_session() always
returns a real session; callers own commit/rollback/close.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadflow.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def normalize_url(url: str) -> str:
    # Hosted Postgres URLs still use postgres:// but SQLAlchemy 2.x requires postgresql://
    return url.replace('postgres://', 'postgresql://', 1)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # stage history rows cascade with their lead
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def make_engine(url: str = DATABASE_URL):
    """Engine with per-backend kwargs; SQLite gets FK enforcement switched on."""
    url = normalize_url(url)
    if url.startswith('sqlite'):
        eng = create_engine(url, connect_args={'check_same_thread': False})
        event.listen(eng, 'connect', _enable_sqlite_foreign_keys)
        return eng
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = make_engine()

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
