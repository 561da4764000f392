# database.py
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import Config

# Create base class for models
Base = declarative_base()


def create_db_engine(database_url: str = None):
    """Create the SQLAlchemy engine, SQLite by default"""
    url = database_url or Config.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share one connection across threads
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


def create_session_factory(engine):
    """Create session factory"""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_database(engine):
    """Create all tables"""
    import models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory):
    """Transactional scope: commit on success, rollback on error, always close"""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
