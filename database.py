from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os
from dotenv import load_dotenv

from errors import ConfigError

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

Base = declarative_base()


def require_database_url(url=None) -> str:
    url = url or DATABASE_URL
    if not url or not url.strip():
        raise ConfigError("DATABASE_URL environment variable is not set")
    return url


def make_engine(url: str):
    # check_same_thread is needed only for SQLite
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """Create missing tables. Safe to run on every startup."""
    # Import models so they register on Base.metadata
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)

