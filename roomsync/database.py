import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    # Hosted Postgres often hands out postgres://, SQLAlchemy needs postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def build_engine(database_url: str, **engine_kwargs) -> Engine:
    """Create an engine with the connect args each backend needs."""
    database_url = normalize_database_url(database_url)

    connect_args = {}
    if database_url.startswith("sqlite"):
        # Worker threads share the engine; writers wait on the file lock
        connect_args = {"check_same_thread": False, "timeout": 30}

    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        **engine_kwargs,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine = None):
    """Create all tables in the database"""
    from . import models  # noqa: F401  register mappers on Base.metadata

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Tables ready on {target.url.drivername}")
