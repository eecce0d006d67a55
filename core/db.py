# pairing/core/db.py
"""
Database management for the pairing engine.
Single database, lazily created engine and session factory.
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from config import Config
from models.base import Base

logger = logging.getLogger(__name__)

# Database engines
_engine = None
_SessionFactory = None


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        database_url = Config.get(Config.DATABASE_URL, "sqlite:///pairing.db")
        engine_kwargs = {
            "echo": Config.get(Config.DATABASE_ECHO, False),
            "pool_pre_ping": True,
        }

        # Placement correctness relies on transaction discipline, so the
        # isolation level can be raised per deployment (SERIALIZABLE on Postgres)
        isolation_level = Config.get(Config.PLACEMENT_ISOLATION_LEVEL)
        if isolation_level:
            engine_kwargs["isolation_level"] = isolation_level

        _engine = create_engine(database_url, **engine_kwargs)
        logger.info(f"Database engine created: {database_url}")
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine)
        logger.info("Session factory created")
    return _SessionFactory


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        Session instance
    """
    factory = get_session_factory()
    return factory()


def setup_database():
    """Initialize database - create all tables."""
    logger.info("Setting up database...")
    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database setup completed")


def reset_engine():
    """Dispose the cached engine so the next call picks up a new DATABASE_URL."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
