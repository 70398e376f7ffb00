"""Database base configuration and engine setup."""

from typing import Any

from sqlalchemy import Engine, MetaData, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opensignify.utils.logging import get_logger

logger = get_logger(__name__)

# Naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all database models."""

    metadata = metadata

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


# Configured at runtime by init_db()
engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def _engine_options(database_url: str) -> dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    # Sessions are used from worker threads; in-memory databases must share one connection.
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


def init_db(database_url: str = "sqlite:///./opensignify.db") -> Engine:
    """Initialize the engine and session factory, creating missing tables."""
    global engine, SessionLocal

    engine = create_engine(database_url, echo=False, **_engine_options(database_url))
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    # Import models so their tables are registered on the metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.debug("database_initialized", dialect=engine.dialect.name)
    return engine


def get_session() -> Session:
    """New session from the configured factory."""
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal()


def dispose_db() -> None:
    """Close pooled connections and forget the engine."""
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None
