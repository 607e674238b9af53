"""Local database engine and session management."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tracking_sdk.config import get_settings
from tracking_sdk.models.tables import Base

# Engine created on first use, not at import time
_engine = None
_session_maker = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the local store and make sure its tables exist."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        # Network callbacks write from worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)
    return engine


def _get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.debug)
    return _engine


def get_session_maker(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to `engine`, or to the default engine."""
    global _session_maker
    if engine is not None:
        return sessionmaker(engine, expire_on_commit=False)
    if _session_maker is None:
        _session_maker = sessionmaker(_get_engine(), expire_on_commit=False)
    return _session_maker
