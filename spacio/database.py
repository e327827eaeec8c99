from __future__ import annotations

import logging
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from spacio.config import get_settings


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections are shared across the request threadpool."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables and seed default data."""
    # models register themselves on Base.metadata when imported
    from spacio import models  # noqa: F401
    from spacio.auth import ensure_admin_account
    from spacio.rooms import seed_default_rooms

    target = bind or engine
    Base.metadata.create_all(bind=target)

    settings = get_settings()
    session = Session(bind=target, expire_on_commit=False)
    try:
        if settings.seed_rooms:
            seeded = seed_default_rooms(session)
            if seeded:
                logger.info("Seeded %s default meeting rooms", seeded)
        if settings.admin_email and settings.admin_password:
            ensure_admin_account(session, settings.admin_email, settings.admin_password)
    finally:
        session.close()
