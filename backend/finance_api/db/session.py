# finance_api/db/session.py
import logging
from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the engine (connection pool) and the session factory.

    Built once by the app factory and stored on ``app.state.db``; tests build
    their own instance against an isolated database.
    """

    def __init__(self, url: str, engine: Optional[Engine] = None, **engine_kwargs):
        if engine is None:
            if url.startswith("sqlite"):
                engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
                if ":memory:" in url or url.rstrip("/") == "sqlite:":
                    engine_kwargs.setdefault("poolclass", StaticPool)
            else:
                engine_kwargs.setdefault("pool_pre_ping", True)
            engine = create_engine(url, future=True, **engine_kwargs)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, future=True)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self) -> None:
        from .base import Base
        from . import models  # noqa: F401  (registers tables on Base.metadata)

        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a SQLAlchemy Session from the app's Database.
    Usage:
        db = Depends(get_db)
    """
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
