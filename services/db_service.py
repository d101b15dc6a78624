# services/db_service.py
import os
import logging
import secrets
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DB_PATH

logger = logging.getLogger(__name__)

Base = declarative_base()

# Bound in init_db(); objects stay usable after the session closes
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

engine = None


def _make_engine(url: str):
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection so every session sees the same in-memory db
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, connect_args={"check_same_thread": False})


def init_db(url: str = None):
    """
    Create the engine, bind the session factory and create all tables.

    With no url the SQLite file at DB_PATH is used; its parent directory
    is created when missing.
    """
    global engine

    if url is None:
        directory = os.path.dirname(DB_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)
        url = f"sqlite:///{DB_PATH}"

    engine = _make_engine(url)
    SessionLocal.configure(bind=engine)

    # register models on Base.metadata
    import models.alert  # noqa: F401
    import models.alert_trigger  # noqa: F401
    import models.call  # noqa: F401
    import models.deposit  # noqa: F401
    import models.price_history  # noqa: F401
    import models.reminder  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database ready at %s", url)
    return engine


def generate_short_id(db, model) -> str:
    """8 hex chars, regenerated until unused in model's table."""
    while True:
        candidate = secrets.token_hex(4)
        if db.get(model, candidate) is None:
            return candidate


@contextmanager
def get_db():
    """Yield a session; roll back on error and always close."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
