# ============================================================
# Core DB connection
# ============================================================
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stageflow.config import settings
from stageflow.db.models import Base


def build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url)
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    return create_engine(url, connect_args={"check_same_thread": False})


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Create tables."""
    Base.metadata.create_all(bind=bind)


def get_db() -> Iterator[Session]:
    """Dependency to provide DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
