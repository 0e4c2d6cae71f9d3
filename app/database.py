import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool
from app.config import settings


def _build_engine(url: str):
    """
    Postgres gets a real connection pool. SQLite (local runs and the test suite)
    gets a single shared connection so an in-memory database survives across
    sessions and threads.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        url,
        pool_pre_ping=True,  # test connections before use; survives Postgres restarts
        pool_size=10,
        max_overflow=20,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = _build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────────
SessionLocal = sessionmaker(
    autocommit=False,   # commits are explicit; the OTP flow relies on atomic commits
    autoflush=False,
    bind=engine,
)


# ── Declarative Base ──────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Dependency ────────────────────────────────────────────────────────────────
def get_db():
    """
    FastAPI dependency that yields a DB session and guarantees cleanup.
    Use as: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def as_uuid(value) -> uuid.UUID:
    """
    Coerce an id coming from a token or path into a UUID for Uuid columns.
    Raises ValueError for anything that isn't a UUID.
    """
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
