"""Database connection and session management."""

from typing import Generator

from sqlalchemy.orm import Session, sessionmaker

from src.services.config import get_settings
from src.services.db import create_ledger_engine

_settings = get_settings()

engine = create_ledger_engine(
    _settings.database_url,
    echo=_settings.database_echo,
    timeout_ms=_settings.transaction_timeout_ms,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
]
