"""Engine construction for the ledger database.

SQLite has no row locks, so file-backed SQLite databases open every
transaction with ``BEGIN IMMEDIATE``: concurrent writers queue on the
database lock instead of interleaving their read-modify-write cycles.
PostgreSQL relies on ``SELECT ... FOR UPDATE`` and advisory locks taken by
the ledger store.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in database_url


def use_immediate_transactions(engine: Engine) -> None:
    """Make pysqlite emit BEGIN IMMEDIATE at the start of every transaction."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        # Let SQLAlchemy issue BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_ledger_engine(
    database_url: str, echo: bool = False, timeout_ms: int = 5000
) -> Engine:
    """Create an engine configured for ledger transactions.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements
        timeout_ms: How long SQLite waits on a locked database

    Returns:
        Configured Engine
    """
    if database_url.startswith("sqlite"):
        if _is_memory_sqlite(database_url):
            # Single shared connection so every session sees the same database
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout_ms / 1000},
        )
        use_immediate_transactions(engine)
        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


__all__ = ["create_ledger_engine", "use_immediate_transactions"]
