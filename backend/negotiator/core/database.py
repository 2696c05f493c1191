"""
Database utilities and connection management.

WHAT: SQLAlchemy engine, session factory and lifecycle helpers
WHY: Persist listings, negotiation sessions and their rounds
HOW: SQLAlchemy sync engine v2 wrapped in an explicitly constructed Database
     object (WAL mode on SQLite) that callers own and pass around
"""

from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from ..utils.logger import get_logger

logger = get_logger(__name__)

# Base for models
Base = declarative_base()


def _enable_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL mode and FK constraints for better concurrency."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Engine plus session factory for one database URL.

    Usage:
        db = Database("sqlite:///./data/negotiator.db")
        db.init()
        with db.session() as session:
            ...
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        parsed = make_url(url)
        self.is_sqlite = parsed.get_backend_name() == "sqlite"

        connect_args = {}
        if self.is_sqlite:
            connect_args["check_same_thread"] = False  # Allow multi-threaded access
            if parsed.database and parsed.database != ":memory:":
                Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(url, connect_args=connect_args, echo=echo, future=True)

        if self.is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_pragmas)

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
            autocommit=False
        )

    @contextmanager
    def session(self):
        """
        Context manager for a transactional database session.

        Commits on success, rolls back on any exception and re-raises.

        Yields:
            Session: SQLAlchemy session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init(self):
        """Create all tables (development convenience; schema is owned elsewhere)."""
        # Import models so they register on Base.metadata
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialized")

    def ping(self) -> dict:
        """
        Check database connectivity.

        Returns:
            Dict with status and info
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            return {"available": True, "error": None}
        except Exception as e:
            logger.error(f"Database ping failed: {e}")
            return {"available": False, "error": str(e)}

    def close(self):
        """Close database connections."""
        self.engine.dispose()
        logger.info("Database connections closed")
