"""
Database setup and session management for the swap engine.
"""
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from .schema import Base

# Default database path
DEFAULT_DB_PATH = os.path.join("data", "swap_engine.sqlite")


class Database:
    """SQLite storage shared by the ledger, order store and wallet store."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path or os.environ.get("DATABASE_PATH", DEFAULT_DB_PATH)

        if self.db_path == ":memory:":
            from sqlalchemy.pool import StaticPool

            # One shared connection, otherwise every session sees an empty db
            self.engine = create_engine(
                "sqlite://",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            db_dir = os.path.dirname(self.db_path)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)

            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def init_db(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Session:
        """
        Context manager for database sessions.

        Usage:
            with db.get_session() as session:
                session.query(TradeRow).all()
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

    def dispose(self) -> None:
        self.engine.dispose()


# Global database instance (lazy initialization)
_db_instance: Optional[Database] = None


def get_database(db_path: Optional[str] = None) -> Database:
    """
    Get the global database instance, creating tables on first use.

    Args:
        db_path: Optional path to database file

    Returns:
        Database instance
    """
    global _db_instance
    if _db_instance is None:
        _db_instance = Database(db_path)
        _db_instance.init_db()
    return _db_instance
