"""
Database session management
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from cycleledger.core.config import settings
from cycleledger.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.database_url

# Log connection info (without password)
logger.info(f"Database connection: {make_url(connection_string).render_as_string(hide_password=True)}")

engine = create_engine(
    connection_string,
    echo=False,  # Set to True for SQL query logging
    pool_pre_ping=True,  # Verify connections before using
    pool_recycle=3600,  # Recycle connections after 1 hour
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/production-orders")
        def list_orders(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any exception.

    Services only flush; the outermost caller wraps the whole operation in
    this block so ledger rows, balance updates and order state are written
    together or not at all.

    Usage:
        with unit_of_work(db):
            complete_production_order(db, user, order_id, config=config)
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
