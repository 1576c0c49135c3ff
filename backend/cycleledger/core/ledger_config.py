"""
Ledger runtime configuration

Decided once at application startup and passed explicitly to the services
that post movements. Never mutated afterwards.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from cycleledger.core.settings import Settings
from cycleledger.logging_config import get_logger

logger = get_logger(__name__)

CYCLE_LOCK_COLUMN = "inventory_locked_at"


@dataclass(frozen=True)
class LedgerConfig:
    """
    Capabilities and policies for posting inventory movements.

    Attributes:
        cycle_lock_supported: Whether the schema carries the cycle lock marker.
            When False the cycle lock guard is a no-op.
        allow_negative_stock: Whether outbound movements may take on-hand
            quantity below zero.
    """

    cycle_lock_supported: bool = True
    allow_negative_stock: bool = True


def probe_cycle_lock_support(engine: Engine) -> bool:
    """Return True if the cycles table has the inventory lock column."""
    try:
        columns = inspect(engine).get_columns("cycles")
    except NoSuchTableError:
        return False
    return any(column["name"] == CYCLE_LOCK_COLUMN for column in columns)


def build_ledger_config(engine: Engine, settings: Settings) -> LedgerConfig:
    """
    Build the ledger configuration for this process.

    CYCLE_LOCK_SUPPORT forces lock support on or off; when unset the schema
    is probed. If the probe cannot reach the database, locks are enforced.

    Args:
        engine: Engine used by the application sessions
        settings: Application settings

    Returns:
        Immutable LedgerConfig
    """
    supported: Optional[bool] = settings.CYCLE_LOCK_SUPPORT
    if supported is None:
        try:
            supported = probe_cycle_lock_support(engine)
        except SQLAlchemyError as e:
            logger.error(f"Could not probe schema for cycle lock support, enforcing locks: {e}")
            supported = True

    config = LedgerConfig(
        cycle_lock_supported=supported,
        allow_negative_stock=settings.ALLOW_NEGATIVE_STOCK,
    )
    logger.info(
        "Ledger configuration resolved",
        extra={
            "cycle_lock_supported": config.cycle_lock_supported,
            "allow_negative_stock": config.allow_negative_stock,
        },
    )
    return config


DEFAULT_LEDGER_CONFIG = LedgerConfig()
