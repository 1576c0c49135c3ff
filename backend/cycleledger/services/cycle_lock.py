"""
Cycle Lock Guard

Once a cycle's inventory has been carried forward into the next cycle, the
cycle is frozen: any further movement would make the carried-forward
opening balances wrong. Every write path checks the guard first, inside the
same transaction as the write.
"""
from typing import Optional

from sqlalchemy.orm import Session

from cycleledger.core.ledger_config import LedgerConfig, DEFAULT_LEDGER_CONFIG
from cycleledger.exceptions import CycleLockedError
from cycleledger.logging_config import get_logger
from cycleledger.models.organization import Cycle

logger = get_logger(__name__)


class CycleLockGuard:
    """
    Answers whether postings into a cycle are forbidden.

    The cycle row is read with a shared lock so that a concurrent
    carry-forward (which sets ``inventory_locked_at``) waits until the
    current write transaction ends, and vice versa.
    """

    def __init__(self, config: LedgerConfig = DEFAULT_LEDGER_CONFIG):
        self.config = config

    def is_locked(self, db: Session, cycle_id: Optional[int], organization_id: int) -> bool:
        """
        Check the lock marker for a cycle.

        Returns False when locking is unsupported, no cycle is given, or the
        cycle does not exist in the organization.
        """
        if not self.config.cycle_lock_supported or not cycle_id:
            return False

        locked_at = (
            db.query(Cycle.inventory_locked_at)
            .filter(Cycle.id == cycle_id, Cycle.organization_id == organization_id)
            .with_for_update(read=True)
            .scalar()
        )
        return locked_at is not None

    def assert_not_locked(self, db: Session, cycle_id: Optional[int], organization_id: int) -> None:
        """
        Raise CycleLockedError if the cycle's inventory has been carried forward.

        Args:
            db: Database session (the caller's transaction)
            cycle_id: Cycle being written to
            organization_id: Tenant scope

        Raises:
            CycleLockedError: If the cycle is locked
        """
        if self.is_locked(db, cycle_id, organization_id):
            logger.warning(
                "Rejected inventory write to locked cycle",
                extra={"cycle_id": cycle_id, "organization_id": organization_id},
            )
            raise CycleLockedError(cycle_id)
