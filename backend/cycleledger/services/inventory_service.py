"""
Inventory Ledger Service

Posts movements to the append-only ledger and keeps the per-key balance
(on-hand quantity and moving-average unit cost) in step with it.

A balance key is (organization, project, cycle, variant). Every posting:
  1. checks the cycle lock,
  2. locks the key's balance row (creating it if needed),
  3. appends the ledger row,
  4. applies the delta and the moving-average rule to the balance.

IMPORTANT: This service does NOT commit. The caller owns the transaction so
that multi-movement operations (production completion, opening balances)
are all-or-nothing.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from cycleledger.core.config import settings
from cycleledger.core.inventory_config import (
    SourceKind,
    TransactionType,
    PRODUCTION_TRANSACTION_TYPES,
    quantize_cost,
)
from cycleledger.core.ledger_config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from cycleledger.exceptions import (
    InsufficientInventoryError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from cycleledger.logging_config import get_logger
from cycleledger.models.inventory import (
    InventoryBalance,
    InventoryItem,
    InventoryItemVariant,
    InventoryTransaction,
)
from cycleledger.models.organization import Cycle
from cycleledger.services.catalog_service import get_variant
from cycleledger.services.cycle_lock import CycleLockGuard

logger = get_logger(__name__)

ZERO = Decimal("0")


class BalanceKey(NamedTuple):
    """Identity of a running balance."""
    organization_id: int
    project_id: int
    cycle_id: int
    variant_id: int


class SourceRef(NamedTuple):
    """What a movement originated from (expense, production order, ...)."""
    kind: str
    id: Optional[int] = None


class MovementFilter(NamedTuple):
    """Optional filters for ledger history queries."""
    variant_id: Optional[int] = None
    project_id: Optional[int] = None
    cycle_id: Optional[int] = None
    transaction_type: Optional[str] = None
    item_type: Optional[str] = None
    date_from: Optional[Union[date, datetime]] = None
    date_to: Optional[Union[date, datetime]] = None


class MovementRow(NamedTuple):
    """Ledger row joined with catalog labels for display."""
    transaction: InventoryTransaction
    item_name: str
    item_type: str
    variant_label: Optional[str]
    variant_sku: Optional[str]


class OpeningBalanceLine(NamedTuple):
    """Desired on-hand quantity for one variant at the start of a cycle."""
    variant_id: int
    quantity_on_hand: int
    unit_cost: Optional[Decimal] = None


# =============================================================================
# Costing
# =============================================================================

def next_average_cost(
    quantity_on_hand: int,
    avg_unit_cost: Optional[Decimal],
    quantity_delta: int,
    unit_cost: Optional[Decimal],
) -> Optional[Decimal]:
    """
    Apply the moving-average rule for one movement.

    The average only moves on an inbound movement with a known unit cost
    that leaves a positive quantity:

        new_avg = (Q * A + q * c) / (Q + q)

    where a missing prior average counts as zero. Outbound movements and
    inbound movements without a cost leave the average unchanged.
    """
    new_quantity = quantity_on_hand + quantity_delta
    if quantity_delta <= 0 or unit_cost is None or new_quantity <= 0:
        return avg_unit_cost

    prior_value = Decimal(quantity_on_hand) * (avg_unit_cost if avg_unit_cost is not None else ZERO)
    incoming_value = Decimal(quantity_delta) * Decimal(str(unit_cost))
    return quantize_cost((prior_value + incoming_value) / Decimal(new_quantity))


# =============================================================================
# Balance rows
# =============================================================================

def _key_filter(model, key: BalanceKey) -> list:
    return [
        model.organization_id == key.organization_id,
        model.project_id == key.project_id,
        model.cycle_id == key.cycle_id,
        model.inventory_item_variant_id == key.variant_id,
    ]


def _find_balance(db: Session, key: BalanceKey, *, lock: bool = False) -> Optional[InventoryBalance]:
    query = db.query(InventoryBalance).filter(*_key_filter(InventoryBalance, key))
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def _lock_balance(db: Session, key: BalanceKey) -> InventoryBalance:
    """
    Return the key's balance row under a row-level write lock.

    A missing row is created with INSERT ... ON CONFLICT DO NOTHING so two
    transactions racing to create the same key both end up locking the one
    row that won.
    """
    balance = _find_balance(db, key, lock=True)
    if balance is not None:
        return balance

    values = {
        "organization_id": key.organization_id,
        "project_id": key.project_id,
        "cycle_id": key.cycle_id,
        "inventory_item_variant_id": key.variant_id,
        "quantity_on_hand": 0,
        "avg_unit_cost": None,
        "updated_at": datetime.utcnow(),
    }
    conflict_columns = ["organization_id", "project_id", "cycle_id", "inventory_item_variant_id"]
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(InventoryBalance.__table__).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
        db.execute(stmt)
    elif dialect == "sqlite":
        stmt = sqlite_insert(InventoryBalance.__table__).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
        db.execute(stmt)
    else:
        db.add(InventoryBalance(**values))
        db.flush()

    return _find_balance(db, key, lock=True)


def lock_balances(db: Session, keys: Sequence[BalanceKey]) -> Dict[BalanceKey, InventoryBalance]:
    """
    Lock the balance rows of several keys, creating missing ones.

    Rows are always locked in key order (cycle, then variant) whatever order
    the caller lists them in, so two transactions touching the same keys
    cannot deadlock on each other.
    """
    return {key: _lock_balance(db, key) for key in sorted(set(keys))}


def get_balance(db: Session, key: BalanceKey) -> InventoryBalance:
    """
    Current balance for a key.

    Returns a transient zero balance (not added to the session) when the key
    has never had a movement.
    """
    balance = _find_balance(db, key)
    if balance is not None:
        return balance
    return InventoryBalance(
        organization_id=key.organization_id,
        project_id=key.project_id,
        cycle_id=key.cycle_id,
        inventory_item_variant_id=key.variant_id,
        quantity_on_hand=0,
        avg_unit_cost=None,
    )


def list_balances(
    db: Session,
    organization_id: int,
    project_id: int,
    cycle_id: int,
    variant_id: Optional[int] = None,
) -> List[InventoryBalance]:
    """All balances for a project/cycle, optionally for a single variant."""
    query = db.query(InventoryBalance).filter(
        InventoryBalance.organization_id == organization_id,
        InventoryBalance.project_id == project_id,
        InventoryBalance.cycle_id == cycle_id,
    )
    if variant_id is not None:
        query = query.filter(InventoryBalance.inventory_item_variant_id == variant_id)
    return query.order_by(InventoryBalance.inventory_item_variant_id).all()


# =============================================================================
# Posting
# =============================================================================

def post_movement(
    db: Session,
    key: BalanceKey,
    quantity_delta: int,
    unit_cost: Optional[Decimal],
    transaction_type: str,
    source: Optional[SourceRef] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
    *,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> InventoryTransaction:
    """
    Append a movement to the ledger and update the key's balance.

    Args:
        db: Database session (caller commits)
        key: Balance key the movement applies to
        quantity_delta: Signed, non-zero quantity (+ inbound, - outbound)
        unit_cost: Unit cost of the movement, or None if unknown
        transaction_type: One of TransactionType
        source: Originating document
        notes: Free-text notes
        created_by: Acting user ID
        config: Ledger configuration resolved at startup
        guard: Cycle lock guard (defaults to one built from config)

    Returns:
        The new InventoryTransaction (flushed)

    Raises:
        CycleLockedError: The key's cycle is locked
        ValidationError: Zero or non-integer delta, negative cost, unknown
            transaction type or source kind
        NotFoundError: Variant does not exist in the organization
        InsufficientInventoryError: Negative stock is disallowed and the
            movement would take on-hand below zero
    """
    guard = guard or CycleLockGuard(config)
    guard.assert_not_locked(db, key.cycle_id, key.organization_id)

    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer", field="quantity_delta", value=quantity_delta)
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero", field="quantity_delta", value=quantity_delta)

    try:
        transaction_type = TransactionType(transaction_type).value
    except ValueError:
        raise ValidationError(
            f"Invalid transaction type '{transaction_type}'", field="transaction_type"
        ) from None

    if source is not None:
        try:
            source = SourceRef(SourceKind(source.kind).value, source.id)
        except ValueError:
            raise ValidationError(f"Invalid source type '{source.kind}'", field="source_type") from None

    if unit_cost is not None:
        unit_cost = quantize_cost(unit_cost)
        if unit_cost < 0:
            raise ValidationError("unit_cost cannot be negative", field="unit_cost", value=unit_cost)

    variant = get_variant(db, key.variant_id, key.organization_id)

    balance = _lock_balance(db, key)
    previous_quantity = balance.quantity_on_hand or 0
    new_quantity = previous_quantity + quantity_delta

    if quantity_delta < 0 and new_quantity < 0 and not config.allow_negative_stock:
        logger.warning(
            "Rejected outbound movement below zero on-hand",
            extra={"key": key._asdict(), "quantity_delta": quantity_delta, "on_hand": previous_quantity},
        )
        raise InsufficientInventoryError(
            variant.display_name, requested=-quantity_delta, available=previous_quantity
        )

    txn = InventoryTransaction(
        organization_id=key.organization_id,
        project_id=key.project_id,
        cycle_id=key.cycle_id,
        inventory_item_id=variant.inventory_item_id,
        inventory_item_variant_id=key.variant_id,
        transaction_type=transaction_type,
        quantity_delta=quantity_delta,
        unit_cost=unit_cost,
        source_type=source.kind if source else None,
        source_id=source.id if source else None,
        notes=notes,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )
    db.add(txn)

    balance.avg_unit_cost = next_average_cost(
        previous_quantity, balance.avg_unit_cost, quantity_delta, unit_cost
    )
    balance.quantity_on_hand = new_quantity
    balance.updated_at = datetime.utcnow()
    db.flush()

    logger.info(
        f"Posted {transaction_type} {quantity_delta:+d} for variant {key.variant_id}",
        extra={
            "transaction_id": txn.id,
            "key": key._asdict(),
            "unit_cost": unit_cost,
            "quantity_on_hand": balance.quantity_on_hand,
            "avg_unit_cost": balance.avg_unit_cost,
        },
    )
    return txn


def get_movement(db: Session, organization_id: int, transaction_id: int) -> InventoryTransaction:
    """Load a ledger row belonging to the organization."""
    txn = (
        db.query(InventoryTransaction)
        .filter(
            InventoryTransaction.id == transaction_id,
            InventoryTransaction.organization_id == organization_id,
        )
        .first()
    )
    if not txn:
        raise NotFoundError("Inventory transaction", transaction_id)
    return txn


def reverse_movement(
    db: Session,
    organization_id: int,
    transaction_id: int,
    *,
    created_by: Optional[int] = None,
    notes: Optional[str] = None,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> InventoryTransaction:
    """
    Post a REVERSAL that negates an earlier movement.

    The reversal carries no unit cost, so reversing a receipt reduces the
    quantity without touching the average. Production movements are owned by
    their order and cannot be reversed individually; a movement can be
    reversed only once.
    """
    original = (
        db.query(InventoryTransaction)
        .filter(
            InventoryTransaction.id == transaction_id,
            InventoryTransaction.organization_id == organization_id,
        )
        .with_for_update()
        .first()
    )
    if not original:
        raise NotFoundError("Inventory transaction", transaction_id)

    if original.transaction_type == TransactionType.REVERSAL:
        raise InvalidStateError(
            "A reversal cannot itself be reversed", current_state=original.transaction_type
        )
    if original.transaction_type in PRODUCTION_TRANSACTION_TYPES:
        raise InvalidStateError(
            "Production movements cannot be reversed individually",
            current_state=original.transaction_type,
        )

    already_reversed = (
        db.query(InventoryTransaction.id)
        .filter(
            InventoryTransaction.organization_id == organization_id,
            InventoryTransaction.transaction_type == TransactionType.REVERSAL.value,
            InventoryTransaction.source_type == SourceKind.INVENTORY_TRANSACTION.value,
            InventoryTransaction.source_id == original.id,
        )
        .first()
    )
    if already_reversed:
        raise InvalidStateError(f"Inventory transaction {original.id} has already been reversed")

    key = BalanceKey(
        original.organization_id, original.project_id, original.cycle_id, original.inventory_item_variant_id
    )
    return post_movement(
        db,
        key,
        -original.quantity_delta,
        None,
        TransactionType.REVERSAL.value,
        SourceRef(SourceKind.INVENTORY_TRANSACTION.value, original.id),
        notes or f"Reversal of inventory transaction {original.id}",
        created_by,
        config=config,
        guard=guard,
    )


def post_opening_balance(
    db: Session,
    organization_id: int,
    project_id: int,
    cycle_id: int,
    lines: Sequence[OpeningBalanceLine],
    *,
    created_by: Optional[int] = None,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> List[InventoryBalance]:
    """
    Bring each variant's on-hand quantity to the stated opening figure.

    For every line the difference between the desired and the current
    quantity is posted as an OPENING_BALANCE movement. The unit cost is only
    recorded when stock is added; lines that already match are skipped.

    Returns:
        All balances for the project/cycle after posting
    """
    guard = guard or CycleLockGuard(config)
    guard.assert_not_locked(db, cycle_id, organization_id)

    seen = set()
    for line in lines:
        if line.variant_id in seen:
            raise ValidationError(
                f"Variant {line.variant_id} appears more than once", field="lines", value=line.variant_id
            )
        seen.add(line.variant_id)
        if isinstance(line.quantity_on_hand, bool) or not isinstance(line.quantity_on_hand, int):
            raise ValidationError("quantity_on_hand must be an integer", field="quantity_on_hand")
        if line.quantity_on_hand < 0:
            raise ValidationError(
                "Opening quantity cannot be negative", field="quantity_on_hand", value=line.quantity_on_hand
            )
        get_variant(db, line.variant_id, organization_id)

    keys = [BalanceKey(organization_id, project_id, cycle_id, line.variant_id) for line in lines]
    locked = lock_balances(db, keys)

    posted = 0
    for key, line in zip(keys, lines):
        delta = line.quantity_on_hand - (locked[key].quantity_on_hand or 0)
        if delta == 0:
            continue
        post_movement(
            db,
            key,
            delta,
            line.unit_cost if delta > 0 else None,
            TransactionType.OPENING_BALANCE.value,
            SourceRef(SourceKind.OPENING_BALANCE.value),
            "Opening balance",
            created_by,
            config=config,
            guard=guard,
        )
        posted += 1

    logger.info(
        f"Opening balance for project {project_id} cycle {cycle_id}: {posted} of {len(lines)} line(s) posted",
        extra={"organization_id": organization_id},
    )
    return list_balances(db, organization_id, project_id, cycle_id)


def _lock_cycle_row(db: Session, organization_id: int, project_id: int, cycle_id: int) -> Cycle:
    cycle = (
        db.query(Cycle)
        .filter(
            Cycle.id == cycle_id,
            Cycle.organization_id == organization_id,
            Cycle.project_id == project_id,
        )
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not cycle:
        raise NotFoundError("Cycle", cycle_id)
    return cycle


def carry_forward_cycle(
    db: Session,
    organization_id: int,
    project_id: int,
    from_cycle_id: int,
    to_cycle_id: int,
    created_by: Optional[int] = None,
    *,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> List[InventoryBalance]:
    """
    Carry a cycle's closing inventory into the next cycle and lock it.

    Every non-zero balance of the source cycle is posted into the target
    cycle as an OPENING_BALANCE movement at the source's average cost. The
    target is stamped with where its opening balances came from, and the
    source cycle is locked so its closing figures cannot change afterwards.

    Running it again for the same pair does nothing.

    Args:
        db: Database session (caller commits)
        organization_id: Tenant scope
        project_id: Project both cycles belong to
        from_cycle_id: Cycle being closed
        to_cycle_id: Cycle receiving the opening balances
        created_by: Acting user ID
        config: Ledger configuration resolved at startup
        guard: Cycle lock guard (defaults to one built from config)

    Returns:
        All balances of the target cycle

    Raises:
        ValidationError: Both cycle IDs are the same
        NotFoundError: Either cycle is not in the project
        InvalidStateError: The schema has no cycle lock columns, or the
            target already received opening balances from another cycle
        CycleLockedError: The target cycle is locked
    """
    if not config.cycle_lock_supported:
        raise InvalidStateError("Cycle inventory carry-forward is not supported by this database schema")
    if from_cycle_id == to_cycle_id:
        raise ValidationError("A cycle cannot be carried forward into itself", field="to_cycle_id", value=to_cycle_id)
    guard = guard or CycleLockGuard(config)

    # Lock both cycle rows in id order; writers to the source cycle hold a
    # shared lock on it and are waited out here.
    cycles = {
        cycle_id: _lock_cycle_row(db, organization_id, project_id, cycle_id)
        for cycle_id in sorted((from_cycle_id, to_cycle_id))
    }
    source_cycle, target_cycle = cycles[from_cycle_id], cycles[to_cycle_id]

    if target_cycle.opening_balance_posted_at is not None:
        if target_cycle.carry_forward_from_cycle_id != from_cycle_id:
            raise InvalidStateError(
                f"Cycle {to_cycle_id} already has opening balances carried forward "
                f"from cycle {target_cycle.carry_forward_from_cycle_id}"
            )
        logger.info(
            f"Cycle {from_cycle_id} already carried forward into cycle {to_cycle_id}",
            extra={"organization_id": organization_id, "project_id": project_id},
        )
        return list_balances(db, organization_id, project_id, to_cycle_id)

    guard.assert_not_locked(db, to_cycle_id, organization_id)

    closing = [
        balance
        for balance in list_balances(db, organization_id, project_id, from_cycle_id)
        if balance.quantity_on_hand
    ]
    lock_balances(
        db, [BalanceKey(organization_id, project_id, to_cycle_id, b.inventory_item_variant_id) for b in closing]
    )
    source = SourceRef(SourceKind.CARRY_FORWARD.value, from_cycle_id)
    for balance in closing:
        post_movement(
            db,
            BalanceKey(organization_id, project_id, to_cycle_id, balance.inventory_item_variant_id),
            balance.quantity_on_hand,
            balance.avg_unit_cost,
            TransactionType.OPENING_BALANCE.value,
            source,
            "Carry-forward opening balance",
            created_by,
            config=config,
            guard=guard,
        )

    now = datetime.utcnow()
    target_cycle.carry_forward_from_cycle_id = from_cycle_id
    target_cycle.opening_balance_posted_at = now
    target_cycle.opening_balance_posted_by = created_by
    if source_cycle.inventory_locked_at is None:
        source_cycle.inventory_locked_at = now
        source_cycle.inventory_locked_by = created_by
    db.flush()

    logger.info(
        f"Carried forward {len(closing)} balance(s) from cycle {from_cycle_id} to cycle {to_cycle_id}",
        extra={"organization_id": organization_id, "project_id": project_id, "user_id": created_by},
    )
    return list_balances(db, organization_id, project_id, to_cycle_id)


# =============================================================================
# History
# =============================================================================

def _as_start(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _as_exclusive_end(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value + timedelta(microseconds=1)
    return datetime.combine(value + timedelta(days=1), time.min)


def clamp_movement_limit(limit: Optional[int]) -> int:
    """Apply the default and the 1..MOVEMENT_LIST_MAX_LIMIT bounds."""
    if limit is None:
        limit = settings.MOVEMENT_LIST_DEFAULT_LIMIT
    return max(1, min(int(limit), settings.MOVEMENT_LIST_MAX_LIMIT))


def list_movements(
    db: Session,
    organization_id: int,
    filters: Optional[MovementFilter] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
    order: str = "desc",
) -> List[MovementRow]:
    """
    Ledger history for an organization.

    Args:
        filters: Optional MovementFilter; date bounds are inclusive
        limit: Page size, clamped to 1..MOVEMENT_LIST_MAX_LIMIT
        offset: Rows to skip
        order: "desc" for most recent first, "asc" for chronological

    Returns:
        List of MovementRow
    """
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'", field="order", value=order)
    if offset < 0:
        raise ValidationError("offset cannot be negative", field="offset", value=offset)
    filters = filters or MovementFilter()

    query = (
        db.query(
            InventoryTransaction,
            InventoryItem.name,
            InventoryItem.item_type,
            InventoryItemVariant.label,
            InventoryItemVariant.sku,
        )
        .join(InventoryItem, InventoryTransaction.inventory_item_id == InventoryItem.id)
        .join(InventoryItemVariant, InventoryTransaction.inventory_item_variant_id == InventoryItemVariant.id)
        .filter(InventoryTransaction.organization_id == organization_id)
    )

    if filters.project_id is not None:
        query = query.filter(InventoryTransaction.project_id == filters.project_id)
    if filters.cycle_id is not None:
        query = query.filter(InventoryTransaction.cycle_id == filters.cycle_id)
    if filters.variant_id is not None:
        query = query.filter(InventoryTransaction.inventory_item_variant_id == filters.variant_id)
    if filters.transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == filters.transaction_type)
    if filters.item_type:
        query = query.filter(InventoryItem.item_type == filters.item_type)
    if filters.date_from is not None:
        query = query.filter(InventoryTransaction.created_at >= _as_start(filters.date_from))
    if filters.date_to is not None:
        query = query.filter(InventoryTransaction.created_at < _as_exclusive_end(filters.date_to))

    if order == "asc":
        query = query.order_by(InventoryTransaction.created_at.asc(), InventoryTransaction.id.asc())
    else:
        query = query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())

    rows = query.offset(offset).limit(clamp_movement_limit(limit)).all()
    return [MovementRow(*row) for row in rows]


# =============================================================================
# Rebuild & consistency
# =============================================================================

def rebuild_balance(db: Session, key: BalanceKey) -> InventoryBalance:
    """
    Recompute a balance by replaying its ledger rows in posting order.

    Rows of one key get their ids under the key's balance lock, so id order
    is posting order even when app server clocks disagree.

    The cached row is overwritten with the replayed quantity and average.
    Keys with no movements get a transient zero balance.
    """
    movements = (
        db.query(InventoryTransaction.quantity_delta, InventoryTransaction.unit_cost)
        .filter(*_key_filter(InventoryTransaction, key))
        .order_by(InventoryTransaction.id.asc())
        .all()
    )

    quantity = 0
    average: Optional[Decimal] = None
    for delta, cost in movements:
        average = next_average_cost(quantity, average, delta, cost)
        quantity += delta

    if not movements:
        balance = _find_balance(db, key, lock=True)
        if balance is None:
            return get_balance(db, key)
    else:
        balance = _lock_balance(db, key)

    balance.quantity_on_hand = quantity
    balance.avg_unit_cost = average
    balance.updated_at = datetime.utcnow()
    db.flush()
    return balance


def validate_balance_consistency(
    db: Session,
    organization_id: Optional[int] = None,
    auto_fix: bool = False,
) -> List[Dict[str, Any]]:
    """
    Compare cached balances against the ledger.

    A key is inconsistent when its balance quantity differs from the sum of
    its ledger deltas, or when it has ledger rows but no balance row.

    Args:
        db: Database session
        organization_id: Optional filter by organization
        auto_fix: If True, rebuild inconsistent balances from the ledger

    Returns:
        List of inconsistency records found/fixed
    """
    sums_query = db.query(
        InventoryTransaction.organization_id,
        InventoryTransaction.project_id,
        InventoryTransaction.cycle_id,
        InventoryTransaction.inventory_item_variant_id,
        func.sum(InventoryTransaction.quantity_delta),
    ).group_by(
        InventoryTransaction.organization_id,
        InventoryTransaction.project_id,
        InventoryTransaction.cycle_id,
        InventoryTransaction.inventory_item_variant_id,
    )
    balances_query = db.query(InventoryBalance)
    if organization_id is not None:
        sums_query = sums_query.filter(InventoryTransaction.organization_id == organization_id)
        balances_query = balances_query.filter(InventoryBalance.organization_id == organization_id)

    ledger_totals = {
        BalanceKey(org_id, project_id, cycle_id, variant_id): int(total or 0)
        for org_id, project_id, cycle_id, variant_id, total in sums_query.all()
    }
    cached = {
        BalanceKey(b.organization_id, b.project_id, b.cycle_id, b.inventory_item_variant_id): b.quantity_on_hand
        for b in balances_query.all()
    }

    inconsistencies = []
    for key in sorted(set(ledger_totals) | set(cached)):
        ledger_quantity = ledger_totals.get(key, 0)
        balance_quantity = cached.get(key)
        if balance_quantity == ledger_quantity:
            continue

        inconsistency = {
            "organization_id": key.organization_id,
            "project_id": key.project_id,
            "cycle_id": key.cycle_id,
            "variant_id": key.variant_id,
            "ledger_quantity": ledger_quantity,
            "balance_quantity": balance_quantity,
            "issue": "missing_balance" if balance_quantity is None else "quantity_mismatch",
            "fixed": False,
        }
        logger.warning("Inventory balance drift detected", extra=inconsistency)

        if auto_fix:
            rebuilt = rebuild_balance(db, key)
            inconsistency["fixed"] = True
            inconsistency["new_quantity"] = rebuilt.quantity_on_hand
            logger.info(
                f"Rebuilt inventory balance for variant {key.variant_id} "
                f"(project {key.project_id}, cycle {key.cycle_id}): {balance_quantity} -> {ledger_quantity}"
            )

        inconsistencies.append(inconsistency)

    return inconsistencies
