"""
Production Order Service

Manages production orders from DRAFT to COMPLETED. Completion derives the
output unit cost from the inputs and posts, in the caller's transaction:

    - one PRODUCTION_ISSUE per input line (negative quantity)
    - one PRODUCTION_RECEIPT for the output (positive quantity)

Input cost resolution, first match wins:
    1. the line's unit_cost_override
    2. the input's moving-average cost in the order's project/cycle
    3. the variant's default unit cost
    4. zero

Issue movements record only the override (None when absent); the resolved
cost still feeds the output unit cost.

IMPORTANT: This service does NOT commit. Caller is responsible for commit,
and for rolling back if any step raises.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from cycleledger.core.inventory_config import SourceKind, TransactionType, quantize_cost
from cycleledger.core.ledger_config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from cycleledger.core.status_config import (
    ProductionOrderStatus,
    ensure_production_order_editable,
    validate_production_order_transition,
)
from cycleledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from cycleledger.logging_config import get_logger
from cycleledger.models.organization import User
from cycleledger.models.production_order import ProductionOrder, ProductionOrderInput
from cycleledger.services.access import accessible_project_ids, assert_project_access, resolve_project_cycle
from cycleledger.services.catalog_service import get_variant, get_variant_info
from cycleledger.services.cycle_lock import CycleLockGuard
from cycleledger.services.inventory_service import (
    BalanceKey,
    SourceRef,
    ZERO,
    get_balance,
    lock_balances,
    post_movement,
)

logger = get_logger(__name__)

UPDATABLE_FIELDS = {"notes", "output_variant_id", "output_quantity", "inputs", "status"}


class InputLine(NamedTuple):
    """Input line as supplied by the caller."""
    variant_id: int
    quantity_required: int
    unit_cost_override: Optional[Decimal] = None
    notes: Optional[str] = None


class ResolvedInput(NamedTuple):
    """Input line with the unit cost used for output costing."""
    line: ProductionOrderInput
    unit_cost: Decimal
    cost_source: str  # override, average, default, zero


# =============================================================================
# Validation helpers
# =============================================================================

def _validate_quantity(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field, value=value)
    if value <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field, value=value)
    return value


def _build_inputs(db: Session, organization_id: int, inputs: Sequence[InputLine]) -> List[ProductionOrderInput]:
    if not inputs:
        raise ValidationError("At least one input line is required", field="inputs")

    lines = []
    for index, line_in in enumerate(inputs):
        quantity = _validate_quantity(line_in.quantity_required, f"inputs[{index}].quantity_required")
        override = line_in.unit_cost_override
        if override is not None:
            override = quantize_cost(override)
            if override < 0:
                raise ValidationError(
                    "unit_cost_override cannot be negative",
                    field=f"inputs[{index}].unit_cost_override",
                    value=override,
                )
        get_variant(db, line_in.variant_id, organization_id)
        lines.append(
            ProductionOrderInput(
                input_inventory_item_variant_id=line_in.variant_id,
                quantity_required=quantity,
                unit_cost_override=override,
                notes=line_in.notes,
            )
        )
    return lines


def _get_order(db: Session, organization_id: int, order_id: int, *, lock: bool = False) -> ProductionOrder:
    query = db.query(ProductionOrder).filter(
        ProductionOrder.id == order_id,
        ProductionOrder.organization_id == organization_id,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    order = query.first()
    if not order:
        raise NotFoundError("Production order", order_id)
    return order


# =============================================================================
# Reads
# =============================================================================

def get_production_order(db: Session, user: User, order_id: int) -> ProductionOrder:
    """Load an order the user is allowed to see."""
    order = _get_order(db, user.organization_id, order_id)
    assert_project_access(db, user, order.project_id)
    return order


def list_production_orders(
    db: Session,
    user: User,
    *,
    project_id: Optional[int] = None,
    cycle_id: Optional[int] = None,
    status: Optional[str] = None,
    offset: int = 0,
    limit: int = 100,
) -> List[ProductionOrder]:
    """
    List orders newest first, with inputs loaded.

    Non-admin users only see orders in projects they are assigned to.
    """
    query = (
        db.query(ProductionOrder)
        .options(selectinload(ProductionOrder.inputs))
        .filter(ProductionOrder.organization_id == user.organization_id)
    )
    if project_id is not None:
        query = query.filter(ProductionOrder.project_id == project_id)
    if cycle_id is not None:
        query = query.filter(ProductionOrder.cycle_id == cycle_id)
    if status:
        query = query.filter(ProductionOrder.status == status)

    allowed = accessible_project_ids(db, user)
    if allowed is not None:
        if not allowed:
            return []
        query = query.filter(ProductionOrder.project_id.in_(allowed))

    return (
        query.order_by(ProductionOrder.created_at.desc(), ProductionOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


# =============================================================================
# Writes
# =============================================================================

def create_production_order(
    db: Session,
    user: User,
    *,
    project_id: int,
    cycle_id: int,
    output_variant_id: int,
    output_quantity: int,
    inputs: Sequence[InputLine],
    notes: Optional[str] = None,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> ProductionOrder:
    """
    Create a DRAFT production order with its input lines.

    Args:
        db: Database session (caller commits)
        user: Acting user
        project_id: Project the order belongs to
        cycle_id: Cycle the order will post into
        output_variant_id: Variant produced
        output_quantity: Quantity produced (> 0)
        inputs: Input lines (at least one, each quantity > 0)
        notes: Free-text notes

    Returns:
        The new ProductionOrder (flushed)
    """
    guard = guard or CycleLockGuard(config)
    output_quantity = _validate_quantity(output_quantity, "output_quantity")
    if not inputs:
        raise ValidationError("At least one input line is required", field="inputs")

    resolve_project_cycle(db, user, project_id, cycle_id)
    guard.assert_not_locked(db, cycle_id, user.organization_id)

    get_variant(db, output_variant_id, user.organization_id)
    input_lines = _build_inputs(db, user.organization_id, inputs)

    order = ProductionOrder(
        organization_id=user.organization_id,
        project_id=project_id,
        cycle_id=cycle_id,
        status=ProductionOrderStatus.DRAFT.value,
        output_inventory_item_variant_id=output_variant_id,
        output_quantity=output_quantity,
        notes=notes,
        created_by=user.id,
        created_at=datetime.utcnow(),
    )
    order.inputs = input_lines
    db.add(order)
    db.flush()

    logger.info(
        f"Created production order {order.id} with {len(input_lines)} input(s)",
        extra={"project_id": project_id, "cycle_id": cycle_id, "user_id": user.id},
    )
    return order


def update_production_order(
    db: Session,
    user: User,
    order_id: int,
    changes: Dict[str, Any],
    *,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> ProductionOrder:
    """
    Apply a partial update to a DRAFT order.

    Recognised keys: notes, output_variant_id, output_quantity, inputs
    (full replacement, list of InputLine) and status. Setting status to
    COMPLETED runs completion after the other changes are applied.

    Raises:
        InvalidStateError: The order is COMPLETED
        ValidationError: Unknown field, bad quantity or empty input list
    """
    guard = guard or CycleLockGuard(config)
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(sorted(unknown))}", details={"fields": sorted(unknown)}
        )

    order = _get_order(db, user.organization_id, order_id, lock=True)
    assert_project_access(db, user, order.project_id)

    target_status = changes.get("status")
    if target_status is not None:
        try:
            target_status = ProductionOrderStatus(target_status).value
        except ValueError:
            raise ValidationError(f"Invalid status '{target_status}'", field="status") from None

    edits = {k: v for k, v in changes.items() if k != "status"}
    if edits:
        ensure_production_order_editable(order.status, "modify")
    if target_status is not None and (
        target_status != order.status or target_status == ProductionOrderStatus.COMPLETED
    ):
        validate_production_order_transition(order.status, target_status)

    guard.assert_not_locked(db, order.cycle_id, order.organization_id)

    if "output_variant_id" in edits:
        get_variant(db, edits["output_variant_id"], order.organization_id)
        order.output_inventory_item_variant_id = edits["output_variant_id"]
    if "output_quantity" in edits:
        order.output_quantity = _validate_quantity(edits["output_quantity"], "output_quantity")
    if "notes" in edits:
        order.notes = edits["notes"]
    if "inputs" in edits:
        new_lines = _build_inputs(db, order.organization_id, edits["inputs"] or [])
        order.inputs.clear()
        db.flush()
        order.inputs.extend(new_lines)
    db.flush()

    if edits:
        logger.info(
            f"Updated production order {order.id}",
            extra={"fields": sorted(edits), "user_id": user.id},
        )

    if target_status == ProductionOrderStatus.COMPLETED:
        _complete(db, order, user, config, guard)
    return order


def resolve_input_costs(db: Session, order: ProductionOrder) -> List[ResolvedInput]:
    """Resolve the unit cost of every input line of an order."""
    resolved = []
    for line in order.inputs:
        variant_id = line.input_inventory_item_variant_id
        if line.unit_cost_override is not None:
            resolved.append(ResolvedInput(line, Decimal(line.unit_cost_override), "override"))
            continue

        balance = get_balance(
            db, BalanceKey(order.organization_id, order.project_id, order.cycle_id, variant_id)
        )
        if balance.avg_unit_cost is not None:
            resolved.append(ResolvedInput(line, Decimal(balance.avg_unit_cost), "average"))
            continue

        info = get_variant_info(db, variant_id, order.organization_id)
        if info.default_unit_cost is not None:
            resolved.append(ResolvedInput(line, Decimal(info.default_unit_cost), "default"))
        else:
            resolved.append(ResolvedInput(line, ZERO, "zero"))

    for item in resolved:
        logger.debug(
            f"Production order {order.id}: input variant {item.line.input_inventory_item_variant_id} "
            f"costed at {item.unit_cost} ({item.cost_source})"
        )
    return resolved


def _complete(
    db: Session,
    order: ProductionOrder,
    user: User,
    config: LedgerConfig,
    guard: CycleLockGuard,
) -> ProductionOrder:
    if not order.inputs:
        raise InvalidStateError(
            "Production order has no inputs to consume", current_state=order.status
        )

    # Lock every balance the order touches, in key order, before costing
    keys = [
        BalanceKey(order.organization_id, order.project_id, order.cycle_id, line.input_inventory_item_variant_id)
        for line in order.inputs
    ]
    keys.append(
        BalanceKey(order.organization_id, order.project_id, order.cycle_id, order.output_inventory_item_variant_id)
    )
    lock_balances(db, keys)

    resolved = resolve_input_costs(db, order)
    total_cost = sum((Decimal(r.line.quantity_required) * r.unit_cost for r in resolved), ZERO)
    if order.output_quantity and order.output_quantity > 0:
        output_unit_cost = quantize_cost(total_cost / Decimal(order.output_quantity))
    else:
        output_unit_cost = quantize_cost(ZERO)

    source = SourceRef(SourceKind.PRODUCTION_ORDER.value, order.id)
    note = order.notes or f"Production order {order.id}"

    for r in resolved:
        post_movement(
            db,
            BalanceKey(order.organization_id, order.project_id, order.cycle_id, r.line.input_inventory_item_variant_id),
            -r.line.quantity_required,
            r.line.unit_cost_override,
            TransactionType.PRODUCTION_ISSUE.value,
            source,
            note,
            user.id,
            config=config,
            guard=guard,
        )

    post_movement(
        db,
        BalanceKey(order.organization_id, order.project_id, order.cycle_id, order.output_inventory_item_variant_id),
        order.output_quantity,
        output_unit_cost,
        TransactionType.PRODUCTION_RECEIPT.value,
        source,
        note,
        user.id,
        config=config,
        guard=guard,
    )

    order.output_unit_cost = output_unit_cost
    order.completed_at = datetime.utcnow()
    order.status = ProductionOrderStatus.COMPLETED.value
    db.flush()

    logger.info(
        f"Completed production order {order.id}: total cost {total_cost}, "
        f"output unit cost {output_unit_cost}",
        extra={"order_id": order.id, "inputs": len(resolved), "user_id": user.id},
    )
    return order


def complete_production_order(
    db: Session,
    user: User,
    order_id: int,
    *,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> ProductionOrder:
    """
    Complete a DRAFT order: post all movements and fix the output cost.

    The order row is locked for the duration of the transaction, so a second
    concurrent completion waits and then fails the status check.

    Raises:
        NotFoundError: Order not in the user's organization
        PermissionDeniedError: User lacks project access
        CycleLockedError: The order's cycle is locked (before or during posting)
        InvalidStateError: Order already COMPLETED or has no inputs
    """
    guard = guard or CycleLockGuard(config)
    order = _get_order(db, user.organization_id, order_id, lock=True)
    assert_project_access(db, user, order.project_id)
    guard.assert_not_locked(db, order.cycle_id, order.organization_id)
    validate_production_order_transition(order.status, ProductionOrderStatus.COMPLETED.value)
    return _complete(db, order, user, config, guard)


def delete_production_order(
    db: Session,
    user: User,
    order_id: int,
    *,
    config: LedgerConfig = DEFAULT_LEDGER_CONFIG,
    guard: Optional[CycleLockGuard] = None,
) -> None:
    """Delete a DRAFT order and its inputs."""
    guard = guard or CycleLockGuard(config)
    order = _get_order(db, user.organization_id, order_id, lock=True)
    assert_project_access(db, user, order.project_id)
    ensure_production_order_editable(order.status, "delete")
    guard.assert_not_locked(db, order.cycle_id, order.organization_id)

    db.delete(order)
    db.flush()
    logger.info(f"Deleted production order {order_id}", extra={"user_id": user.id})
