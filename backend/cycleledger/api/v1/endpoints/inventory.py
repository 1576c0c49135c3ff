"""
Inventory Ledger API Endpoints

Movement history, manual movements, reversals, balances, opening
balances and cycle carry-forward. Every write goes through the ledger service, which checks the
cycle lock and updates the balance in the same transaction.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cycleledger.api.v1.deps import get_current_user, get_cycle_lock_guard, get_ledger_config
from cycleledger.core.inventory_config import SYSTEM_SOURCE_KINDS, SYSTEM_TRANSACTION_TYPES
from cycleledger.core.ledger_config import LedgerConfig
from cycleledger.db.session import get_db, unit_of_work
from cycleledger.exceptions import PermissionDeniedError, ValidationError
from cycleledger.logging_config import get_logger
from cycleledger.models.organization import User
from cycleledger.schemas.inventory import (
    BalanceResponse,
    CarryForwardRequest,
    MovementCreate,
    MovementResponse,
    MovementReverse,
    OpeningBalanceRequest,
)
from cycleledger.services import inventory_service
from cycleledger.services.access import accessible_project_ids, assert_project_access, resolve_project_cycle
from cycleledger.services.cycle_lock import CycleLockGuard
from cycleledger.services.inventory_service import (
    BalanceKey,
    MovementFilter,
    MovementRow,
    OpeningBalanceLine,
    SourceRef,
)

router = APIRouter(prefix="/inventory", tags=["inventory"])
logger = get_logger(__name__)


def _movement_response(row: MovementRow) -> MovementResponse:
    response = MovementResponse.model_validate(row.transaction)
    response.item_name = row.item_name
    response.item_type = row.item_type
    response.variant_label = row.variant_label
    response.variant_sku = row.variant_sku
    return response


def _require_pair(project_id: Optional[int], cycle_id: Optional[int]) -> None:
    if (project_id is None) != (cycle_id is None):
        raise ValidationError("project_id and cycle_id must be provided together", field="cycle_id")


# ============================================================================
# Movements
# ============================================================================

@router.get("/movements", response_model=List[MovementResponse])
async def list_movements(
    project_id: Optional[int] = Query(None),
    cycle_id: Optional[int] = Query(None),
    variant_id: Optional[int] = Query(None),
    transaction_type: Optional[str] = Query(None),
    type_code: Optional[str] = Query(None, description="Item type filter"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(None, description="Clamped to 1..MOVEMENT_LIST_MAX_LIMIT"),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Ledger history, most recent first unless order=asc"""
    _require_pair(project_id, cycle_id)
    if project_id is not None:
        resolve_project_cycle(db, current_user, project_id, cycle_id)
    elif accessible_project_ids(db, current_user) is not None:
        raise PermissionDeniedError(
            "project_id and cycle_id are required for non-admin users", action="list", resource="movements"
        )

    rows = inventory_service.list_movements(
        db,
        current_user.organization_id,
        MovementFilter(
            variant_id=variant_id,
            project_id=project_id,
            cycle_id=cycle_id,
            transaction_type=transaction_type,
            item_type=type_code,
            date_from=date_from,
            date_to=date_to,
        ),
        limit=limit,
        offset=offset,
        order=order,
    )
    return [_movement_response(row) for row in rows]


@router.post("/movements", response_model=MovementResponse, status_code=status.HTTP_201_CREATED)
async def create_movement(
    request: MovementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Post a receipt, issue or adjustment"""
    if request.transaction_type in SYSTEM_TRANSACTION_TYPES:
        raise ValidationError(
            f"{request.transaction_type.value} movements cannot be posted directly",
            field="transaction_type",
        )

    if request.source_type in SYSTEM_SOURCE_KINDS:
        raise ValidationError(
            f"Movements with source type {request.source_type.value} cannot be posted directly",
            field="source_type",
        )

    source = SourceRef(request.source_type.value, request.source_id) if request.source_type else None
    with unit_of_work(db):
        resolve_project_cycle(db, current_user, request.project_id, request.cycle_id)
        txn = inventory_service.post_movement(
            db,
            BalanceKey(current_user.organization_id, request.project_id, request.cycle_id, request.variant_id),
            request.quantity_delta,
            request.unit_cost,
            request.transaction_type.value,
            source,
            request.notes,
            current_user.id,
            config=config,
            guard=guard,
        )
    db.refresh(txn)
    return txn


@router.post(
    "/movements/{transaction_id}/reverse",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_movement(
    transaction_id: int,
    request: Optional[MovementReverse] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Negate an earlier movement with a REVERSAL"""
    with unit_of_work(db):
        original = inventory_service.get_movement(db, current_user.organization_id, transaction_id)
        assert_project_access(db, current_user, original.project_id)
        txn = inventory_service.reverse_movement(
            db,
            current_user.organization_id,
            transaction_id,
            created_by=current_user.id,
            notes=request.notes if request else None,
            config=config,
            guard=guard,
        )
    db.refresh(txn)
    return txn


# ============================================================================
# Balances
# ============================================================================

@router.get("/balances", response_model=List[BalanceResponse])
async def list_balances(
    project_id: int = Query(...),
    cycle_id: int = Query(...),
    variant_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Balances for a project/cycle; with variant_id, that variant's balance (zero if none)"""
    resolve_project_cycle(db, current_user, project_id, cycle_id)
    if variant_id is not None:
        balance = inventory_service.get_balance(
            db, BalanceKey(current_user.organization_id, project_id, cycle_id, variant_id)
        )
        return [balance]
    return inventory_service.list_balances(db, current_user.organization_id, project_id, cycle_id)


@router.post("/opening-balance", response_model=List[BalanceResponse])
async def post_opening_balance(
    request: OpeningBalanceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Set opening on-hand quantities for a project/cycle"""
    with unit_of_work(db):
        resolve_project_cycle(db, current_user, request.project_id, request.cycle_id)
        balances = inventory_service.post_opening_balance(
            db,
            current_user.organization_id,
            request.project_id,
            request.cycle_id,
            [OpeningBalanceLine(line.variant_id, line.quantity_on_hand, line.unit_cost) for line in request.lines],
            created_by=current_user.id,
            config=config,
            guard=guard,
        )
    return balances


@router.post("/carry-forward", response_model=List[BalanceResponse])
async def carry_forward_cycle(
    request: CarryForwardRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Open a cycle with the previous cycle's closing balances and lock the previous cycle"""
    with unit_of_work(db):
        resolve_project_cycle(db, current_user, request.project_id, request.from_cycle_id)
        resolve_project_cycle(db, current_user, request.project_id, request.to_cycle_id)
        balances = inventory_service.carry_forward_cycle(
            db,
            current_user.organization_id,
            request.project_id,
            request.from_cycle_id,
            request.to_cycle_id,
            current_user.id,
            config=config,
            guard=guard,
        )
    return balances
