"""
Production Orders API Endpoints

Production orders consume input variants and produce one output variant.
Completion posts all issue/receipt movements in a single transaction.
"""
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cycleledger.api.v1.deps import (
    get_current_user,
    get_cycle_lock_guard,
    get_ledger_config,
    get_pagination_params,
)
from cycleledger.core.ledger_config import LedgerConfig
from cycleledger.db.session import get_db, unit_of_work
from cycleledger.exceptions import ValidationError
from cycleledger.logging_config import get_logger
from cycleledger.models.organization import User
from cycleledger.schemas.common import PaginationParams
from cycleledger.schemas.production_order import (
    ProductionOrderCreate,
    ProductionOrderInputIn,
    ProductionOrderResponse,
    ProductionOrderUpdate,
)
from cycleledger.services import production_order_service
from cycleledger.services.cycle_lock import CycleLockGuard
from cycleledger.services.production_order_service import InputLine

router = APIRouter()
logger = get_logger(__name__)


def _to_input_lines(inputs: List[ProductionOrderInputIn]) -> List[InputLine]:
    return [
        InputLine(
            variant_id=line.input_variant_id,
            quantity_required=line.quantity_required,
            unit_cost_override=line.unit_cost_override,
            notes=line.notes,
        )
        for line in inputs
    ]


@router.get("", response_model=List[ProductionOrderResponse])
async def list_production_orders(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    project_id: Optional[int] = Query(None),
    cycle_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List production orders, newest first"""
    return production_order_service.list_production_orders(
        db,
        current_user,
        project_id=project_id,
        cycle_id=cycle_id,
        status=status_filter,
        offset=pagination.offset,
        limit=pagination.limit,
    )


@router.get("/{order_id}", response_model=ProductionOrderResponse)
async def get_production_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return production_order_service.get_production_order(db, current_user, order_id)


@router.post("", response_model=ProductionOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_production_order(
    request: ProductionOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Create a DRAFT production order with its input lines"""
    with unit_of_work(db):
        order = production_order_service.create_production_order(
            db,
            current_user,
            project_id=request.project_id,
            cycle_id=request.cycle_id,
            output_variant_id=request.output_variant_id,
            output_quantity=request.output_quantity,
            inputs=_to_input_lines(request.inputs),
            notes=request.notes,
            config=config,
            guard=guard,
        )
    db.refresh(order)
    return order


@router.put("/{order_id}", response_model=ProductionOrderResponse)
async def update_production_order(
    order_id: int,
    request: ProductionOrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """
    Update a DRAFT production order.

    Passing `inputs` replaces every input line. Passing `status: COMPLETED`
    completes the order after applying the other changes.
    """
    changes = request.model_dump(exclude_unset=True)
    if "inputs" in changes:
        if request.inputs is None:
            raise ValidationError("inputs cannot be null", field="inputs")
        changes["inputs"] = _to_input_lines(request.inputs)
    if "status" in changes and changes["status"] is not None:
        changes["status"] = request.status.value

    with unit_of_work(db):
        order = production_order_service.update_production_order(
            db, current_user, order_id, changes, config=config, guard=guard
        )
    db.refresh(order)
    return order


@router.post("/{order_id}/complete", response_model=ProductionOrderResponse)
async def complete_production_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Complete a production order, posting its issue and receipt movements"""
    with unit_of_work(db):
        order = production_order_service.complete_production_order(
            db, current_user, order_id, config=config, guard=guard
        )
    db.refresh(order)
    logger.info(
        "Production order completed via API",
        extra={"order_id": order.id, "output_unit_cost": order.output_unit_cost, "user_id": current_user.id},
    )
    return order


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_production_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
    guard: CycleLockGuard = Depends(get_cycle_lock_guard),
):
    """Delete a DRAFT production order"""
    with unit_of_work(db):
        production_order_service.delete_production_order(
            db, current_user, order_id, config=config, guard=guard
        )
