"""
Inventory Items API Endpoints

Catalog of items and variants, optionally enriched with the balances of a
project/cycle.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cycleledger.api.v1.deps import get_current_user
from cycleledger.db.session import get_db, unit_of_work
from cycleledger.models.organization import User
from cycleledger.schemas.inventory import (
    BalanceSummary,
    InventoryItemCreate,
    InventoryItemResponse,
    VariantResponse,
)
from cycleledger.services import catalog_service
from cycleledger.services.access import resolve_project_cycle
from cycleledger.services.catalog_service import NewVariant

router = APIRouter(prefix="/inventory-items", tags=["inventory"])


@router.get("", response_model=List[InventoryItemResponse])
async def list_inventory_items(
    type_code: Optional[str] = Query(None, description="RAW_MATERIAL, WORK_IN_PROGRESS or FINISHED_GOODS"),
    project_id: Optional[int] = Query(None),
    cycle_id: Optional[int] = Query(None),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List catalog items; with project_id+cycle_id each variant carries its balance"""
    if project_id is not None and cycle_id is not None:
        resolve_project_cycle(db, current_user, project_id, cycle_id)

    rows = catalog_service.list_items(
        db,
        current_user.organization_id,
        item_type=type_code,
        project_id=project_id,
        cycle_id=cycle_id,
        include_inactive=include_inactive,
    )

    result = []
    for item, balances in rows:
        response = InventoryItemResponse.model_validate(item)
        if project_id is not None:
            for variant in response.variants:
                balance = balances.get(variant.id)
                variant.balance = BalanceSummary(
                    quantity_on_hand=balance.quantity_on_hand if balance else 0,
                    avg_unit_cost=balance.avg_unit_cost if balance else None,
                )
        result.append(response)
    return result


@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    request: InventoryItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create an item with its variants (a Default variant if none are given)"""
    with unit_of_work(db):
        item = catalog_service.create_item(
            db,
            current_user.organization_id,
            name=request.name,
            item_type=request.item_type.value,
            sku=request.sku,
            uom=request.uom,
            description=request.description,
            default_purchase_unit_cost=request.default_purchase_unit_cost,
            default_sale_price=request.default_sale_price,
            variants=[
                NewVariant(v.label, v.sku, v.unit_cost, v.selling_price) for v in request.variants
            ],
            created_by=current_user.id,
        )
    db.refresh(item)
    return item


@router.get("/variants/{variant_id}", response_model=VariantResponse)
async def get_inventory_item_variant(
    variant_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.get_variant(db, variant_id, current_user.organization_id)
