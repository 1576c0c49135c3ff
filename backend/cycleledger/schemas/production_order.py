"""
Production Order Pydantic Schemas

Quantities are validated by the production order service so that every
business-rule failure maps to the same VALIDATION_ERROR response.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from cycleledger.core.status_config import ProductionOrderStatus


class ProductionOrderInputIn(BaseModel):
    input_variant_id: int
    quantity_required: int
    unit_cost_override: Optional[Decimal] = None
    notes: Optional[str] = None


class ProductionOrderCreate(BaseModel):
    project_id: int
    cycle_id: int
    output_variant_id: int
    output_quantity: int
    inputs: List[ProductionOrderInputIn] = Field(default_factory=list)
    notes: Optional[str] = None


class ProductionOrderUpdate(BaseModel):
    """Partial update; `inputs` replaces all existing input lines"""
    output_variant_id: Optional[int] = None
    output_quantity: Optional[int] = None
    inputs: Optional[List[ProductionOrderInputIn]] = None
    notes: Optional[str] = None
    status: Optional[ProductionOrderStatus] = None


class ProductionOrderInputResponse(BaseModel):
    id: int
    input_inventory_item_variant_id: int
    quantity_required: int
    unit_cost_override: Optional[Decimal] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class ProductionOrderResponse(BaseModel):
    id: int
    project_id: int
    cycle_id: int
    status: str
    output_inventory_item_variant_id: int
    output_quantity: int
    output_unit_cost: Optional[Decimal] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    inputs: List[ProductionOrderInputResponse] = []

    model_config = {"from_attributes": True}
