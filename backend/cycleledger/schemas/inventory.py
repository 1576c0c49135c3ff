"""
Inventory Pydantic Schemas

Catalog items and variants, ledger movements, balances and opening balances.
Quantities are plain integers here; their business rules (non-zero deltas,
non-negative opening figures) are enforced by the ledger service.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from cycleledger.core.inventory_config import InventoryItemType, SourceKind, TransactionType


# ============================================================================
# Catalog
# ============================================================================

class VariantCreate(BaseModel):
    label: Optional[str] = Field(None, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    unit_cost: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None


class InventoryItemCreate(BaseModel):
    """Create an item; omit variants to get a single Default variant"""
    name: str = Field(..., min_length=1, max_length=255)
    item_type: InventoryItemType
    sku: Optional[str] = Field(None, max_length=100)
    uom: Optional[str] = Field(None, max_length=30)
    description: Optional[str] = None
    default_purchase_unit_cost: Optional[Decimal] = None
    default_sale_price: Optional[Decimal] = None
    variants: List[VariantCreate] = Field(default_factory=list)


class BalanceSummary(BaseModel):
    quantity_on_hand: int = 0
    avg_unit_cost: Optional[Decimal] = None


class VariantResponse(BaseModel):
    id: int
    inventory_item_id: int
    label: Optional[str] = None
    sku: Optional[str] = None
    unit_cost: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    is_active: bool
    balance: Optional[BalanceSummary] = None

    model_config = {"from_attributes": True}


class InventoryItemResponse(BaseModel):
    id: int
    item_type: str
    name: str
    sku: Optional[str] = None
    uom: Optional[str] = None
    description: Optional[str] = None
    default_purchase_unit_cost: Optional[Decimal] = None
    default_sale_price: Optional[Decimal] = None
    is_active: bool
    created_at: datetime
    variants: List[VariantResponse] = []

    model_config = {"from_attributes": True}


# ============================================================================
# Movements
# ============================================================================

class MovementCreate(BaseModel):
    """
    Manual movement (receipt, issue, adjustment).

    Production, reversal and opening balance movements have dedicated
    endpoints and are rejected here. So are the source kinds those
    endpoints own.
    """
    project_id: int
    cycle_id: int
    variant_id: int
    transaction_type: TransactionType
    quantity_delta: int
    unit_cost: Optional[Decimal] = None
    source_type: Optional[SourceKind] = None
    source_id: Optional[int] = None
    notes: Optional[str] = None


class MovementReverse(BaseModel):
    notes: Optional[str] = None


class MovementResponse(BaseModel):
    id: int
    project_id: int
    cycle_id: int
    inventory_item_id: int
    inventory_item_variant_id: int
    transaction_type: str
    quantity_delta: int
    unit_cost: Optional[Decimal] = None
    source_type: Optional[str] = None
    source_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    item_name: Optional[str] = None
    item_type: Optional[str] = None
    variant_label: Optional[str] = None
    variant_sku: Optional[str] = None

    model_config = {"from_attributes": True}


# ============================================================================
# Balances
# ============================================================================

class BalanceResponse(BaseModel):
    project_id: int
    cycle_id: int
    inventory_item_variant_id: int
    quantity_on_hand: int
    avg_unit_cost: Optional[Decimal] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OpeningBalanceLineIn(BaseModel):
    variant_id: int
    quantity_on_hand: int
    unit_cost: Optional[Decimal] = None


class OpeningBalanceRequest(BaseModel):
    project_id: int
    cycle_id: int
    lines: List[OpeningBalanceLineIn] = Field(..., min_length=1)


class CarryForwardRequest(BaseModel):
    """Carry a cycle's closing balances into the next cycle of the same project"""
    project_id: int
    from_cycle_id: int
    to_cycle_id: int
