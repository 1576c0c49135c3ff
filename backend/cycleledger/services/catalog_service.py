"""
Item Catalog Service

Inventory items, their variants and default costs. The ledger and the
production order engine use ``get_variant`` to validate references and
``get_variant_info`` to fall back to a variant's default unit cost.
"""
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload

from cycleledger.core.inventory_config import (
    DEFAULT_VARIANT_LABEL,
    InventoryItemType,
    quantize_cost,
)
from cycleledger.exceptions import NotFoundError, ValidationError
from cycleledger.logging_config import get_logger
from cycleledger.models.inventory import InventoryBalance, InventoryItem, InventoryItemVariant

logger = get_logger(__name__)


class VariantInfo(NamedTuple):
    """Read-only view of a variant used by costing."""
    variant_id: int
    item_id: int
    item_type: str
    label: Optional[str]
    default_unit_cost: Optional[Decimal]
    default_selling_price: Optional[Decimal]


class NewVariant(NamedTuple):
    """Variant definition supplied when creating an item."""
    label: Optional[str] = None
    sku: Optional[str] = None
    unit_cost: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None


def _validate_money(value: Optional[Decimal], field: str) -> Optional[Decimal]:
    if value is None:
        return None
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", field=field, value=value)
    return quantize_cost(value)


def get_variant(db: Session, variant_id: int, organization_id: int) -> InventoryItemVariant:
    """
    Load a variant belonging to the organization.

    Raises:
        NotFoundError: If the variant does not exist or belongs to another organization
    """
    variant = (
        db.query(InventoryItemVariant)
        .join(InventoryItem, InventoryItemVariant.inventory_item_id == InventoryItem.id)
        .filter(
            InventoryItemVariant.id == variant_id,
            InventoryItem.organization_id == organization_id,
        )
        .first()
    )
    if not variant:
        raise NotFoundError("Inventory item variant", variant_id)
    return variant


def get_variant_info(db: Session, variant_id: int, organization_id: int) -> VariantInfo:
    """Return default costing data for a variant."""
    variant = get_variant(db, variant_id, organization_id)
    return VariantInfo(
        variant_id=variant.id,
        item_id=variant.inventory_item_id,
        item_type=variant.item.item_type,
        label=variant.label,
        default_unit_cost=variant.unit_cost,
        default_selling_price=variant.selling_price,
    )


def create_item(
    db: Session,
    organization_id: int,
    *,
    name: str,
    item_type: str,
    sku: Optional[str] = None,
    uom: Optional[str] = None,
    description: Optional[str] = None,
    default_purchase_unit_cost: Optional[Decimal] = None,
    default_sale_price: Optional[Decimal] = None,
    variants: Optional[Sequence[NewVariant]] = None,
    created_by: Optional[int] = None,
) -> InventoryItem:
    """
    Create an inventory item with its variants.

    When no variants are given a single "Default" variant is created from the
    item's SKU and default cost/price, so every item is stockable.

    Args:
        db: Database session
        organization_id: Owning organization
        name: Item name (required)
        item_type: One of InventoryItemType; cannot be changed later
        variants: Optional variant definitions
        created_by: Acting user ID

    Returns:
        The new InventoryItem (flushed, not committed)
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Item name is required", field="name")

    try:
        item_type = InventoryItemType(item_type).value
    except ValueError:
        raise ValidationError(
            f"Invalid item type '{item_type}'",
            field="item_type",
            details={"allowed": [t.value for t in InventoryItemType]},
        ) from None

    default_cost = _validate_money(default_purchase_unit_cost, "default_purchase_unit_cost")
    default_price = _validate_money(default_sale_price, "default_sale_price")

    item = InventoryItem(
        organization_id=organization_id,
        item_type=item_type,
        name=name,
        sku=sku or None,
        uom=uom or None,
        description=description,
        default_purchase_unit_cost=default_cost,
        default_sale_price=default_price,
        is_active=True,
        created_by=created_by,
    )

    if not variants:
        variants = [NewVariant(label=DEFAULT_VARIANT_LABEL, sku=sku, unit_cost=default_cost, selling_price=default_price)]

    for new_variant in variants:
        item.variants.append(
            InventoryItemVariant(
                label=new_variant.label or None,
                sku=new_variant.sku or None,
                unit_cost=_validate_money(new_variant.unit_cost, "unit_cost"),
                selling_price=_validate_money(new_variant.selling_price, "selling_price"),
                is_active=True,
            )
        )

    db.add(item)
    db.flush()

    logger.info(
        f"Created inventory item {item.id} '{item.name}' with {len(item.variants)} variant(s)",
        extra={"organization_id": organization_id, "item_type": item_type},
    )
    return item


def list_items(
    db: Session,
    organization_id: int,
    *,
    item_type: Optional[str] = None,
    project_id: Optional[int] = None,
    cycle_id: Optional[int] = None,
    include_inactive: bool = False,
) -> List[Tuple[InventoryItem, Dict[int, InventoryBalance]]]:
    """
    List catalog items, optionally enriched with balances for a project/cycle.

    Args:
        item_type: Filter by item type code
        project_id: Project to read balances for (requires cycle_id)
        cycle_id: Cycle to read balances for (requires project_id)

    Returns:
        List of (item, {variant_id: balance}) pairs. The balance map is empty
        when no project/cycle is given.
    """
    if (project_id is None) != (cycle_id is None):
        raise ValidationError("project_id and cycle_id must be provided together", field="cycle_id")

    query = (
        db.query(InventoryItem)
        .options(selectinload(InventoryItem.variants))
        .filter(InventoryItem.organization_id == organization_id)
    )
    if item_type:
        query = query.filter(InventoryItem.item_type == item_type)
    if not include_inactive:
        query = query.filter(InventoryItem.is_active.is_(True))
    items = query.order_by(InventoryItem.name, InventoryItem.id).all()

    balances_by_variant: Dict[int, InventoryBalance] = {}
    if project_id is not None and items:
        variant_ids = [v.id for item in items for v in item.variants]
        if variant_ids:
            rows = (
                db.query(InventoryBalance)
                .filter(
                    InventoryBalance.organization_id == organization_id,
                    InventoryBalance.project_id == project_id,
                    InventoryBalance.cycle_id == cycle_id,
                    InventoryBalance.inventory_item_variant_id.in_(variant_ids),
                )
                .all()
            )
            balances_by_variant = {b.inventory_item_variant_id: b for b in rows}

    result = []
    for item in items:
        item_balances = {
            v.id: balances_by_variant[v.id] for v in item.variants if v.id in balances_by_variant
        }
        result.append((item, item_balances))
    return result
