"""
Inventory models

Catalog (items and variants), the append-only movement ledger and the
per-key balance cache derived from it.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from cycleledger.db.base import Base


class InventoryItem(Base):
    """Inventory Item model - matches inventory_items table"""
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)

    # RAW_MATERIAL, WORK_IN_PROGRESS, FINISHED_GOODS - immutable after creation
    item_type = Column(String(30), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    uom = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)

    default_purchase_unit_cost = Column(Numeric(18, 4), nullable=True)
    default_sale_price = Column(Numeric(18, 4), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    variants = relationship(
        "InventoryItemVariant",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="InventoryItemVariant.id",
    )

    def __repr__(self):
        return f"<InventoryItem {self.id}: {self.name} ({self.item_type})>"


class InventoryItemVariant(Base):
    """Stockable variant of an item; balances and movements are kept per variant"""
    __tablename__ = "inventory_item_variants"

    id = Column(Integer, primary_key=True, index=True)
    inventory_item_id = Column(
        Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )

    label = Column(String(255), nullable=True)
    sku = Column(String(100), nullable=True)
    unit_cost = Column(Numeric(18, 4), nullable=True)  # default unit cost
    selling_price = Column(Numeric(18, 4), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    item = relationship("InventoryItem", back_populates="variants")

    @property
    def display_name(self) -> str:
        if self.item is None:
            return self.label or f"variant {self.id}"
        if self.label:
            return f"{self.item.name} - {self.label}"
        return self.item.name

    def __repr__(self):
        return f"<InventoryItemVariant {self.id}: {self.label}>"


class InventoryTransaction(Base):
    """
    Ledger movement - matches inventory_transactions table.

    Rows are append-only. Corrections are new movements (REVERSAL or
    ADJUSTMENT), never updates.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_transactions_key", "organization_id", "project_id", "cycle_id",
              "inventory_item_variant_id"),
        Index("ix_inventory_transactions_source", "source_type", "source_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Balance key
    organization_id = Column(Integer, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    cycle_id = Column(Integer, ForeignKey("cycles.id"), nullable=False)
    inventory_item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False)
    inventory_item_variant_id = Column(Integer, ForeignKey("inventory_item_variants.id"), nullable=False)

    # PURCHASE_RECEIPT, SALE_ISSUE, REVERSAL, ADJUSTMENT, OPENING_BALANCE,
    # PRODUCTION_ISSUE, PRODUCTION_RECEIPT
    transaction_type = Column(String(30), nullable=False)

    quantity_delta = Column(Integer, nullable=False)  # signed, never zero
    unit_cost = Column(Numeric(18, 4), nullable=True)

    # expense, inventory_transaction, production_order, opening_balance
    source_type = Column(String(50), nullable=True)
    source_id = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    item = relationship("InventoryItem")
    variant = relationship("InventoryItemVariant")

    def __repr__(self):
        return f"<InventoryTransaction {self.id}: {self.transaction_type} {self.quantity_delta:+d}>"


class InventoryBalance(Base):
    """
    Running on-hand quantity and moving-average unit cost per
    (organization, project, cycle, variant).

    A cache over the ledger: replaying the key's movements must reproduce it.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "project_id", "cycle_id", "inventory_item_variant_id",
            name="uq_inventory_balances_key",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    cycle_id = Column(Integer, ForeignKey("cycles.id"), nullable=False)
    inventory_item_variant_id = Column(Integer, ForeignKey("inventory_item_variants.id"), nullable=False)

    quantity_on_hand = Column(Integer, default=0, nullable=False)
    avg_unit_cost = Column(Numeric(18, 4), nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    variant = relationship("InventoryItemVariant")

    def __repr__(self):
        return (
            f"<InventoryBalance variant={self.inventory_item_variant_id} "
            f"qty={self.quantity_on_hand} avg={self.avg_unit_cost}>"
        )
