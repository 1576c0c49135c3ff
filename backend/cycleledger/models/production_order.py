"""
Production Order models

A production order consumes one or more input variants and produces a
single output variant. Completing it posts the issue and receipt movements.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from cycleledger.db.base import Base


class ProductionOrder(Base):
    """Production Order model - matches production_orders table"""
    __tablename__ = "production_orders"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("cycles.id"), nullable=False, index=True)

    # DRAFT, COMPLETED
    status = Column(String(20), default="DRAFT", nullable=False, index=True)

    # Output
    output_inventory_item_variant_id = Column(
        Integer, ForeignKey("inventory_item_variants.id"), nullable=False
    )
    output_quantity = Column(Integer, nullable=False)
    output_unit_cost = Column(Numeric(18, 4), nullable=True)  # set on completion

    notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    inputs = relationship(
        "ProductionOrderInput",
        back_populates="production_order",
        cascade="all, delete-orphan",
        order_by="ProductionOrderInput.id",
    )
    output_variant = relationship("InventoryItemVariant")

    def __repr__(self):
        return f"<ProductionOrder {self.id}: {self.status}>"


class ProductionOrderInput(Base):
    """Input line consumed when the order completes"""
    __tablename__ = "production_order_inputs"

    id = Column(Integer, primary_key=True, index=True)
    production_order_id = Column(
        Integer, ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    input_inventory_item_variant_id = Column(
        Integer, ForeignKey("inventory_item_variants.id"), nullable=False
    )
    quantity_required = Column(Integer, nullable=False)
    unit_cost_override = Column(Numeric(18, 4), nullable=True)
    notes = Column(Text, nullable=True)

    production_order = relationship("ProductionOrder", back_populates="inputs")
    input_variant = relationship("InventoryItemVariant")

    def __repr__(self):
        return f"<ProductionOrderInput {self.input_inventory_item_variant_id} x{self.quantity_required}>"
