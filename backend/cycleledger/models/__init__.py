"""Database models"""
from cycleledger.models.organization import User, Project, Cycle, Team, TeamMember, ProjectAssignment
from cycleledger.models.inventory import (
    InventoryItem, InventoryItemVariant, InventoryTransaction, InventoryBalance
)
from cycleledger.models.production_order import ProductionOrder, ProductionOrderInput

__all__ = [
    # Organization (read-only references)
    "User",
    "Project",
    "Cycle",
    "Team",
    "TeamMember",
    "ProjectAssignment",
    # Inventory
    "InventoryItem",
    "InventoryItemVariant",
    "InventoryTransaction",
    "InventoryBalance",
    # Production
    "ProductionOrder",
    "ProductionOrderInput",
]
