"""
API v1 Router - CycleLedger
"""
from fastapi import APIRouter
from cycleledger.api.v1.endpoints import (
    inventory,
    inventory_items,
    production_orders,
)

router = APIRouter()

# Catalog
router.include_router(inventory_items.router)

# Ledger, balances, opening balances
router.include_router(inventory.router)

# Production Orders
router.include_router(
    production_orders.router,
    prefix="/production-orders",
    tags=["production"]
)
