"""Inventory Configuration

Item types, ledger transaction types and movement source kinds, plus the
decimal precision used for unit costs.
"""
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Set


class InventoryItemType(str, Enum):
    """Classification of an inventory item; fixed at creation."""
    RAW_MATERIAL = "RAW_MATERIAL"
    WORK_IN_PROGRESS = "WORK_IN_PROGRESS"
    FINISHED_GOODS = "FINISHED_GOODS"


class TransactionType(str, Enum):
    """Kinds of ledger movement."""
    PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
    SALE_ISSUE = "SALE_ISSUE"
    REVERSAL = "REVERSAL"
    ADJUSTMENT = "ADJUSTMENT"
    OPENING_BALANCE = "OPENING_BALANCE"
    PRODUCTION_ISSUE = "PRODUCTION_ISSUE"
    PRODUCTION_RECEIPT = "PRODUCTION_RECEIPT"


class SourceKind(str, Enum):
    """What a ledger movement originated from."""
    EXPENSE = "expense"
    INVENTORY_TRANSACTION = "inventory_transaction"
    PRODUCTION_ORDER = "production_order"
    OPENING_BALANCE = "opening_balance"
    CARRY_FORWARD = "carry_forward"


# Types only the production order engine may post
PRODUCTION_TRANSACTION_TYPES: Set[str] = {
    TransactionType.PRODUCTION_ISSUE,
    TransactionType.PRODUCTION_RECEIPT,
}

# Types only posted through their dedicated operations
SYSTEM_TRANSACTION_TYPES: Set[str] = PRODUCTION_TRANSACTION_TYPES | {
    TransactionType.REVERSAL,
    TransactionType.OPENING_BALANCE,
}

# Source kinds only set by the operations that own them
SYSTEM_SOURCE_KINDS: Set[str] = {
    SourceKind.PRODUCTION_ORDER,
    SourceKind.OPENING_BALANCE,
    SourceKind.CARRY_FORWARD,
}

DEFAULT_VARIANT_LABEL = "Default"

# Unit costs and averages are stored as NUMERIC(18, 4)
COST_QUANTUM = Decimal("0.0001")


def quantize_cost(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a cost to storage precision (half-up). None passes through."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)
