"""Status Configuration and Transition Rules

Defines the production order status values and the transitions allowed
between them. COMPLETED is terminal: once an order has posted its
movements it can no longer be edited, completed again or deleted.
"""
from enum import Enum
from typing import Dict, List, Set

from cycleledger.exceptions import InvalidStateError


# =============================================================================
# Production Order Status
# =============================================================================

class ProductionOrderStatus(str, Enum):
    """Valid status values for Production Orders"""
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"


# Allowed transitions: current_status -> set of allowed next statuses
PRODUCTION_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    ProductionOrderStatus.DRAFT: {
        ProductionOrderStatus.COMPLETED,
    },
    ProductionOrderStatus.COMPLETED: set(),  # Terminal state - no transitions allowed
}

# Statuses in which the order and its inputs may still be changed or deleted
EDITABLE_PRODUCTION_ORDER_STATUSES: Set[str] = {ProductionOrderStatus.DRAFT}


def get_allowed_production_order_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a production order"""
    return sorted(s.value for s in PRODUCTION_ORDER_TRANSITIONS.get(current_status, set()))


def is_valid_production_order_transition(current_status: str, new_status: str) -> bool:
    """Check if a production order status transition is valid"""
    allowed = PRODUCTION_ORDER_TRANSITIONS.get(current_status, set())
    return new_status in allowed


def validate_production_order_transition(current: str, new: str) -> None:
    """
    Raise InvalidStateError if the transition is not allowed.

    Unlike a plain field update, re-applying the current status is not a
    no-op here: completing an order twice would post its movements twice.
    """
    if not is_valid_production_order_transition(current, new):
        raise InvalidStateError(
            f"Cannot transition production order from '{current}' to '{new}'",
            current_state=str(current),
            allowed_states=get_allowed_production_order_transitions(current),
        )


def ensure_production_order_editable(current: str, action: str = "modify") -> None:
    """Raise InvalidStateError unless the order can still be changed."""
    if current not in EDITABLE_PRODUCTION_ORDER_STATUSES:
        raise InvalidStateError(
            f"Cannot {action} a production order in status '{current}'",
            current_state=str(current),
            allowed_states=sorted(s.value for s in EDITABLE_PRODUCTION_ORDER_STATUSES),
        )
