"""
Common API Response Schemas

Standardized error responses and pagination parameters.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Error Response Models
# ============================================================================

class ErrorResponse(BaseModel):
    """
    Standardized error response for all API errors.

    Error Codes:
        - VALIDATION_ERROR: Request validation failed (400)
        - AUTHENTICATION_ERROR / INVALID_TOKEN: Authentication required or failed (401)
        - PERMISSION_DENIED: User lacks project access (403)
        - NOT_FOUND: Resource not found in the organization (404)
        - CYCLE_INVENTORY_LOCKED: Cycle inventory was carried forward (409)
        - INVALID_STATE: Operation not allowed for the order's status (422)
        - INSUFFICIENT_INVENTORY: Negative stock disallowed (422)
        - DATABASE_ERROR: Database operation failed (500)
        - INTERNAL_ERROR: Unexpected internal error (500)
    """
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context for debugging"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred (UTC)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "CYCLE_INVENTORY_LOCKED",
                "message": "This cycle is locked because inventory was carried forward. "
                           "Create an adjustment in the current cycle instead.",
                "details": {"cycle_id": "7"},
                "timestamp": "2026-01-15T10:30:00Z"
            }
        }
    }


# ============================================================================
# Pagination Models
# ============================================================================

class PaginationParams(BaseModel):
    """Offset-based pagination parameters for list endpoints."""
    offset: int = Field(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    )
    limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of records to return (1-500)"
    )

    @field_validator('offset')
    @classmethod
    def validate_offset(cls, v: int) -> int:
        """Ensure offset is non-negative."""
        return max(0, v)
