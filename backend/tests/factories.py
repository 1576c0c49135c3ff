"""
Test data factories for CycleLedger.

Provides functions to create test entities with sensible defaults. Factories
flush but never commit; fixtures and tests decide when to commit.

Usage:
    from tests.factories import create_test_item, create_test_project

    def test_something(db_session):
        project = create_test_project(db_session)
        item = create_test_item(db_session, name="Tomato Seed")
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from cycleledger.models import (
    Cycle,
    InventoryItem,
    InventoryItemVariant,
    Project,
    ProjectAssignment,
    Team,
    TeamMember,
    User,
)

ORG_ID = 1
OTHER_ORG_ID = 2


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable names."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# ORGANIZATION FACTORIES
# =============================================================================

def create_test_user(
    db: Session,
    email: Optional[str] = None,
    role: str = "member",
    organization_id: int = ORG_ID,
    **overrides
) -> User:
    seq = _next("user")
    user = User(
        email=email or f"user{seq}@example.com",
        full_name=overrides.pop("full_name", f"Test User {seq}"),
        role=role,
        organization_id=organization_id,
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    db.add(user)
    db.flush()
    return user


def create_test_project(db: Session, organization_id: int = ORG_ID, **overrides) -> Project:
    seq = _next("project")
    project = Project(
        organization_id=organization_id,
        name=overrides.pop("name", f"Project {seq}"),
        **overrides,
    )
    db.add(project)
    db.flush()
    return project


def create_test_cycle(db: Session, project: Project, locked: bool = False, **overrides) -> Cycle:
    seq = _next("cycle")
    cycle = Cycle(
        organization_id=project.organization_id,
        project_id=project.id,
        name=overrides.pop("name", f"Cycle {seq}"),
        inventory_locked_at=datetime.utcnow() if locked else None,
        **overrides,
    )
    db.add(cycle)
    db.flush()
    return cycle


def lock_cycle(db: Session, cycle: Cycle, locked_by: Optional[User] = None) -> Cycle:
    """Mark a cycle as carried forward."""
    cycle.inventory_locked_at = datetime.utcnow()
    cycle.inventory_locked_by = locked_by.id if locked_by else None
    db.flush()
    return cycle


def assign_user_to_project(db: Session, user: User, project: Project) -> ProjectAssignment:
    assignment = ProjectAssignment(project_id=project.id, user_id=user.id)
    db.add(assignment)
    db.flush()
    return assignment


def assign_team_to_project(db: Session, project: Project, *members: User) -> Team:
    """Create a team with the given members and assign it to the project."""
    seq = _next("team")
    team = Team(organization_id=project.organization_id, name=f"Team {seq}")
    db.add(team)
    db.flush()
    for member in members:
        db.add(TeamMember(team_id=team.id, user_id=member.id))
    db.add(ProjectAssignment(project_id=project.id, team_id=team.id))
    db.flush()
    return team


# =============================================================================
# CATALOG FACTORIES
# =============================================================================

def create_test_item(
    db: Session,
    name: Optional[str] = None,
    item_type: str = "RAW_MATERIAL",
    organization_id: int = ORG_ID,
    unit_cost: Optional[Decimal] = None,
    **overrides
) -> InventoryItem:
    """
    Create an item with one variant.

    The variant's default unit cost is ``unit_cost`` (None by default).
    """
    seq = _next("item")
    item = InventoryItem(
        organization_id=organization_id,
        item_type=item_type,
        name=name or f"Item {seq}",
        sku=overrides.pop("sku", f"SKU-{seq:04d}"),
        uom=overrides.pop("uom", "EA"),
        default_purchase_unit_cost=unit_cost,
        is_active=overrides.pop("is_active", True),
        **overrides,
    )
    item.variants.append(
        InventoryItemVariant(label="Default", sku=item.sku, unit_cost=unit_cost, is_active=True)
    )
    db.add(item)
    db.flush()
    return item


def create_test_variant(
    db: Session,
    name: Optional[str] = None,
    unit_cost: Optional[Decimal] = None,
    organization_id: int = ORG_ID,
    **overrides
) -> InventoryItemVariant:
    """Create an item and return its single variant."""
    item = create_test_item(db, name=name, unit_cost=unit_cost, organization_id=organization_id, **overrides)
    return item.variants[0]
