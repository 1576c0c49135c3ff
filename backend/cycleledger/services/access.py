"""
Project access checks

Admins can work in every project of their organization. Other users need a
project assignment, either directly or through one of their teams.
"""
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from cycleledger.exceptions import NotFoundError, PermissionDeniedError
from cycleledger.models.organization import Cycle, Project, ProjectAssignment, TeamMember, User


def accessible_project_ids(db: Session, user: User) -> Optional[List[int]]:
    """
    Project IDs the user may access.

    Returns None for admins, meaning no restriction within the organization.
    """
    if user.is_admin:
        return None

    team_ids = select(TeamMember.team_id).where(TeamMember.user_id == user.id)
    rows = (
        db.query(ProjectAssignment.project_id)
        .join(Project, ProjectAssignment.project_id == Project.id)
        .filter(
            Project.organization_id == user.organization_id,
            or_(
                ProjectAssignment.user_id == user.id,
                ProjectAssignment.team_id.in_(team_ids),
            ),
        )
        .distinct()
        .all()
    )
    return [row[0] for row in rows]


def assert_project_access(db: Session, user: User, project_id: int) -> None:
    """
    Raise PermissionDeniedError unless the user can work in the project.

    Args:
        db: Database session
        user: Acting user
        project_id: Project being read or written
    """
    if user.is_admin:
        return

    allowed = accessible_project_ids(db, user)
    if project_id not in allowed:
        raise PermissionDeniedError(
            "You do not have access to this project",
            action="access",
            resource=f"project:{project_id}",
        )


def resolve_project_cycle(db: Session, user: User, project_id: int, cycle_id: int) -> Cycle:
    """
    Validate a project/cycle pair for the user's organization and check access.

    Raises:
        NotFoundError: Project or cycle does not exist in the organization,
            or the cycle belongs to another project
        PermissionDeniedError: User is not assigned to the project
    """
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.organization_id == user.organization_id)
        .first()
    )
    if not project:
        raise NotFoundError("Project", project_id)

    assert_project_access(db, user, project_id)

    cycle = (
        db.query(Cycle)
        .filter(
            Cycle.id == cycle_id,
            Cycle.organization_id == user.organization_id,
            Cycle.project_id == project_id,
        )
        .first()
    )
    if not cycle:
        raise NotFoundError("Cycle", cycle_id)
    return cycle
