"""
Organization reference models

Users, projects, cycles and team assignments are owned by other parts of the
product. The inventory ledger reads them for scoping, access checks and the
cycle lock; it never writes them.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import deferred, relationship
from datetime import datetime

from cycleledger.db.base import Base


class User(Base):
    """Application user scoped to one organization"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), default="member", nullable=False)  # admin, member
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Project(Base):
    """Project that inventory is tracked against"""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cycles = relationship("Cycle", back_populates="project")

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Cycle(Base):
    """
    Accounting period within a project.

    ``inventory_locked_at`` is set once inventory has been carried forward
    into the next cycle; after that no movement may be posted here.
    """
    __tablename__ = "cycles"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Inventory carry-forward. Deferred: older schemas lack these columns
    # (see core.ledger_config.probe_cycle_lock_support).
    inventory_locked_at = deferred(Column(DateTime, nullable=True))
    inventory_locked_by = deferred(Column(Integer, ForeignKey("users.id"), nullable=True))
    carry_forward_from_cycle_id = deferred(Column(Integer, ForeignKey("cycles.id"), nullable=True))
    opening_balance_posted_at = deferred(Column(DateTime, nullable=True))
    opening_balance_posted_by = deferred(Column(Integer, ForeignKey("users.id"), nullable=True))

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="cycles")

    def __repr__(self):
        return f"<Cycle {self.id}: {self.name}>"


class Team(Base):
    """Group of users that can be assigned to projects together"""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    team = relationship("Team", back_populates="members")


class ProjectAssignment(Base):
    """Grants a user, or every member of a team, access to a project"""
    __tablename__ = "project_assignments"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
