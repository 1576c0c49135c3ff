"""Create organization reference tables when missing

Revision ID: 001_reference_tables
Revises:
Create Date: 2026-10-19

Users, projects, cycles, teams and project assignments normally belong to
the host application. On a fresh database they are created here so the
ledger tables have something to reference. Existing tables are left alone.

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = '001_reference_tables'
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name):
    bind = op.get_bind()
    return table_name in inspect(bind).get_table_names()


def upgrade() -> None:
    if not _table_exists('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True),
            sa.Column('full_name', sa.String(200), nullable=True),
            sa.Column('role', sa.String(20), nullable=False, server_default='member'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        )
    else:
        print("  Table 'users' already exists, skipping...")

    if not _table_exists('projects'):
        op.create_table(
            'projects',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        )

    # Lock columns are added by 003 so that existing cycle tables get them too
    if not _table_exists('cycles'):
        op.create_table(
            'cycles',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
            sa.Column('project_id', sa.Integer(), nullable=False, index=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_cycles_project'),
        )

    if not _table_exists('teams'):
        op.create_table(
            'teams',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
            sa.Column('name', sa.String(200), nullable=False),
        )

    if not _table_exists('team_members'):
        op.create_table(
            'team_members',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('team_id', sa.Integer(), nullable=False, index=True),
            sa.Column('user_id', sa.Integer(), nullable=False, index=True),
            sa.ForeignKeyConstraint(['team_id'], ['teams.id'], name='fk_team_members_team', ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_team_members_user', ondelete='CASCADE'),
            sa.UniqueConstraint('team_id', 'user_id', name='uq_team_members_team_user'),
        )

    if not _table_exists('project_assignments'):
        op.create_table(
            'project_assignments',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('project_id', sa.Integer(), nullable=False, index=True),
            sa.Column('user_id', sa.Integer(), nullable=True, index=True),
            sa.Column('team_id', sa.Integer(), nullable=True, index=True),
            sa.ForeignKeyConstraint(['project_id'], ['projects.id'],
                                    name='fk_project_assignments_project', ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                    name='fk_project_assignments_user', ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['team_id'], ['teams.id'],
                                    name='fk_project_assignments_team', ondelete='CASCADE'),
        )


def downgrade() -> None:
    # Reference tables may predate this revision; never drop them.
    pass
