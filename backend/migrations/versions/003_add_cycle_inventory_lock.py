"""Add inventory carry-forward lock columns to cycles

Revision ID: 003_cycle_inventory_lock
Revises: 002_inventory_ledger
Create Date: 2026-10-19

Deployments that have not run this revision are detected at startup
(see core.ledger_config.probe_cycle_lock_support) and run with the cycle
lock disabled.

NOTE: Skips columns that already exist.

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = '003_cycle_inventory_lock'
down_revision = '002_inventory_ledger'
branch_labels = None
depends_on = None


def _column_exists(table_name, column_name):
    bind = op.get_bind()
    columns = [col['name'] for col in inspect(bind).get_columns(table_name)]
    return column_name in columns


def upgrade() -> None:
    if not _column_exists('cycles', 'inventory_locked_at'):
        op.add_column('cycles', sa.Column('inventory_locked_at', sa.DateTime(), nullable=True))
    if not _column_exists('cycles', 'inventory_locked_by'):
        op.add_column('cycles', sa.Column('inventory_locked_by', sa.Integer(), nullable=True))
        op.create_foreign_key('fk_cycles_inventory_locked_by', 'cycles', 'users',
                              ['inventory_locked_by'], ['id'])
    if not _column_exists('cycles', 'carry_forward_from_cycle_id'):
        op.add_column('cycles', sa.Column('carry_forward_from_cycle_id', sa.Integer(), nullable=True))
        op.create_foreign_key('fk_cycles_carry_forward_from', 'cycles', 'cycles',
                              ['carry_forward_from_cycle_id'], ['id'])
    if not _column_exists('cycles', 'opening_balance_posted_at'):
        op.add_column('cycles', sa.Column('opening_balance_posted_at', sa.DateTime(), nullable=True))
    if not _column_exists('cycles', 'opening_balance_posted_by'):
        op.add_column('cycles', sa.Column('opening_balance_posted_by', sa.Integer(), nullable=True))
        op.create_foreign_key('fk_cycles_opening_balance_posted_by', 'cycles', 'users',
                              ['opening_balance_posted_by'], ['id'])


def downgrade() -> None:
    if _column_exists('cycles', 'opening_balance_posted_by'):
        op.drop_constraint('fk_cycles_opening_balance_posted_by', 'cycles', type_='foreignkey')
        op.drop_column('cycles', 'opening_balance_posted_by')
    if _column_exists('cycles', 'opening_balance_posted_at'):
        op.drop_column('cycles', 'opening_balance_posted_at')
    if _column_exists('cycles', 'carry_forward_from_cycle_id'):
        op.drop_constraint('fk_cycles_carry_forward_from', 'cycles', type_='foreignkey')
        op.drop_column('cycles', 'carry_forward_from_cycle_id')
    if _column_exists('cycles', 'inventory_locked_by'):
        op.drop_constraint('fk_cycles_inventory_locked_by', 'cycles', type_='foreignkey')
        op.drop_column('cycles', 'inventory_locked_by')
    if _column_exists('cycles', 'inventory_locked_at'):
        op.drop_column('cycles', 'inventory_locked_at')
