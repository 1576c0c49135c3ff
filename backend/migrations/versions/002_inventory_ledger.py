"""Create inventory ledger and production order tables

Revision ID: 002_inventory_ledger
Revises: 001_reference_tables
Create Date: 2026-10-19

Catalog (items, variants), the append-only movement ledger, the per
(organization, project, cycle, variant) balance cache and production orders.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_inventory_ledger'
down_revision = '001_reference_tables'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
        sa.Column('item_type', sa.String(30), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('uom', sa.String(30), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('default_purchase_unit_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('default_sale_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_inventory_items_created_by'),
    )

    op.create_table(
        'inventory_item_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False, index=True),
        sa.Column('label', sa.String(255), nullable=True),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('unit_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('selling_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'],
                                name='fk_inventory_item_variants_item', ondelete='CASCADE'),
    )

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),

        # Balance key
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_variant_id', sa.Integer(), nullable=False),

        # Movement
        sa.Column('transaction_type', sa.String(30), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(18, 4), nullable=True),

        # Source tracking
        sa.Column('source_type', sa.String(50), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),

        # Audit
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),

        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_inventory_transactions_project'),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycles.id'], name='fk_inventory_transactions_cycle'),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'],
                                name='fk_inventory_transactions_item'),
        sa.ForeignKeyConstraint(['inventory_item_variant_id'], ['inventory_item_variants.id'],
                                name='fk_inventory_transactions_variant'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_inventory_transactions_created_by'),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_inventory_transactions_nonzero'),
    )
    op.create_index(
        'ix_inventory_transactions_key', 'inventory_transactions',
        ['organization_id', 'project_id', 'cycle_id', 'inventory_item_variant_id'],
    )
    op.create_index('ix_inventory_transactions_source', 'inventory_transactions', ['source_type', 'source_id'])
    op.create_index('ix_inventory_transactions_created_at', 'inventory_transactions', ['created_at'])

    op.create_table(
        'inventory_balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('avg_unit_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_inventory_balances_project'),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycles.id'], name='fk_inventory_balances_cycle'),
        sa.ForeignKeyConstraint(['inventory_item_variant_id'], ['inventory_item_variants.id'],
                                name='fk_inventory_balances_variant'),
        sa.UniqueConstraint('organization_id', 'project_id', 'cycle_id', 'inventory_item_variant_id',
                            name='uq_inventory_balances_key'),
    )

    op.create_table(
        'production_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), nullable=False, index=True),
        sa.Column('project_id', sa.Integer(), nullable=False, index=True),
        sa.Column('cycle_id', sa.Integer(), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT', index=True),
        sa.Column('output_inventory_item_variant_id', sa.Integer(), nullable=False),
        sa.Column('output_quantity', sa.Integer(), nullable=False),
        sa.Column('output_unit_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_production_orders_project'),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycles.id'], name='fk_production_orders_cycle'),
        sa.ForeignKeyConstraint(['output_inventory_item_variant_id'], ['inventory_item_variants.id'],
                                name='fk_production_orders_output_variant'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_production_orders_created_by'),
    )

    op.create_table(
        'production_order_inputs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('production_order_id', sa.Integer(), nullable=False, index=True),
        sa.Column('input_inventory_item_variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity_required', sa.Integer(), nullable=False),
        sa.Column('unit_cost_override', sa.Numeric(18, 4), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['production_order_id'], ['production_orders.id'],
                                name='fk_production_order_inputs_order', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['input_inventory_item_variant_id'], ['inventory_item_variants.id'],
                                name='fk_production_order_inputs_variant'),
    )


def downgrade() -> None:
    op.drop_table('production_order_inputs')
    op.drop_table('production_orders')
    op.drop_table('inventory_balances')
    op.drop_index('ix_inventory_transactions_created_at', table_name='inventory_transactions')
    op.drop_index('ix_inventory_transactions_source', table_name='inventory_transactions')
    op.drop_index('ix_inventory_transactions_key', table_name='inventory_transactions')
    op.drop_table('inventory_transactions')
    op.drop_table('inventory_item_variants')
    op.drop_table('inventory_items')
