"""Create purchase order, stock ledger and purchasing event tables

Revision ID: 001_purchase_orders
Revises:
Create Date: 2026-03-02

purchase_orders carries an integer version column used for optimistic
concurrency; stock_levels holds one row per (product, warehouse) and is
only changed through in-database arithmetic.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_purchase_orders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the purchasing schema."""

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(50), nullable=False),
        sa.Column('org_id', sa.String(64), nullable=False),
        sa.Column('supplier_id', sa.String(64), nullable=False),
        sa.Column('warehouse_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='Draft'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('expected_delivery_date', sa.Date(), nullable=True),
        sa.Column('last_received_at', sa.DateTime(), nullable=True),
        sa.Column('subtotal', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('submitted_by', sa.String(100), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(100), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('closed_by', sa.String(100), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('close_reason', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'po_number', name='uq_purchase_orders_org_po_number'),
    )
    op.create_index('ix_purchase_orders_id', 'purchase_orders', ['id'])
    op.create_index('ix_purchase_orders_po_number', 'purchase_orders', ['po_number'])
    op.create_index('ix_purchase_orders_org_id', 'purchase_orders', ['org_id'])
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_warehouse_id', 'purchase_orders', ['warehouse_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])

    op.create_table(
        'purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('quantity_ordered', sa.Numeric(18, 4), nullable=False),
        sa.Column('quantity_received', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('unit_price', sa.Numeric(18, 4), nullable=False),
        sa.Column('line_total', sa.Numeric(18, 4), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_po_lines_order_product'),
        sa.CheckConstraint('quantity_ordered > 0', name='ck_po_lines_quantity_ordered_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_po_lines_unit_price_non_negative'),
        sa.CheckConstraint(
            'quantity_received >= 0 AND quantity_received <= quantity_ordered',
            name='ck_po_lines_quantity_received_bounds',
        ),
    )
    op.create_index('ix_purchase_order_lines_id', 'purchase_order_lines', ['id'])

    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('warehouse_id', sa.String(64), nullable=False),
        sa.Column('on_hand_quantity', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_levels_product_warehouse'),
        sa.CheckConstraint('on_hand_quantity >= 0', name='ck_stock_levels_on_hand_non_negative'),
    )
    op.create_index('ix_stock_levels_id', 'stock_levels', ['id'])
    op.create_index('ix_stock_levels_product_id', 'stock_levels', ['product_id'])
    op.create_index('ix_stock_levels_warehouse_id', 'stock_levels', ['warehouse_id'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('warehouse_id', sa.String(64), nullable=False),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('cost_per_unit', sa.Numeric(18, 4), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_transactions_id', 'inventory_transactions', ['id'])
    op.create_index('ix_inventory_transactions_product_id', 'inventory_transactions', ['product_id'])
    op.create_index('ix_inventory_transactions_warehouse_id', 'inventory_transactions', ['warehouse_id'])
    op.create_index('ix_inventory_transactions_reference_id', 'inventory_transactions', ['reference_id'])

    op.create_table(
        'purchasing_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('old_value', sa.String(100), nullable=True),
        sa.Column('new_value', sa.String(100), nullable=True),
        sa.Column('order_version', sa.Integer(), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=True),
        sa.Column('metadata_key', sa.String(100), nullable=True),
        sa.Column('metadata_value', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_purchasing_events_id', 'purchasing_events', ['id'])
    op.create_index('ix_purchasing_events_purchase_order_id', 'purchasing_events', ['purchase_order_id'])
    op.create_index('ix_purchasing_events_user_id', 'purchasing_events', ['user_id'])
    op.create_index('ix_purchasing_events_event_type', 'purchasing_events', ['event_type'])
    op.create_index('ix_purchasing_events_event_date', 'purchasing_events', ['event_date'])
    op.create_index('ix_purchasing_events_created_at', 'purchasing_events', ['created_at'])


def downgrade():
    """Drop the purchasing schema."""
    op.drop_table('purchasing_events')
    op.drop_table('inventory_transactions')
    op.drop_table('stock_levels')
    op.drop_table('purchase_order_lines')
    op.drop_table('purchase_orders')
