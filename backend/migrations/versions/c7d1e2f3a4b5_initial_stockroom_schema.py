"""initial stockroom schema

Revision ID: c7d1e2f3a4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema:
- products, package_units: catalog and multi-unit packaging
- storage_locations, product_storage_locations: placement only
- inventory_records: one balance row per product (version-counted)
- inventory_transactions: append-only movement history
- purchase/sales/return orders with their items
- stock_takings with their items
- document_sequences: per-day order number counters

Decimal columns are stored as scaled integers:
quantities x 1000, prices and conversion rates x 10000, amounts x 100.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c7d1e2f3a4b5'
down_revision = None
branch_labels = None
depends_on = None


def _order_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
    ]


def _status_columns():
    return [
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _line_columns(parent_fk: str, parent_table: str):
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(parent_fk, sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.BigInteger(), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('unit_price', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint([parent_fk], [f'{parent_table}.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade():
    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('specification', sa.String(length=255), nullable=True),
        sa.Column('base_unit', sa.String(length=32), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=False),
        sa.Column('retail_price', sa.BigInteger(), nullable=False),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('min_stock_threshold', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_products_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'package_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('conversion_rate', sa.BigInteger(), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=True),
        sa.Column('retail_price', sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'name', name='uq_package_units_product_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_package_units_product_id', 'package_units', ['product_id'])

    op.create_table(
        'storage_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_storage_locations_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'product_storage_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['storage_locations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'location_id', name='uq_product_storage_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_storage_locations_product_id', 'product_storage_locations', ['product_id'])
    op.create_index('ix_product_storage_locations_location_id', 'product_storage_locations', ['location_id'])

    # ============================================================================
    # Ledger
    # ============================================================================
    op.create_table(
        'inventory_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.BigInteger(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', name='uq_inventory_records_product'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_change', sa.BigInteger(), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_transactions_product_id', 'inventory_transactions', ['product_id'])
    op.create_index('ix_inventory_transactions_transaction_type', 'inventory_transactions', ['transaction_type'])
    op.create_index('ix_inventory_transactions_reference_id', 'inventory_transactions', ['reference_id'])
    op.create_index('ix_inventory_transactions_timestamp', 'inventory_transactions', ['timestamp'])
    op.create_index('ix_invtx_product_timestamp', 'inventory_transactions', ['product_id', 'timestamp'])
    op.create_index(
        'ix_invtx_product_type_timestamp', 'inventory_transactions',
        ['product_id', 'transaction_type', 'timestamp'],
    )

    # ============================================================================
    # Documents
    # ============================================================================
    op.create_table(
        'purchase_orders',
        *_order_columns(),
        sa.Column('supplier', sa.String(length=255), nullable=False),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        *_status_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_purchase_orders_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_status_date', 'purchase_orders', ['status', 'order_date'])

    op.create_table(
        'purchase_order_items',
        *_line_columns('purchase_order_id', 'purchase_orders'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])
    op.create_index('ix_purchase_order_items_product_id', 'purchase_order_items', ['product_id'])

    op.create_table(
        'sales_orders',
        *_order_columns(),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False),
        sa.Column('rounding_amount', sa.BigInteger(), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        *_status_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_sales_orders_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_orders_status', 'sales_orders', ['status'])
    op.create_index('ix_sales_orders_status_date', 'sales_orders', ['status', 'order_date'])

    op.create_table(
        'sales_order_items',
        *_line_columns('sales_order_id', 'sales_orders'),
        sa.Column('original_price', sa.BigInteger(), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_order_items_sales_order_id', 'sales_order_items', ['sales_order_id'])
    op.create_index('ix_sales_order_items_product_id', 'sales_order_items', ['product_id'])

    op.create_table(
        'return_orders',
        *_order_columns(),
        sa.Column('original_order_id', sa.Integer(), nullable=False),
        sa.Column('order_type', sa.String(length=16), nullable=False),
        sa.Column('return_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        *_status_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_return_orders_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_orders_status', 'return_orders', ['status'])
    op.create_index(
        'ix_return_orders_original', 'return_orders',
        ['order_type', 'original_order_id', 'status'],
    )

    op.create_table(
        'return_order_items',
        *_line_columns('return_order_id', 'return_orders'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_order_items_return_order_id', 'return_order_items', ['return_order_id'])
    op.create_index('ix_return_order_items_product_id', 'return_order_items', ['product_id'])

    op.create_table(
        'stock_takings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('taking_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_takings_status', 'stock_takings', ['status'])

    op.create_table(
        'stock_taking_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stock_taking_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('system_quantity', sa.BigInteger(), nullable=False),
        sa.Column('actual_quantity', sa.BigInteger(), nullable=False),
        sa.Column('difference', sa.BigInteger(), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(['stock_taking_id'], ['stock_takings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stock_taking_id', 'product_id', name='uq_stock_taking_items_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_taking_items_stock_taking_id', 'stock_taking_items', ['stock_taking_id'])
    op.create_index('ix_stock_taking_items_product_id', 'stock_taking_items', ['product_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('sequence_date', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'sequence_date', name='uq_document_sequence_type_date'),
        sqlite_autoincrement=True
    )


def downgrade():
    for table in (
        'document_sequences',
        'stock_taking_items',
        'stock_takings',
        'return_order_items',
        'return_orders',
        'sales_order_items',
        'sales_orders',
        'purchase_order_items',
        'purchase_orders',
        'inventory_transactions',
        'inventory_records',
        'product_storage_locations',
        'storage_locations',
        'package_units',
        'products',
    ):
        op.drop_table(table)
