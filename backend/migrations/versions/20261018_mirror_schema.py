"""Mirror schema: credential record, catalog, customers, invoices, purchase orders, change ledger

Revision ID: 20261018_mirror
Revises:
Create Date: 2026-10-18

This migration creates:
1. system_records (upstream credential)
2. Catalog mirror: categories, products, inventories, customer groups, pricebooks
3. Customers
4. Invoices and invoice lines
5. Purchase orders and purchase order lines
6. product_change_logs (append-only change ledger)

Columns prefixed local_ are operator annotations; syncs never overwrite them.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_mirror'
down_revision = None
branch_labels = None
depends_on = None


def _money():
    return sa.Numeric(precision=20, scale=6)


def _quantity():
    return sa.Numeric(precision=20, scale=3)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. SYSTEM RECORDS
    # ==========================================================================
    op.create_table('system_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('title'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('mirror_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('retailer_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('parent_upstream_id', sa.BigInteger(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('has_child', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('modified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('local_is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('local_color_border', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_categories', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_categories_parent', ['parent_upstream_id'], unique=False)

    op.create_table('mirror_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('retailer_id', sa.BigInteger(), nullable=True),
        sa.Column('code', sa.String(length=255), nullable=True),
        sa.Column('barcode', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('category_id', sa.BigInteger(), nullable=True),
        sa.Column('category_name', sa.String(length=255), nullable=True),
        sa.Column('allows_sale', sa.Boolean(), nullable=True),
        sa.Column('has_variants', sa.Boolean(), nullable=True),
        sa.Column('base_price', _money(), nullable=True),
        sa.Column('weight', _money(), nullable=True),
        sa.Column('unit', sa.String(length=64), nullable=True),
        sa.Column('master_product_id', sa.BigInteger(), nullable=True),
        sa.Column('master_unit_id', sa.BigInteger(), nullable=True),
        sa.Column('conversion_value', _money(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('order_template', sa.String(length=255), nullable=True),
        sa.Column('is_lot_serial_control', sa.Boolean(), nullable=True),
        sa.Column('is_batch_expire_control', sa.Boolean(), nullable=True),
        sa.Column('trademark_id', sa.BigInteger(), nullable=True),
        sa.Column('trademark_name', sa.String(length=255), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('modified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('local_slug', sa.String(length=255), nullable=True),
        sa.Column('local_tags', sa.JSON(), nullable=True),
        sa.Column('local_visibility', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('local_sort_order', sa.Integer(), nullable=True),
        sa.Column('local_color_border', sa.String(length=32), nullable=True),
        sa.Column('local_thumbnail_title', sa.String(length=255), nullable=True),
        sa.Column('local_gallery_urls', sa.JSON(), nullable=True),
        sa.Column('local_image_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('local_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_products', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_products_code', ['code'], unique=False)
        batch_op.create_index('ix_mirror_products_category', ['category_id'], unique=False)

    op.create_table('mirror_inventories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('product_code', sa.String(length=255), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('branch_id', sa.BigInteger(), nullable=False),
        sa.Column('branch_name', sa.String(length=255), nullable=True),
        sa.Column('cost', _money(), nullable=True),
        sa.Column('on_hand', _quantity(), nullable=True),
        sa.Column('reserved', _quantity(), nullable=True),
        sa.Column('actual_reserved', _quantity(), nullable=True),
        sa.Column('min_quantity', _quantity(), nullable=True),
        sa.Column('max_quantity', _quantity(), nullable=True),
        sa.Column('on_order', _quantity(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['mirror_products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_mirror_inventories_product_branch'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_inventories', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_inventories_branch', ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_mirror_inventories_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_mirror_inventories_product_upstream_id'), ['product_upstream_id'], unique=False)

    op.create_table('mirror_customer_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('mirror_pricebooks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('customer_group_name', sa.String(length=255), nullable=False, server_default='default'),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_global', sa.Boolean(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id', 'customer_group_name', name='uq_mirror_pricebooks_upstream_group'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_pricebooks', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_mirror_pricebooks_upstream_id'), ['upstream_id'], unique=False)

    op.create_table('mirror_product_pricebooks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pricebook_upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('pricebook_name', sa.String(length=255), nullable=True),
        sa.Column('customer_group_name', sa.String(length=255), nullable=False, server_default='default'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('price', _money(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['mirror_products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_product_pricebooks', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_product_pricebooks_book_group', ['pricebook_upstream_id', 'customer_group_name'], unique=False)
        batch_op.create_index(batch_op.f('ix_mirror_product_pricebooks_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 3. CUSTOMERS
    # ==========================================================================
    op.create_table('mirror_customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('retailer_id', sa.BigInteger(), nullable=True),
        sa.Column('branch_id', sa.BigInteger(), nullable=True),
        sa.Column('location_name', sa.String(length=255), nullable=True),
        sa.Column('ward_name', sa.String(length=255), nullable=True),
        sa.Column('contact_number', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('type', sa.Integer(), nullable=True),
        sa.Column('groups', sa.Text(), nullable=True),
        sa.Column('debt', _money(), nullable=True),
        sa.Column('modified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_customers', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_customers_code', ['code'], unique=False)
        batch_op.create_index('ix_mirror_customers_contact', ['contact_number'], unique=False)

    # ==========================================================================
    # 4. INVOICES
    # ==========================================================================
    op.create_table('mirror_invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('uuid', sa.String(length=64), nullable=True),
        sa.Column('code', sa.String(length=64), nullable=True),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('branch_id', sa.BigInteger(), nullable=True),
        sa.Column('branch_name', sa.String(length=255), nullable=True),
        sa.Column('sold_by_id', sa.BigInteger(), nullable=True),
        sa.Column('sold_by_name', sa.String(length=255), nullable=True),
        sa.Column('customer_upstream_id', sa.BigInteger(), nullable=True),
        sa.Column('customer_code', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('order_code', sa.String(length=64), nullable=True),
        sa.Column('total', _money(), nullable=True),
        sa.Column('total_payment', _money(), nullable=True),
        sa.Column('discount', _money(), nullable=True),
        sa.Column('status', sa.Integer(), nullable=True),
        sa.Column('status_value', sa.String(length=64), nullable=True),
        sa.Column('sale_channel_name', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('using_cod', sa.Boolean(), nullable=True),
        sa.Column('modified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_invoices', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_invoices_code', ['code'], unique=False)
        batch_op.create_index('ix_mirror_invoices_purchase_date', ['purchase_date'], unique=False)

    op.create_table('mirror_invoice_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('invoice_upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_upstream_id', sa.BigInteger(), nullable=True),
        sa.Column('product_code', sa.String(length=255), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('category_id', sa.BigInteger(), nullable=True),
        sa.Column('category_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', _quantity(), nullable=True),
        sa.Column('price', _money(), nullable=True),
        sa.Column('discount', _money(), nullable=True),
        sa.Column('discount_ratio', _money(), nullable=True),
        sa.Column('sub_total', _money(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('serial_numbers', sa.Text(), nullable=True),
        sa.Column('return_quantity', _quantity(), nullable=True),
        sa.Column('use_point', sa.Boolean(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['mirror_invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['mirror_products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_invoice_lines', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_invoice_lines_product', ['product_upstream_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_mirror_invoice_lines_invoice_id'), ['invoice_id'], unique=False)

    # ==========================================================================
    # 5. PURCHASE ORDERS
    # ==========================================================================
    op.create_table('mirror_purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=True),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('branch_id', sa.BigInteger(), nullable=True),
        sa.Column('branch_name', sa.String(length=255), nullable=True),
        sa.Column('purchase_by_id', sa.BigInteger(), nullable=True),
        sa.Column('purchase_by_name', sa.String(length=255), nullable=True),
        sa.Column('supplier_upstream_id', sa.BigInteger(), nullable=True),
        sa.Column('supplier_code', sa.String(length=64), nullable=True),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('total', _money(), nullable=True),
        sa.Column('total_payment', _money(), nullable=True),
        sa.Column('discount', _money(), nullable=True),
        sa.Column('ex_return_suppliers', _money(), nullable=True),
        sa.Column('ex_return_third_party', _money(), nullable=True),
        sa.Column('status', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('modified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('local_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_purchase_orders', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_purchase_orders_code', ['code'], unique=False)
        batch_op.create_index('ix_mirror_purchase_orders_purchase_date', ['purchase_date'], unique=False)

    op.create_table('mirror_purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_upstream_id', sa.BigInteger(), nullable=True),
        sa.Column('product_code', sa.String(length=255), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', _quantity(), nullable=True),
        sa.Column('price', _money(), nullable=True),
        sa.Column('discount', _money(), nullable=True),
        sa.Column('sub_total', _money(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('serial_numbers', sa.Text(), nullable=True),
        sa.Column('batch_expire_id', sa.BigInteger(), nullable=True),
        sa.Column('batch_name', sa.String(length=255), nullable=True),
        sa.Column('batch_expire_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('local_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('local_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['mirror_purchase_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['mirror_products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('mirror_purchase_order_lines', schema=None) as batch_op:
        batch_op.create_index('ix_mirror_purchase_order_lines_product', ['product_upstream_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_mirror_purchase_order_lines_purchase_order_id'), ['purchase_order_id'], unique=False)

    # ==========================================================================
    # 6. CHANGE LEDGER
    # ==========================================================================
    op.create_table('product_change_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('field_name', sa.String(length=64), nullable=False),
        sa.Column('old_value_text', sa.Text(), nullable=True),
        sa.Column('new_value_text', sa.Text(), nullable=True),
        sa.Column('branch_id', sa.BigInteger(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='webhook'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_change_logs', schema=None) as batch_op:
        batch_op.create_index('ix_product_change_logs_upstream_created', ['upstream_id', 'created_at'], unique=False)
        batch_op.create_index('ix_product_change_logs_created', ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('product_change_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_product_change_logs_created')
        batch_op.drop_index('ix_product_change_logs_upstream_created')
    op.drop_table('product_change_logs')

    op.drop_table('mirror_purchase_order_lines')
    op.drop_table('mirror_purchase_orders')
    op.drop_table('mirror_invoice_lines')
    op.drop_table('mirror_invoices')
    op.drop_table('mirror_customers')
    op.drop_table('mirror_product_pricebooks')
    op.drop_table('mirror_pricebooks')
    op.drop_table('mirror_customer_groups')
    op.drop_table('mirror_inventories')
    op.drop_table('mirror_products')
    op.drop_table('mirror_categories')
    op.drop_table('system_records')
