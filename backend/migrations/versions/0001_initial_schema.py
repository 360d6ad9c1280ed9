"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete clubkasse schema:
- accounts / account_barcodes: members, guests and staff with a running balance
- products / product_barcodes: bar catalog with cached stock counter
- stock_movements: append-only stock audit trail
- billings / transactions: sale lines and settlement batches
- clothing_items / clothing_orders / clothing_billings: merchandise orders
- voucher_sales, settings, admin_users
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # accounts
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sepa_active', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('iban', sa.String(length=34), nullable=True),
        sa.Column('account_holder', sa.String(length=200), nullable=True),
        sa.Column('mandate_reference', sa.String(length=35), nullable=True),
        sa.Column('pin', sa.String(length=10), nullable=True),
        sa.Column('pin_required_for_name_search', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('pin_required_for_barcode', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stay_active', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_role', 'accounts', ['role'])
    op.create_index('ix_accounts_name', 'accounts', ['first_name', 'last_name'])

    op.create_table(
        'account_barcodes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('value', name='uq_account_barcodes_value'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_account_barcodes_account_id', 'account_barcodes', ['account_id'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False, server_default='sonstiges'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image', sa.String(length=16), nullable=True),
        sa.Column('member_price_cents', sa.Integer(), nullable=False),
        sa.Column('guest_price_cents', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('available', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_name', 'products', ['category', 'name'])
    op.create_index('ix_products_available', 'products', ['available'])

    op.create_table(
        'product_barcodes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('value', name='uq_product_barcodes_value'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_barcodes_product_id', 'product_barcodes', ['product_id'])

    # ============================================================================
    # stock_movements: append-only, stock_after = stock_before + quantity_delta
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=200), nullable=True),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('cost_per_unit_cents', sa.Integer(), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('stock_after = stock_before + quantity_delta', name='ck_stock_movements_arithmetic'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_transaction_id', 'stock_movements', ['transaction_id'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])

    # ============================================================================
    # billings / transactions
    # ============================================================================
    op.create_table(
        'billings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('billing_number', sa.String(length=64), nullable=False),
        sa.Column('billing_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('account_ids', sa.JSON(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('billing_number', name='uq_billings_number'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('account_name', sa.String(length=200), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='balance'),
        sa.Column('sale_reference', sa.String(length=36), nullable=True),
        sa.Column('stock_movement_id', sa.Integer(), nullable=True),
        sa.Column('cancelled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=100), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('billing_id', sa.Integer(), nullable=True),
        sa.Column('is_billed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('retried', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('original_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['stock_movement_id'], ['stock_movements.id'], ),
        sa.ForeignKeyConstraint(['billing_id'], ['billings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_account_id', 'transactions', ['account_id'])
    op.create_index('ix_transactions_product_id', 'transactions', ['product_id'])
    op.create_index('ix_transactions_account_created', 'transactions', ['account_id', 'created_at'])
    op.create_index('ix_transactions_billing', 'transactions', ['billing_id'])
    op.create_index('ix_transactions_sale_reference', 'transactions', ['sale_reference'])

    # ============================================================================
    # clothing
    # ============================================================================
    op.create_table(
        'clothing_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('emoji', sa.String(length=16), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('sizes', sa.JSON(), nullable=False),
        sa.Column('colors', sa.JSON(), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clothing_items_sort', 'clothing_items', ['sort_order', 'name'])

    op.create_table(
        'clothing_billings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('billing_number', sa.String(length=64), nullable=False),
        sa.Column('billing_type', sa.String(length=32), nullable=False, server_default='clothing'),
        sa.Column('billing_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('order_ids', sa.JSON(), nullable=False),
        sa.Column('account_ids', sa.JSON(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('billing_number', name='uq_clothing_billings_number'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'clothing_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('member_name', sa.String(length=200), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('clothing_billing_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['clothing_billing_id'], ['clothing_billings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clothing_orders_account_created', 'clothing_orders', ['account_id', 'created_at'])
    op.create_index('ix_clothing_orders_status', 'clothing_orders', ['status'])
    op.create_index('ix_clothing_orders_clothing_billing_id', 'clothing_orders', ['clothing_billing_id'])

    # ============================================================================
    # voucher_sales, settings, admin_users
    # ============================================================================
    op.create_table(
        'voucher_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('voucher_serial_number', sa.String(length=64), nullable=False),
        sa.Column('voucher_hologram_number', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('sold_by', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_voucher_sales_account', 'voucher_sales', ['account_id'])

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key', name='uq_settings_key'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='bartender'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_admin_users_username'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('admin_users')
    op.drop_table('settings')
    op.drop_index('ix_voucher_sales_account', table_name='voucher_sales')
    op.drop_table('voucher_sales')
    op.drop_index('ix_clothing_orders_clothing_billing_id', table_name='clothing_orders')
    op.drop_index('ix_clothing_orders_status', table_name='clothing_orders')
    op.drop_index('ix_clothing_orders_account_created', table_name='clothing_orders')
    op.drop_table('clothing_orders')
    op.drop_table('clothing_billings')
    op.drop_index('ix_clothing_items_sort', table_name='clothing_items')
    op.drop_table('clothing_items')
    op.drop_index('ix_transactions_sale_reference', table_name='transactions')
    op.drop_index('ix_transactions_billing', table_name='transactions')
    op.drop_index('ix_transactions_account_created', table_name='transactions')
    op.drop_index('ix_transactions_product_id', table_name='transactions')
    op.drop_index('ix_transactions_account_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('billings')
    op.drop_index('ix_stock_movements_product_created', table_name='stock_movements')
    op.drop_index('ix_stock_movements_transaction_id', table_name='stock_movements')
    op.drop_index('ix_stock_movements_movement_type', table_name='stock_movements')
    op.drop_index('ix_stock_movements_product_id', table_name='stock_movements')
    op.drop_table('stock_movements')
    op.drop_index('ix_product_barcodes_product_id', table_name='product_barcodes')
    op.drop_table('product_barcodes')
    op.drop_index('ix_products_available', table_name='products')
    op.drop_index('ix_products_category_name', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_account_barcodes_account_id', table_name='account_barcodes')
    op.drop_table('account_barcodes')
    op.drop_index('ix_accounts_name', table_name='accounts')
    op.drop_index('ix_accounts_role', table_name='accounts')
    op.drop_table('accounts')
