"""Initial schema: locations, catalog, sales, payments, credits, refunds, cash

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. locations, products, inventory_balances, customers
2. cash_sessions
3. sales, sale_items, payments (UNIQUE sale_id)
4. credits, refunds (UNIQUE sale_id)
5. cash_ledger and audit_logs (append-only)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)


def upgrade():
    # ==========================================================================
    # 1. LOCATIONS / CATALOG / CUSTOMERS
    # ==========================================================================
    op.create_table('locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('locations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_locations_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_locations_is_active'), ['is_active'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=False, server_default='unit'),
        sa.Column('selling_price', sa.Integer(), nullable=False),
        sa.Column('cost_price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('max_discount_percent >= 0 AND max_discount_percent <= 100', name='ck_products_max_discount_range'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_location_id'), ['location_id'], unique=False)
        batch_op.create_index('ix_products_location_active', ['location_id', 'is_active'], unique=False)

    op.create_table('inventory_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('qty_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('qty_on_hand >= 0', name='ck_inventory_balances_non_negative'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'product_id', name='uq_inventory_balances_location_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_balances', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_balances_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_balances_product_id'), ['product_id'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_location_id'), ['location_id'], unique=False)
        batch_op.create_index('ix_customers_location_phone', ['location_id', 'phone'], unique=False)

    # ==========================================================================
    # 2. CASH SESSIONS
    # ==========================================================================
    op.create_table('cash_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('opening_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expected_cash', sa.Integer(), nullable=True),
        sa.Column('counted_cash', sa.Integer(), nullable=True),
        sa.Column('variance', sa.Integer(), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_sessions_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_cashier_id'), ['cashier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_opened_at'), ['opened_at'], unique=False)
        batch_op.create_index('ix_cash_sessions_location_cashier_status', ['location_id', 'cashier_id', 'status'], unique=False)

    # ==========================================================================
    # 3. SALES / ITEMS / PAYMENTS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('subtotal_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('fulfilled_by', sa.Integer(), nullable=True),
        sa.Column('fulfilled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_seller_id'), ['seller_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_status'), ['status'], unique=False)
        batch_op.create_index('ix_sales_location_status_created', ['location_id', 'status', 'created_at'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_items_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_items_product_id'), ['product_id'], unique=False)

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('cash_session_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('note', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['cash_session_id'], ['cash_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_payments_sale'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_cashier_id'), ['cashier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_cash_session_id'), ['cash_session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_created_at'), ['created_at'], unique=False)

    # ==========================================================================
    # 4. CREDITS / REFUNDS
    # ==========================================================================
    op.create_table('credits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settled_by', sa.Integer(), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_credits_sale'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_credits_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credits_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credits_status'), ['status'], unique=False)
        batch_op.create_index('ix_credits_location_status', ['location_id', 'status'], unique=False)

    op.create_table('refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('reference', sa.String(length=120), nullable=True),
        sa.Column('reason', sa.String(length=300), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_refunds_sale'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('refunds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_refunds_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_refunds_created_at'), ['created_at'], unique=False)

    # ==========================================================================
    # 5. APPEND-ONLY: CASH LEDGER / AUDIT LOGS
    # ==========================================================================
    op.create_table('cash_ledger',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('cash_session_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=40), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('reference', sa.String(length=120), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('credit_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint('amount > 0', name='ck_cash_ledger_positive_amount'),
        sa.CheckConstraint("direction IN ('IN', 'OUT')", name='ck_cash_ledger_direction'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['cash_session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ),
        sa.ForeignKeyConstraint(['credit_id'], ['credits.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_ledger', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_ledger_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_cashier_id'), ['cashier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_cash_session_id'), ['cash_session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_cash_ledger_location_created', ['location_id', 'created_at'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_action'), ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_location_created', ['location_id', 'created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    for table in (
        'audit_logs',
        'cash_ledger',
        'refunds',
        'credits',
        'payments',
        'sale_items',
        'sales',
        'cash_sessions',
        'customers',
        'inventory_balances',
        'products',
        'locations',
    ):
        op.drop_table(table)
