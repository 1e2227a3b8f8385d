"""Initial schema: users, stock, merchants, credit sales, payments, reminders

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. users, session_tokens, password_reset_otps
2. products (stock with IMEI and optimistic version column)
3. merchants (vyapari with cached udhari aggregates)
4. sales and payments
5. reminder_records (unique per sale, type and day) and notifications
6. audit_logs
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text('(CURRENT_TIMESTAMP)')


def upgrade():
    # ==========================================================================
    # 1. AUTH
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='staff'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_email', ['email'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_session_tokens_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_session_tokens_token_hash', ['token_hash'], unique=True)
        batch_op.create_index('ix_session_tokens_expires_at', ['expires_at'], unique=False)
        batch_op.create_index('ix_session_tokens_is_revoked', ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    op.create_table('password_reset_otps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('otp_hash', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('password_reset_otps', schema=None) as batch_op:
        batch_op.create_index('ix_password_reset_otps_email_used', ['email', 'used'], unique=False)

    # ==========================================================================
    # 2. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=64), nullable=True),
        sa.Column('model', sa.String(length=128), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('storage', sa.String(length=64), nullable=True),
        sa.Column('country_variant', sa.String(length=8), nullable=False, server_default='IN'),
        sa.Column('imei', sa.String(length=15), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=True),
        sa.Column('sold', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('sold_date', sa.Date(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_nonneg'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_imei', ['imei'], unique=True)
        batch_op.create_index('ix_products_barcode', ['barcode'], unique=False)
        batch_op.create_index('ix_products_sold', ['sold'], unique=False)
        batch_op.create_index('ix_products_brand_model', ['brand', 'model'], unique=False)

    # ==========================================================================
    # 3. MERCHANTS
    # ==========================================================================
    op.create_table('merchants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('total_purchased_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_paid_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('remaining_balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('credit_score', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('last_transaction_date', sa.Date(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchants', schema=None) as batch_op:
        batch_op.create_index('ix_merchants_name', ['name'], unique=False)

    # ==========================================================================
    # 4. SALES AND PAYMENTS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('rate_cents', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('remaining_amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity >= 1', name='ck_sales_quantity_positive'),
        sa.CheckConstraint('rate_cents >= 0 AND paid_amount_cents >= 0 AND remaining_amount_cents >= 0', name='ck_sales_money_nonneg'),
        sa.CheckConstraint('paid_amount_cents + remaining_amount_cents = total_amount_cents', name='ck_sales_amounts_balance'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_merchant_id', ['merchant_id'], unique=False)
        batch_op.create_index('ix_sales_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_sales_payment_status', ['payment_status'], unique=False)
        batch_op.create_index('ix_sales_due_date', ['due_date'], unique=False)
        batch_op.create_index('ix_sales_status_due', ['payment_status', 'due_date'], unique=False)

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint('amount_cents >= 0', name='ck_payments_amount_nonneg'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index('ix_payments_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_payments_merchant_id', ['merchant_id'], unique=False)

    # ==========================================================================
    # 5. REMINDERS AND NOTIFICATIONS
    # ==========================================================================
    op.create_table('reminder_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('reminder_type', sa.String(length=16), nullable=False),
        sa.Column('email_sent_to', sa.String(length=255), nullable=True),
        sa.Column('channels', sa.String(length=64), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_on', sa.Date(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', 'reminder_type', 'sent_on', name='uq_reminder_sale_type_day'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('reminder_records', schema=None) as batch_op:
        batch_op.create_index('ix_reminder_records_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_reminder_records_merchant_id', ['merchant_id'], unique=False)
        batch_op.create_index('ix_reminder_records_sent_on', ['sent_on'], unique=False)

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='info'),
        sa.Column('link', sa.String(length=255), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.create_index('ix_notifications_user_read', ['user_id', 'read'], unique=False)

    # ==========================================================================
    # 6. AUDIT
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_table_created', ['table_name', 'created_at'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_table('reminder_records')
    op.drop_table('payments')
    op.drop_table('sales')
    op.drop_table('merchants')
    op.drop_table('products')
    op.drop_table('password_reset_otps')
    op.drop_table('session_tokens')
    op.drop_table('users')
