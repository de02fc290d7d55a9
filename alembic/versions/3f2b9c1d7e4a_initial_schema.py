"""initial_schema

Revision ID: 3f2b9c1d7e4a
Revises:
Create Date: 2026-10-19 09:12:41.518220

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2b9c1d7e4a'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    """
    Create the initial schema.

    Creates:
    - users table (tenant memberships embedded as JSON, optimistic version column)
    - tenants and settings tables
    - customers, products and orders tables (tenant-scoped, relations as id lists)

    No foreign keys: references are kept consistent by the application.
    """
    # 1. Users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=80), nullable=True),
        sa.Column('last_name', sa.String(length=175), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=24), nullable=True),
        sa.Column('import_hash', sa.String(length=255), nullable=True),
        sa.Column('password', sa.String(length=255), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('email_verification_token', sa.String(length=255), nullable=True),
        sa.Column('email_verification_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_reset_token', sa.String(length=255), nullable=True),
        sa.Column('password_reset_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('jwt_token_invalid_before', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tenants', sa.JSON(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_full_name', 'users', ['full_name'], unique=False)

    # 2. Tenants and their settings
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('url', sa.String(length=255), nullable=False),
        sa.Column('plan', sa.String(length=50), nullable=False),
        sa.Column('plan_status', sa.String(length=50), nullable=False),
        sa.Column('plan_stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('plan_user_id', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_tenants'),
        sa.UniqueConstraint('url', name='uq_tenants_url'),
    )
    op.create_index('ix_tenants_plan_stripe_customer_id', 'tenants', ['plan_stripe_customer_id'], unique=False)

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('theme', sa.String(length=100), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_settings'),
    )
    op.create_index('ix_settings_tenant_id', 'settings', ['tenant_id'], unique=True)

    # 3. Tenant-scoped entities
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=24), nullable=True),
        sa.Column('import_hash', sa.String(length=255), nullable=True),
        sa.Column('order_ids', sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_customers_tenant_id_email'),
        sa.UniqueConstraint('tenant_id', 'import_hash', name='uq_customers_tenant_id_import_hash'),
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_price', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('import_hash', sa.String(length=255), nullable=True),
        sa.Column('order_ids', sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_products_tenant_id_name'),
        sa.UniqueConstraint('tenant_id', 'import_hash', name='uq_products_tenant_id_import_hash'),
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('product_ids', sa.JSON(), nullable=False),
        sa.Column('delivered', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.String(length=1000), nullable=True),
        sa.Column('import_hash', sa.String(length=255), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('tenant_id', 'import_hash', name='uq_orders_tenant_id_import_hash'),
    )
    op.create_index('ix_orders_tenant_id', 'orders', ['tenant_id'], unique=False)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)


def downgrade() -> None:
    """
    Drop the whole schema.

    WARNING: This deletes all data.
    """
    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_index('ix_orders_tenant_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_products_tenant_id', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_customers_tenant_id', table_name='customers')
    op.drop_table('customers')

    op.drop_index('ix_settings_tenant_id', table_name='settings')
    op.drop_table('settings')

    op.drop_index('ix_tenants_plan_stripe_customer_id', table_name='tenants')
    op.drop_table('tenants')

    op.drop_index('ix_users_full_name', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
