"""Create webhook ingestion tables (users, integrations, customers, orders, CRM)

Revision ID: 20260301_000001
Revises:
Create Date: 2026-03-01 09:00:00.000000

WHAT:
    Creates the tables the order webhook pipeline writes:
    - users: tenants (+ Telegram notification settings)
    - integrations: connected storefronts with domain + webhook secret
    - customers / orders / order_items: canonical commerce data
    - crm_leads / crm_lead_events: sales pipeline fan-out

WHY:
    Webhook idempotency is enforced by unique constraints created here:
    - uq_customer_tenant_email (customers.user_id, customers.email)
    - uq_order_integration_external (orders.integration_id, orders.external_order_id)
    - integrations.domain, integrations.webhook_secret, crm_leads.order_id
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260301_000001'
down_revision = None
branch_labels = None
depends_on = None


INTEGRATION_TYPES = ('shopify', 'woocommerce', 'wordpress', 'custom')


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Tenants
    # =========================================================================
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('telegram_chat_id', sa.String(), nullable=True),
        sa.Column('telegram_notifications_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # =========================================================================
    # STEP 2: Integrations
    # =========================================================================
    op.create_table(
        'integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('type', sa.Enum(*INTEGRATION_TYPES, name='integrationtypeenum'), nullable=False),
        sa.Column('domain', sa.String(), nullable=False, unique=True),
        sa.Column('webhook_secret', sa.String(), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('base_url', sa.String(), nullable=True),
        sa.Column('access_token', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_integrations_user_id', 'integrations', ['user_id'])

    # =========================================================================
    # STEP 3: Customers
    # =========================================================================
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('order_id', sa.BigInteger(), nullable=True),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'email', name='uq_customer_tenant_email'),
    )
    op.create_index('ix_customers_user_id', 'customers', ['user_id'])

    # =========================================================================
    # STEP 4: Orders + items
    # =========================================================================
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('integration_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('integrations.id'), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('external_order_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 4), nullable=False),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('order_created_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('integration_id', 'external_order_id', name='uq_order_integration_external'),
    )

    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_sku', sa.String(), nullable=False, server_default=''),
        sa.Column('product_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_per_unit', sa.Numeric(18, 4), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_order_item_quantity_positive'),
        sa.CheckConstraint('price_per_unit >= 0', name='ck_order_item_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    # =========================================================================
    # STEP 5: CRM
    # =========================================================================
    op.create_table(
        'crm_leads',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=True, unique=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('logistic_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('cod_status', sa.String(), nullable=False, server_default='waiting'),
        sa.Column('kpi_status', sa.String(), nullable=False, server_default='new_lead'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_crm_leads_user_id', 'crm_leads', ['user_id'])

    op.create_table(
        'crm_lead_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('lead_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('crm_leads.id'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_crm_lead_events_lead_id', 'crm_lead_events', ['lead_id'])


def downgrade() -> None:
    op.drop_index('ix_crm_lead_events_lead_id', table_name='crm_lead_events')
    op.drop_table('crm_lead_events')
    op.drop_index('ix_crm_leads_user_id', table_name='crm_leads')
    op.drop_table('crm_leads')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_index('ix_customers_user_id', table_name='customers')
    op.drop_table('customers')
    op.drop_index('ix_integrations_user_id', table_name='integrations')
    op.drop_table('integrations')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='integrationtypeenum').drop(op.get_bind(), checkfirst=True)
