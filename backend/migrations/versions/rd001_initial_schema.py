"""Initial schema: tenants, tickets, reference data registries, quotes and invoices

SCHEMA:
1. organizations as the tenant root
2. customers / devices / technicians / inventory_items
3. repairs and repair_items (optimistic locking on repairs.version_id)
4. currencies: (organization_id, code) unique, core codes unique among core
   rows, at most one default per scope (partial indexes)
5. tax_rates: percentage rates, at most one default per organization
6. quotes / invoices with currency and line item snapshots

Revision ID: rd001_initial_schema
Revises:
Create Date: 2026-09-14

Reference data (core currencies, per-organization defaults) is NOT seeded
here: run `flask currencies backfill` (or boot with BACKFILL_ON_STARTUP).
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'rd001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _where(clause):
    return {"sqlite_where": sa.text(clause), "postgresql_where": sa.text(clause)}


def _document_columns():
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('tax_rate_id', sa.Integer(), nullable=True),
        sa.Column('subtotal', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('currency_code', sa.String(length=8), nullable=False),
        sa.Column('currency_symbol', sa.String(length=8), nullable=False),
        sa.Column('currency_decimal_digits', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('tax_rate_percent', sa.Numeric(7, 4), nullable=True),
        sa.Column('tax_source', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('items_data', sa.Text(), nullable=True),
        sa.Column('legacy_item_ids', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id']),
        sa.ForeignKeyConstraint(['tax_rate_id'], ['tax_rates.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number'),
    ]


def upgrade():
    # ==========================================================================
    # STEP 1: Tenant root
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    # ==========================================================================
    # STEP 2: Customers, devices, technicians, inventory
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('postal_code', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_org_id', 'customers', ['org_id'])
    op.create_index('ix_customers_org_name', 'customers', ['org_id', 'last_name', 'first_name'])

    op.create_table('devices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('device_type', sa.String(length=64), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('condition', sa.Text(), nullable=True),
        sa.Column('accessories', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('devices', schema=None) as batch_op:
        batch_op.create_index('ix_devices_org_id', ['org_id'])
        batch_op.create_index('ix_devices_customer_id', ['customer_id'])
        batch_op.create_index('ix_devices_org_customer', ['org_id', 'customer_id'])

    op.create_table('technicians',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=64), nullable=False, server_default='technician'),
        sa.Column('specialty', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('technicians', schema=None) as batch_op:
        batch_op.create_index('ix_technicians_org_id', ['org_id'])
        batch_op.create_index('ix_technicians_org_active', ['org_id', 'is_active'])

    op.create_table('inventory_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('price', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('cost', sa.Numeric(14, 4), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('supplier', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sku', name='uq_inventory_items_org_sku')
    )
    with op.batch_alter_table('inventory_items', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_items_org_id', ['org_id'])
        batch_op.create_index('ix_inventory_items_org_active', ['org_id', 'is_active'])

    # ==========================================================================
    # STEP 3: Repair tickets and line items
    # ==========================================================================
    op.create_table('repairs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('ticket_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.Integer(), nullable=True),
        sa.Column('technician_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='intake'),
        sa.Column('issue', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('diagnostic_notes', sa.Text(), nullable=True),
        sa.Column('intake_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('estimated_completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('priority_level', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('is_under_warranty', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('customer_approval', sa.Boolean(), nullable=True),
        sa.Column('total_cost', sa.Numeric(14, 4), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id']),
        sa.ForeignKeyConstraint(['technician_id'], ['technicians.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_number')
    )
    with op.batch_alter_table('repairs', schema=None) as batch_op:
        batch_op.create_index('ix_repairs_org_id', ['org_id'])
        batch_op.create_index('ix_repairs_is_deleted', ['is_deleted'])
        batch_op.create_index('ix_repairs_org_status', ['org_id', 'status'])
        batch_op.create_index('ix_repairs_org_customer', ['org_id', 'customer_id'])
        batch_op.create_index('ix_repairs_org_technician', ['org_id', 'technician_id'])

    op.create_table('repair_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id']),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('repair_items', schema=None) as batch_op:
        batch_op.create_index('ix_repair_items_org_id', ['org_id'])
        batch_op.create_index('ix_repair_items_repair_deleted', ['repair_id', 'is_deleted'])

    # ==========================================================================
    # STEP 4: Currency registry (core rows have organization_id NULL)
    # ==========================================================================
    op.create_table('currencies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('symbol', sa.String(length=8), nullable=False),
        sa.Column('decimal_digits', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'code', name='uq_currencies_org_code')
    )
    op.create_index('ix_currencies_organization_id', 'currencies', ['organization_id'])
    op.create_index('uq_currencies_core_code', 'currencies', ['code'], unique=True,
                    **_where("organization_id IS NULL"))
    op.create_index('uq_currencies_org_default', 'currencies', ['organization_id'], unique=True,
                    **_where("is_default AND organization_id IS NOT NULL"))
    op.create_index('uq_currencies_core_default', 'currencies', ['is_default'], unique=True,
                    **_where("is_default AND organization_id IS NULL"))

    # ==========================================================================
    # STEP 5: Tax rates (percentages: 7.25 means 7.25%)
    # ==========================================================================
    op.create_table('tax_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('country_code', sa.String(length=2), nullable=False),
        sa.Column('region_code', sa.String(length=8), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('rate', sa.Numeric(7, 4), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tax_rates_organization_id', 'tax_rates', ['organization_id'])
    op.create_index('ix_tax_rates_org_jurisdiction', 'tax_rates',
                    ['organization_id', 'country_code', 'region_code'])
    op.create_index('uq_tax_rates_org_default', 'tax_rates', ['organization_id'], unique=True,
                    **_where("is_default"))

    # ==========================================================================
    # STEP 6: Financial documents
    # ==========================================================================
    op.create_table('quotes',
        *_document_columns(),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
    )
    with op.batch_alter_table('quotes', schema=None) as batch_op:
        batch_op.create_index('ix_quotes_org_id', ['org_id'])
        batch_op.create_index('ix_quotes_repair_id', ['repair_id'])
        batch_op.create_index('ix_quotes_org_repair', ['org_id', 'repair_id'])

    op.create_table('invoices',
        *_document_columns(),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='unpaid'),
        sa.Column('date_issued', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('date_paid', sa.DateTime(timezone=True), nullable=True),
        sa.Column('amount_paid', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index('ix_invoices_org_id', ['org_id'])
        batch_op.create_index('ix_invoices_repair_id', ['repair_id'])
        batch_op.create_index('ix_invoices_org_repair', ['org_id', 'repair_id'])
        batch_op.create_index('ix_invoices_org_status', ['org_id', 'status'])


def downgrade():
    op.drop_table('invoices')
    op.drop_table('quotes')
    op.drop_index('uq_tax_rates_org_default', table_name='tax_rates')
    op.drop_index('ix_tax_rates_org_jurisdiction', table_name='tax_rates')
    op.drop_index('ix_tax_rates_organization_id', table_name='tax_rates')
    op.drop_table('tax_rates')
    op.drop_index('uq_currencies_core_default', table_name='currencies')
    op.drop_index('uq_currencies_org_default', table_name='currencies')
    op.drop_index('uq_currencies_core_code', table_name='currencies')
    op.drop_index('ix_currencies_organization_id', table_name='currencies')
    op.drop_table('currencies')
    op.drop_table('repair_items')
    op.drop_table('repairs')
    op.drop_table('inventory_items')
    op.drop_table('technicians')
    op.drop_table('devices')
    op.drop_index('ix_customers_org_name', table_name='customers')
    op.drop_index('ix_customers_org_id', table_name='customers')
    op.drop_table('customers')
    op.drop_index('ix_organizations_is_active', table_name='organizations')
    op.drop_index('ix_organizations_code', table_name='organizations')
    op.drop_table('organizations')
