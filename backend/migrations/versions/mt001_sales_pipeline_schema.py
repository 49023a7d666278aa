"""sales pipeline schema

Revision ID: mt001_sales_pipeline
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete multi-tenant schema:
- tenants / tenant_counters: tenant root and per-tenant document sequences
- products / inventory / stock_movements: catalog, stock levels, stock journal
- customers / loyalty_*: buyers and the append-only points ledger
- discount_rules / invoice_discounts / coupon_usage: discount engine
- employees / employee_discount_*: staff purchase discounts
- invoices / invoice_items / customer_payments: sales
- sales_returns / sales_return_items: customer returns
- suppliers / purchases / purchase_* / supplier_payments: goods inward
- chart_of_accounts / journal_entries / ledger_entries / daybook_entries: accounting
- vat_reports: monthly VAT roll-up
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'mt001_sales_pipeline'
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, default='0'):
    if default is None:
        return sa.Column(name, sa.Numeric(precision=14, scale=2), nullable=nullable)
    return sa.Column(name, sa.Numeric(precision=14, scale=2), nullable=nullable, server_default=default)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _tenant_fk():
    return sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'])


def upgrade():
    """
    WHY: Every business table carries tenant_id; unique constraints that
    back the concurrency guarantees (invoice numbers, counters, VAT periods,
    inventory rows, account names) are declared here so both SQLite and
    Postgres enforce them.
    """

    # ============================================================================
    # tenants
    # ============================================================================
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table(
        'tenant_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sales_seq', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchase_seq', sa.Integer(), nullable=False, server_default='0'),
        _updated_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', name='uq_tenant_counters_tenant'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenant_counters_tenant_id', 'tenant_counters', ['tenant_id'])

    # ============================================================================
    # catalog and stock
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        _money('cost_price'),
        _money('selling_price'),
        sa.Column('tax', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_products_tenant_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])

    op.create_table(
        'inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('max_stock', sa.Integer(), nullable=True),
        _updated_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'product_id', name='uq_inventory_tenant_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_tenant_id', 'inventory', ['tenant_id'])
    op.create_index('ix_inventory_product_id', 'inventory', ['product_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference_table', sa.String(length=64), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_tenant_product', 'stock_movements', ['tenant_id', 'product_id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_table', 'reference_id'])

    # ============================================================================
    # customers and loyalty
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('membership_tier', sa.String(length=32), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_purchases', sa.Integer(), nullable=False, server_default='0'),
        _money('total_spent'),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_customers_points_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])

    op.create_table(
        'loyalty_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('points_per_currency', sa.Numeric(precision=10, scale=4), nullable=False, server_default='1'),
        _money('currency_unit', default='100'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_loyalty_rules_tenant_id', 'loyalty_rules', ['tenant_id'])

    # ============================================================================
    # discounts and staff
    # ============================================================================
    op.create_table(
        'discount_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=True),
        _money('discount_amount', nullable=True, default=None),
        _money('min_bill_amount', nullable=True, default=None),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('code', sa.String(length=64), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('per_customer_limit', sa.Integer(), nullable=True),
        sa.Column('tier', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_discount_rules_tenant_active', 'discount_rules', ['tenant_id', 'is_active'])

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_employees_tenant_id', 'employees', ['tenant_id'])

    op.create_table(
        'employee_discount_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('max_discount_amount', nullable=True, default=None),
        _money('monthly_limit', nullable=True, default=None),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_employee_discount_rules_tenant_id', 'employee_discount_rules', ['tenant_id'])

    # ============================================================================
    # invoices
    # ============================================================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('employee_id', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        _money('subtotal'),
        _money('item_discount_total'),
        _money('bill_discount_total'),
        _money('coupon_discount_total'),
        _money('membership_discount_total'),
        _money('staff_discount'),
        sa.Column('redeemed_points', sa.Integer(), nullable=False, server_default='0'),
        _money('final_amount'),
        _money('total_amount'),
        _money('net_amount'),
        _money('tax_amount'),
        _money('cost_amount'),
        sa.Column('earned_points', sa.Integer(), nullable=False, server_default='0'),
        _money('amount_paid'),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='DRAFT'),
        sa.Column('handled_by', sa.Integer(), nullable=True),
        sa.Column('handled_by_name', sa.String(length=255), nullable=True),
        sa.Column('pdf_url', sa.String(length=512), nullable=True),
        sa.Column('loyalty_posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accounted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('vat_aggregated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receipt_rendered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tail_error', sa.Text(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoices_tenant_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoices_tenant_id', 'invoices', ['tenant_id'])
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_tenant_created', 'invoices', ['tenant_id', 'created_at'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _money('price', default=None),
        sa.Column('tax', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('tax_amount'),
        _money('discount_amount'),
        _money('net_price', default=None),
        _money('total', default=None),
        _money('cost_price'),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_items_invoice', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_tenant_id', 'invoice_items', ['tenant_id'])
    op.create_index('ix_invoice_items_product_id', 'invoice_items', ['product_id'])

    op.create_table(
        'invoice_discounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=True),
        _money('amount', default=None),
        sa.Column('description', sa.String(length=255), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['rule_id'], ['discount_rules.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_discounts_tenant_id', 'invoice_discounts', ['tenant_id'])
    op.create_index('ix_invoice_discounts_invoice_id', 'invoice_discounts', ['invoice_id'])

    op.create_table(
        'coupon_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['coupon_id'], ['discount_rules.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_coupon_usage_tenant_id', 'coupon_usage', ['tenant_id'])
    op.create_index('ix_coupon_usage_coupon_customer', 'coupon_usage', ['coupon_id', 'customer_id'])

    op.create_table(
        'employee_discount_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        _money('discount_amount', default=None),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['rule_id'], ['employee_discount_rules.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_employee_discount_usage_employee', 'employee_discount_usage',
                    ['tenant_id', 'employee_id', 'used_at'])
    op.create_index('ix_employee_discount_usage_invoice_id', 'employee_discount_usage', ['invoice_id'])

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_loyalty_tx_customer', 'loyalty_transactions', ['tenant_id', 'customer_id'])
    op.create_index('ix_loyalty_transactions_invoice_id', 'loyalty_transactions', ['invoice_id'])

    op.create_table(
        'customer_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        _money('amount', default=None),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('received_by', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_payments_tenant_id', 'customer_payments', ['tenant_id'])
    op.create_index('ix_customer_payments_invoice_id', 'customer_payments', ['invoice_id'])

    # ============================================================================
    # sales returns
    # ============================================================================
    op.create_table(
        'sales_returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('refund_type', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        _money('total_refund'),
        _money('net_amount'),
        _money('tax_amount'),
        _money('cost_amount'),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_returns_invoice', 'sales_returns', ['tenant_id', 'invoice_id'])

    op.create_table(
        'sales_return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _money('price', default=None),
        sa.Column('tax', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('net_amount', default=None),
        _money('tax_amount', default=None),
        _money('total', default=None),
        _money('cost_price'),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['return_id'], ['sales_returns.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_return_items_tenant_id', 'sales_return_items', ['tenant_id'])
    op.create_index('ix_sales_return_items_return_id', 'sales_return_items', ['return_id'])
    op.create_index('ix_sales_return_items_invoice_id', 'sales_return_items', ['invoice_id'])

    # ============================================================================
    # purchasing
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suppliers_tenant_id', 'suppliers', ['tenant_id'])

    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('purchase_number', sa.String(length=32), nullable=False),
        sa.Column('invoice_ref', sa.String(length=64), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        _money('net_total'),
        _money('tax_total'),
        _money('total_amount'),
        _money('amount_paid'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'purchase_number', name='uq_purchases_tenant_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchases_tenant_id', 'purchases', ['tenant_id'])
    op.create_index('ix_purchases_supplier_id', 'purchases', ['supplier_id'])

    op.create_table(
        'purchase_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _money('cost_price', default=None),
        sa.Column('tax', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('net_amount', default=None),
        _money('tax_amount', default=None),
        _money('total', default=None),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_items_tenant_id', 'purchase_items', ['tenant_id'])
    op.create_index('ix_purchase_items_purchase_id', 'purchase_items', ['purchase_id'])

    op.create_table(
        'purchase_returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('refund_type', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        _money('net_total'),
        _money('tax_total'),
        _money('total_refund'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_returns_tenant_id', 'purchase_returns', ['tenant_id'])
    op.create_index('ix_purchase_returns_purchase_id', 'purchase_returns', ['purchase_id'])

    op.create_table(
        'purchase_return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('purchase_return_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _money('unit_cost', default=None),
        sa.Column('tax', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('net_amount', default=None),
        _money('tax_amount', default=None),
        _money('total', default=None),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['purchase_return_id'], ['purchase_returns.id']),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_return_items_tenant_id', 'purchase_return_items', ['tenant_id'])
    op.create_index('ix_purchase_return_items_purchase_return_id', 'purchase_return_items', ['purchase_return_id'])
    op.create_index('ix_purchase_return_items_purchase_id', 'purchase_return_items', ['purchase_id'])

    op.create_table(
        'supplier_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        _money('amount', default=None),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('paid_by', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_supplier_payments_tenant_id', 'supplier_payments', ['tenant_id'])
    op.create_index('ix_supplier_payments_purchase_id', 'supplier_payments', ['purchase_id'])

    # ============================================================================
    # accounting
    # ============================================================================
    op.create_table(
        'chart_of_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['parent_id'], ['chart_of_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_coa_tenant_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_chart_of_accounts_tenant_id', 'chart_of_accounts', ['tenant_id'])

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('debit_account_id', sa.Integer(), nullable=False),
        sa.Column('credit_account_id', sa.Integer(), nullable=False),
        _money('amount', default=None),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=False, server_default='general'),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['debit_account_id'], ['chart_of_accounts.id']),
        sa.ForeignKeyConstraint(['credit_account_id'], ['chart_of_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_journal_amount_positive'),
        sa.CheckConstraint('debit_account_id <> credit_account_id', name='ck_journal_distinct_accounts'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_journal_entries_tenant_id', 'journal_entries', ['tenant_id'])
    op.create_index('ix_journal_reference', 'journal_entries', ['tenant_id', 'reference_type', 'reference_id'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('account_type', sa.String(length=128), nullable=False),
        sa.Column('journal_entry_id', sa.Integer(), nullable=True),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _money('debit'),
        _money('credit'),
        _money('balance'),
        sa.Column('reference_type', sa.String(length=32), nullable=False, server_default='general'),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['account_id'], ['chart_of_accounts.id']),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_account_seq', 'ledger_entries', ['tenant_id', 'account_id', 'id'])
    op.create_index('ix_ledger_entries_journal_entry_id', 'ledger_entries', ['journal_entry_id'])

    op.create_table(
        'daybook_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _money('debit'),
        _money('credit'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        _created_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_daybook_tenant_created', 'daybook_entries', ['tenant_id', 'created_at'])

    op.create_table(
        'vat_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        _money('total_sales'),
        _money('sales_vat'),
        _money('total_purchases'),
        _money('purchase_vat'),
        _money('vat_payable'),
        _updated_at(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'period', name='uq_vat_reports_tenant_period'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_vat_reports_tenant_id', 'vat_reports', ['tenant_id'])


def downgrade():
    for table in (
        'vat_reports',
        'daybook_entries',
        'ledger_entries',
        'journal_entries',
        'chart_of_accounts',
        'supplier_payments',
        'purchase_return_items',
        'purchase_returns',
        'purchase_items',
        'purchases',
        'suppliers',
        'sales_return_items',
        'sales_returns',
        'customer_payments',
        'loyalty_transactions',
        'employee_discount_usage',
        'coupon_usage',
        'invoice_discounts',
        'invoice_items',
        'invoices',
        'employee_discount_rules',
        'employees',
        'discount_rules',
        'loyalty_rules',
        'customers',
        'stock_movements',
        'inventory',
        'products',
        'tenant_counters',
        'tenants',
    ):
        op.drop_table(table)
