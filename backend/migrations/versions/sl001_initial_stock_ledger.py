"""initial stock ledger schema

Revision ID: sl001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the stock ledger schema from scratch:
- companies: tenant root
- products: catalog rows with the stock counter
- stock_movements: append-only IN/OUT ledger
- sales: SALE/SERVICE rows and the RETURN/REFUND/EXCHANGE rows pointing back at them
- product_units: individually barcoded units
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sl001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # companies: tenant root
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_companies_is_archived', 'companies', ['is_archived'])

    # ============================================================================
    # products: catalog rows; current_stock only moves with a ledger row
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('current_stock', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('initial_stock', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_service', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_movement_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])
    op.create_index('ix_products_company_name', 'products', ['company_id', 'name'])
    op.create_index('ix_products_company_barcode', 'products', ['company_id', 'barcode'])

    # ============================================================================
    # stock_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_company_id', 'stock_movements', ['company_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_movements_company_created', 'stock_movements', ['company_id', 'created_at'])
    op.create_index('ix_movements_company_product_type', 'stock_movements',
                    ['company_id', 'product_id', 'type'])

    # ============================================================================
    # sales: originating rows and return-family rows (soft original_sale_id)
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_document', sa.String(length=32), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('return_action', sa.String(length=16), nullable=True),
        sa.Column('original_sale_id', sa.Integer(), nullable=True),
        sa.Column('exchange_product_id', sa.Integer(), nullable=True),
        sa.Column('exchange_quantity', sa.Numeric(12, 3), nullable=True),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_company_id', 'sales', ['company_id'])
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_type', 'sales', ['type'])
    op.create_index('ix_sales_customer_document', 'sales', ['customer_document'])
    op.create_index('ix_sales_original_sale_id', 'sales', ['original_sale_id'])
    op.create_index('ix_sales_company_type_created', 'sales', ['company_id', 'type', 'created_at'])
    op.create_index('ix_sales_company_customer', 'sales', ['company_id', 'customer_name'])

    # ============================================================================
    # product_units: barcoded units, barcode unique per company
    # ============================================================================
    op.create_table(
        'product_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=96), nullable=False),
        sa.Column('is_sold', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('seller_name', sa.String(length=255), nullable=True),
        sa.Column('attendant_name', sa.String(length=255), nullable=True),
        sa.Column('buyer_description', sa.Text(), nullable=True),
        sa.Column('payment_methods', sa.String(length=255), nullable=True),
        sa.Column('sale_description', sa.Text(), nullable=True),
        sa.Column('is_returned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('return_action', sa.String(length=16), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'barcode', name='uq_product_units_company_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_units_company_id', 'product_units', ['company_id'])
    op.create_index('ix_product_units_product_id', 'product_units', ['product_id'])
    op.create_index('ix_product_units_sale_id', 'product_units', ['sale_id'])
    op.create_index('ix_product_units_product_state', 'product_units',
                    ['product_id', 'is_sold', 'is_returned'])
    op.create_index('ix_product_units_company_created', 'product_units', ['company_id', 'created_at'])


def downgrade():
    op.drop_table('product_units')
    op.drop_table('sales')
    op.drop_table('stock_movements')
    op.drop_table('products')
    op.drop_table('companies')
