"""Create users, products, invoices and inventory sync tables.

Revision ID: 001_create_billing_schema
Revises:
Create Date: 2026-10-18

Invoice numbers: one locked counter row per invoice type
(invoice_number_sequences) plus a unique (invoice_type, invoice_number).
Inventory sync: one inventory_sync_entries row per applied invoice item,
unique on invoice_item_id, so an item is never applied twice.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_create_billing_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create billing tables."""

    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if 'invoices' in inspector.get_table_names():
        print("billing tables already exist, skipping...")
        return

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('business_name', sa.String(200), nullable=False),
        sa.Column('business_address', sa.Text(), nullable=False),
        sa.Column('business_gstin', sa.String(15), nullable=True),
        sa.Column('business_contact', sa.String(50), nullable=False),
        sa.Column('bank_details', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('unit', sa.String(20), nullable=False, server_default='pcs'),
        sa.Column('barcode', sa.String(50), nullable=True),
        sa.Column('supplier', sa.String(200), nullable=True),
        sa.Column('hsn_code', sa.String(8), nullable=True),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('buying_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('wholesale_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('mrp', sa.Numeric(14, 2), nullable=True, comment='Maximum Retail Price'),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False, server_default='18', comment='GST rate %'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_products_user_id', 'products', ['user_id'])
    op.create_index('ix_products_barcode', 'products', ['barcode'])
    op.create_index('ix_product_user_active', 'products', ['user_id', 'is_active'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('invoice_number', sa.String(30), nullable=False),
        sa.Column('invoice_type', sa.String(20), nullable=False, comment='BUYING, SELLING'),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT',
                  comment='DRAFT, FINALIZED, PAID, CANCELLED'),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_name', sa.String(200), nullable=False),
        sa.Column('sender_address', sa.Text(), nullable=False),
        sa.Column('sender_gstin', sa.String(15), nullable=True),
        sa.Column('sender_contact', sa.String(50), nullable=False),
        sa.Column('receiver_name', sa.String(200), nullable=False),
        sa.Column('receiver_address', sa.Text(), nullable=False),
        sa.Column('receiver_gstin', sa.String(15), nullable=True),
        sa.Column('receiver_contact', sa.String(50), nullable=False),
        sa.Column('cgst_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('sgst_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('igst_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('cgst_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('sgst_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('igst_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_tax', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('round_off', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('amount_in_words', sa.String(500), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('inventory_sync_status', sa.String(20), nullable=False, server_default='UNSYNCED',
                  comment='UNSYNCED, SYNCED'),
        sa.Column('inventory_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('inventory_sync_result', sa.JSON(), nullable=True, comment='Outcome of the last sync attempt'),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('invoice_type', 'invoice_number', name='uq_invoice_type_number'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])
    op.create_index('ix_invoices_user_type_status', 'invoices', ['user_id', 'invoice_type', 'status'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('invoice_id', sa.Uuid(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('serial_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('hsn_code', sa.String(8), nullable=True),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('rate', sa.Numeric(14, 2), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('update_mrp', sa.Numeric(14, 2), nullable=True),
        sa.Column('update_selling_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('update_wholesale_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('invoice_id', 'serial_number', name='uq_invoice_item_serial'),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_product_id', 'invoice_items', ['product_id'])

    op.create_table(
        'invoice_number_sequences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('series_code', sa.String(20), nullable=False, unique=True, comment='BUYING, SELLING'),
        sa.Column('prefix', sa.String(10), nullable=False, comment='BIL or SIL'),
        sa.Column('current_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('padding', sa.Integer(), nullable=False, server_default='3'),
        *_timestamps(),
    )

    op.create_table(
        'inventory_sync_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('invoice_id', sa.Uuid(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invoice_item_id', sa.Uuid(), sa.ForeignKey('invoice_items.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('quantity_delta', sa.Numeric(14, 3), nullable=False, comment='+ in, - out'),
        sa.Column('quantity_before', sa.Numeric(14, 3), nullable=False),
        sa.Column('quantity_after', sa.Numeric(14, 3), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_inventory_sync_entries_invoice_id', 'inventory_sync_entries', ['invoice_id'])
    op.create_index('ix_inventory_sync_entries_product_id', 'inventory_sync_entries', ['product_id'])

    print("Created billing tables")


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_table('inventory_sync_entries')
    op.drop_table('invoice_number_sequences')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('products')
    op.drop_table('users')
