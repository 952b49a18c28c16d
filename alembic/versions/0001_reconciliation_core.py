"""Create order/payment reconciliation tables.

Revision ID: 0001_reconciliation_core
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_reconciliation_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('reference', sa.String(50), nullable=True, index=True),
        sa.Column('seller_id', sa.String(64), nullable=False, index=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(20), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('shipping_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('channel', sa.String(30), nullable=False, server_default='whatsapp'),
        sa.Column('source', sa.String(30), nullable=False, server_default='ai_chat'),
        sa.Column('notes_from_customer', sa.Text(), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending', index=True),
        sa.Column('payment_status', sa.String(30), nullable=False, server_default='unpaid', index=True),
        sa.Column('payment_proof_url', sa.String(500), nullable=True),
        sa.Column('notes_internal', sa.Text(), nullable=True),
        sa.Column('invoice_number', sa.String(50), nullable=True, unique=True),
        sa.Column('invoice_url', sa.String(500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'),
                  nullable=False, index=True),
        sa.Column('seller_id', sa.String(64), nullable=False, index=True),
        sa.Column('method', sa.String(20), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='PENDING'),
        sa.Column('gateway_order_id', sa.String(255), nullable=True, unique=True),
        sa.Column('gateway_payment_id', sa.String(255), nullable=True),
        sa.Column('upi_reference', sa.String(255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # At most one settled attempt per order
    op.create_index(
        'uq_payments_one_success_per_order',
        'payments',
        ['order_id'],
        unique=True,
        postgresql_where=sa.text("status = 'SUCCESS'"),
    )

    op.create_table(
        'order_timeline',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'),
                  nullable=False, index=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.String(255), nullable=False, unique=True),
        sa.Column('message_id', sa.String(255), nullable=True),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('outcome', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'seller_payment_settings',
        sa.Column('seller_id', sa.String(64), primary_key=True),
        sa.Column('data_key_encrypted', sa.Text(), nullable=False),
        sa.Column('webhook_secret_encrypted', sa.Text(), nullable=True),
        sa.Column('gateway_key_id', sa.String(100), nullable=True),
        sa.Column('gateway_key_secret_encrypted', sa.Text(), nullable=True),
        sa.Column('notification_phone', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'system_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('maintenance_mode', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lock_mode', sa.String(20), nullable=False, server_default='none'),
        sa.Column('lock_reason', sa.String(255), nullable=True),
        sa.Column('locked_by', sa.String(64), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('system_settings')
    op.drop_table('seller_payment_settings')
    op.drop_table('webhook_events')
    op.drop_table('order_timeline')
    op.drop_index('uq_payments_one_success_per_order', table_name='payments')
    op.drop_table('payments')
    op.drop_table('orders')
