"""Create storefront payment and attribution tables

Revision ID: 20261018_create_payment_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '20261018_create_payment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create promo_codes table
    op.create_table(
        'promo_codes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), unique=True, nullable=False, index=True,
                  comment='Unique promo code (stored upper-case)'),
        sa.Column('influencer_id', UUID(as_uuid=True), nullable=True, index=True,
                  comment='Influencer who owns this code'),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0',
                  comment='Discount given to the buyer'),
        sa.Column('commission_percent', sa.Numeric(5, 2), nullable=False, server_default='0',
                  comment='Commission paid to the influencer'),
        sa.Column('used_count', sa.Integer, nullable=False, server_default='0',
                  comment='Number of paid orders that used this code'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True,
                  comment='Expiry (null = never expires)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.CheckConstraint('code = upper(code)', name='check_promo_code_upper'),
    )

    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(30), unique=True, nullable=False, index=True,
                  comment='Human-facing order number'),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(20), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='created',
                  comment='created, pending_payment, paid, cancelled, failed, refunded'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('promo_code_id', UUID(as_uuid=True),
                  sa.ForeignKey('promo_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('promo_snapshot', JSONB, nullable=True,
                  comment='Promo terms copied at order creation'),
        sa.Column('gateway_order_id', sa.String(100), nullable=True, index=True,
                  comment='Razorpay order ID'),
        sa.Column('gateway_payment_id', sa.String(100), nullable=True,
                  comment='Razorpay payment ID'),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('payment_payload', JSONB, nullable=True,
                  comment='Raw gateway payload kept for audit'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])

    # Create order_status_history table
    op.create_table(
        'order_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # Create order_attributions table (one row per order)
    op.create_table(
        'order_attributions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('influencer_id', UUID(as_uuid=True), nullable=True),
        sa.Column('promo_code_id', UUID(as_uuid=True),
                  sa.ForeignKey('promo_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('attributed_by', sa.String(30), nullable=False, server_default='promo',
                  comment='Source the attribution was resolved from'),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('commission_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False, server_default='0',
                  comment='subtotal * commission_percent / 100'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('order_id', name='uq_order_attributions_order'),
    )
    op.create_index('ix_order_attributions_influencer', 'order_attributions', ['influencer_id'])

    # Create cart_items table
    op.create_table(
        'cart_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('cart_items')
    op.drop_index('ix_order_attributions_influencer', table_name='order_attributions')
    op.drop_table('order_attributions')
    op.drop_table('order_status_history')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')
    op.drop_table('promo_codes')
