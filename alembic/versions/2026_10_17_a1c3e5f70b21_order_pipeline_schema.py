"""order_pipeline_schema

Revision ID: a1c3e5f70b21
Revises:
Create Date: 2026-10-17 12:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'a1c3e5f70b21'
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)


def _enum(*values, name):
    # Types are created once in upgrade(), tables only reference them
    return postgresql.ENUM(*values, name=name, create_type=False)


station_enum = _enum('KITCHEN', 'BAR', 'GRILL', 'DESSERTS', name='kitchenstation')
table_status_enum = _enum(
    'AVAILABLE', 'OCCUPIED', 'RESERVED', 'OUT_OF_SERVICE', 'BILL_REQUESTED',
    name='tablestatus',
)
payment_method_enum = _enum('CASH', 'CARD', 'TRANSFER', name='paymentmethod')
order_status_enum = _enum(
    'CREATED', 'CONFIRMED', 'IN_PREP', 'READY', 'DELIVERED', 'CANCELLED',
    name='orderstatus',
)
order_channel_enum = _enum('WEB', 'DINE_IN', 'PHONE', 'POS', name='orderchannel')
take_mode_enum = _enum('DINE_IN', 'DELIVERY', 'TAKEAWAY', name='takemode')
ticket_status_enum = _enum(
    'PENDING', 'IN_PROGRESS', 'READY', 'DELIVERED', 'CANCELLED',
    name='kitchenticketstatus',
)
coupon_type_enum = _enum('PERCENT', 'AMOUNT', name='coupontype')
promotion_kind_enum = _enum('PERCENT', 'TWO_FOR_ONE', name='promotionkind')

# Every enum type the schema uses
ALL_ENUMS = (
    station_enum, table_status_enum, payment_method_enum, order_status_enum,
    order_channel_enum, take_mode_enum, ticket_status_enum, coupon_type_enum,
    promotion_kind_enum,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ALL_ENUMS:
        enum.create(bind, checkfirst=True)

    # Catalog
    op.create_table(
        'categories',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('default_station', station_enum, nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'products',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('category_id', UUID, sa.ForeignKey('categories.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('base_price_cents', sa.Integer(), nullable=False),
        sa.Column('double_price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'modifiers',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('price_delta_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('category', sa.String(60), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    )
    op.create_table(
        'product_modifiers',
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), primary_key=True),
        sa.Column('modifier_id', UUID, sa.ForeignKey('modifiers.id'), primary_key=True),
    )
    op.create_table(
        'combos',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    )
    op.create_table(
        'combo_items',
        sa.Column('combo_id', UUID, sa.ForeignKey('combos.id'), primary_key=True),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), primary_key=True),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_table(
        'promotions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('kind', promotion_kind_enum, nullable=False),
        sa.Column('percent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('weekdays', sa.JSON(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('product_ids', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    )
    op.create_table(
        'coupons',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('code', sa.String(40), nullable=False),
        sa.Column('type', coupon_type_enum, nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('min_total_cents', sa.Integer(), nullable=True),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_to', sa.DateTime(), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    # Dine-in
    op.create_table(
        'tables',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('branch_id', UUID, nullable=True, index=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', table_status_enum, nullable=False, server_default='AVAILABLE', index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'table_sessions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('table_id', UUID, sa.ForeignKey('tables.id'), nullable=False, index=True),
        sa.Column('customer_name', sa.String(120), nullable=True),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('opened_by_user_id', UUID, nullable=True),
        sa.Column('closed_by_user_id', UUID, nullable=True),
        sa.Column('assigned_waiter_id', UUID, nullable=True, index=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tip_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', payment_method_enum, nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('opened_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True, index=True),
    )
    # At most one open session per table
    op.create_index(
        'uq_table_sessions_open_per_table',
        'table_sessions',
        ['table_id'],
        unique=True,
        postgresql_where=sa.text('closed_at IS NULL'),
        sqlite_where=sa.text('closed_at IS NULL'),
    )

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('table_session_id', UUID, sa.ForeignKey('table_sessions.id'), nullable=True, index=True),
        sa.Column('branch_id', UUID, nullable=True, index=True),
        sa.Column('channel', order_channel_enum, nullable=False),
        sa.Column('take_mode', take_mode_enum, nullable=False, index=True),
        sa.Column('customer_name', sa.String(120), nullable=False),
        sa.Column('phone', sa.String(40), nullable=False),
        sa.Column('address', sa.String(200), nullable=True),
        sa.Column('reference', sa.String(200), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('note', sa.String(500), nullable=True),
        sa.Column('public_code', sa.String(12), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tip_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('coupon_id', UUID, sa.ForeignKey('coupons.id'), nullable=True),
        sa.Column('status', order_status_enum, nullable=False, server_default='CREATED', index=True),
        sa.Column('created_by_user_id', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_orders_public_code', 'orders', ['public_code'], unique=True)

    op.create_table(
        'order_items',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('order_id', UUID, sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), nullable=True, index=True),
        sa.Column('combo_id', UUID, sa.ForeignKey('combos.id'), nullable=True),
        sa.Column('name_snapshot', sa.String(255), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('modifiers_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('modifiers_snapshot', sa.JSON(), nullable=False),
    )
    op.create_table(
        'order_status_history',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('order_id', UUID, sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('changed_by_user_id', UUID, nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'coupon_redemptions',
        sa.Column('coupon_id', UUID, sa.ForeignKey('coupons.id'), primary_key=True),
        sa.Column('order_id', UUID, sa.ForeignKey('orders.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False),
    )

    # Kitchen
    op.create_table(
        'kitchen_tickets',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('order_id', UUID, sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('station', station_enum, nullable=False, index=True),
        sa.Column('status', ticket_status_enum, nullable=False, server_default='PENDING', index=True),
        sa.Column('ticket_number', sa.String(12), nullable=False),
        sa.Column('service_date', sa.Date(), nullable=False, index=True),
        sa.Column('items_snapshot', sa.JSON(), nullable=False),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('assigned_to_user_id', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ready_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('order_id', 'station', name='uq_kitchen_tickets_order_station'),
        sa.UniqueConstraint('service_date', 'ticket_number', name='uq_kitchen_tickets_daily_number'),
    )
    op.create_table(
        'ticket_sequences',
        sa.Column('service_date', sa.Date(), primary_key=True),
        sa.Column('station', station_enum, primary_key=True),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_table('ticket_sequences')
    op.drop_table('kitchen_tickets')
    op.drop_table('coupon_redemptions')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_index('ix_orders_public_code', table_name='orders')
    op.drop_table('orders')
    op.drop_index('uq_table_sessions_open_per_table', table_name='table_sessions')
    op.drop_table('table_sessions')
    op.drop_table('tables')
    op.drop_index('ix_coupons_code', table_name='coupons')
    op.drop_table('coupons')
    op.drop_table('promotions')
    op.drop_table('combo_items')
    op.drop_table('combos')
    op.drop_table('product_modifiers')
    op.drop_table('modifiers')
    op.drop_table('products')
    op.drop_table('categories')

    bind = op.get_bind()
    for enum in reversed(ALL_ENUMS):
        enum.drop(bind, checkfirst=True)
