"""Initial pre-order ledger schema: customers, flights, pre-orders, items, payments, reminders

Revision ID: p001_initial_ledger
Revises:
Create Date: 2026-03-02 10:14:22.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('customers',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('phone_number', sa.String(length=32), nullable=False),
    sa.Column('instagram_id', sa.String(length=128), nullable=True),
    sa.Column('city', sa.String(length=128), nullable=True),
    sa.Column('address', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_customers')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_name'), ['name'], unique=False)

    op.create_table('flights',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('flight_name', sa.String(length=128), nullable=False),
    sa.Column('shipment_date', sa.Date(), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_flights')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('flights', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_flights_flight_name'), ['flight_name'], unique=False)
        batch_op.create_index(batch_op.f('ix_flights_shipment_date'), ['shipment_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_flights_status'), ['status'], unique=False)

    # Derived money columns are maintained by the ledger service
    op.create_table('preorders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('customer_id', sa.Integer(), nullable=False),
    sa.Column('flight_id', sa.Integer(), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('delivery_charges_cents', sa.Integer(), nullable=False),
    sa.Column('cod_amount_cents', sa.Integer(), nullable=False),
    sa.Column('subtotal_cents', sa.Integer(), nullable=False),
    sa.Column('total_amount_cents', sa.Integer(), nullable=False),
    sa.Column('advance_payment_cents', sa.Integer(), nullable=False),
    sa.Column('remaining_amount_cents', sa.Integer(), nullable=False),
    sa.Column('order_level_paid_cents', sa.Integer(), nullable=False),
    sa.Column('balance_due_cents', sa.Integer(), nullable=False),
    sa.Column('payment_status', sa.String(length=16), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_preorders_customer_id_customers')),
    sa.ForeignKeyConstraint(['flight_id'], ['flights.id'], name=op.f('fk_preorders_flight_id_flights')),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_preorders')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('preorders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_preorders_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_preorders_flight_id'), ['flight_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_preorders_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_preorders_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_preorders_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_preorders_status_created', ['status', 'created_at'], unique=False)

    op.create_table('preorder_items',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('product_name', sa.String(length=255), nullable=False),
    sa.Column('shade', sa.String(length=128), nullable=False),
    sa.Column('size', sa.String(length=64), nullable=False),
    sa.Column('link', sa.String(length=1024), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('price_cents', sa.Integer(), nullable=False),
    sa.Column('advance_payment_cents', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.CheckConstraint('quantity >= 1', name=op.f('ck_preorder_items_quantity_positive')),
    sa.CheckConstraint('price_cents >= 0', name=op.f('ck_preorder_items_price_non_negative')),
    sa.CheckConstraint('advance_payment_cents >= 0', name=op.f('ck_preorder_items_advance_non_negative')),
    sa.ForeignKeyConstraint(['order_id'], ['preorders.id'], name=op.f('fk_preorder_items_order_id_preorders'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_preorder_items')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('preorder_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_preorder_items_order_id'), ['order_id'], unique=False)

    op.create_table('payments',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('customer_id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('item_id', sa.Integer(), nullable=True),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('purpose', sa.String(length=32), nullable=False),
    sa.Column('bank_account', sa.String(length=64), nullable=False),
    sa.Column('tally', sa.Boolean(), nullable=False),
    sa.Column('screenshot_ref', sa.String(length=1024), nullable=True),
    sa.Column('payment_date', sa.Date(), nullable=False),
    sa.Column('is_automatic', sa.Boolean(), nullable=False),
    sa.Column('updated_by', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.CheckConstraint('amount_cents > 0', name=op.f('ck_payments_amount_positive')),
    sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_payments_customer_id_customers')),
    sa.ForeignKeyConstraint(['order_id'], ['preorders.id'], name=op.f('fk_payments_order_id_preorders')),
    sa.ForeignKeyConstraint(['item_id'], ['preorder_items.id'], name=op.f('fk_payments_item_id_preorder_items'), ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_payments')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_item_id'), ['item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_purpose'), ['purpose'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_payment_date'), ['payment_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_is_automatic'), ['is_automatic'], unique=False)
        batch_op.create_index('ix_payments_order_item', ['order_id', 'item_id'], unique=False)

    op.create_table('reminders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('priority', sa.String(length=16), nullable=False),
    sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['order_id'], ['preorders.id'], name=op.f('fk_reminders_order_id_preorders'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_reminders')),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('reminders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reminders_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_reminders_user_id'), ['user_id'], unique=False)
        batch_op.create_index('ix_reminders_status_due', ['status', 'due_date'], unique=False)


def downgrade():
    with op.batch_alter_table('reminders', schema=None) as batch_op:
        batch_op.drop_index('ix_reminders_status_due')
        batch_op.drop_index(batch_op.f('ix_reminders_user_id'))
        batch_op.drop_index(batch_op.f('ix_reminders_order_id'))
    op.drop_table('reminders')

    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.drop_index('ix_payments_order_item')
        batch_op.drop_index(batch_op.f('ix_payments_is_automatic'))
        batch_op.drop_index(batch_op.f('ix_payments_payment_date'))
        batch_op.drop_index(batch_op.f('ix_payments_purpose'))
        batch_op.drop_index(batch_op.f('ix_payments_item_id'))
        batch_op.drop_index(batch_op.f('ix_payments_order_id'))
        batch_op.drop_index(batch_op.f('ix_payments_customer_id'))
    op.drop_table('payments')

    with op.batch_alter_table('preorder_items', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_preorder_items_order_id'))
    op.drop_table('preorder_items')

    with op.batch_alter_table('preorders', schema=None) as batch_op:
        batch_op.drop_index('ix_preorders_status_created')
        batch_op.drop_index(batch_op.f('ix_preorders_created_at'))
        batch_op.drop_index(batch_op.f('ix_preorders_payment_status'))
        batch_op.drop_index(batch_op.f('ix_preorders_status'))
        batch_op.drop_index(batch_op.f('ix_preorders_flight_id'))
        batch_op.drop_index(batch_op.f('ix_preorders_customer_id'))
    op.drop_table('preorders')

    with op.batch_alter_table('flights', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_flights_status'))
        batch_op.drop_index(batch_op.f('ix_flights_shipment_date'))
        batch_op.drop_index(batch_op.f('ix_flights_flight_name'))
    op.drop_table('flights')

    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_customers_name'))
    op.drop_table('customers')
