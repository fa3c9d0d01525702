"""create_booking_core_tables

Revision ID: 5c1e0a7d9b21
Revises:
Create Date: 2026-10-19 09:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e0a7d9b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('CUSTOMER', 'OWNER', 'ADMIN', name='user_role')
booking_status = sa.Enum('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED', name='booking_status')
payment_status = sa.Enum('PENDING', 'PARTIAL', 'FULL', 'REFUNDED', name='payment_status')
payout_status = sa.Enum('PENDING', 'PROCESSED', 'FAILED', name='payout_status')
payment_event_kind = sa.Enum('CAPTURED', 'FAILED', 'REFUNDED', 'REFUND_FAILED', name='payment_event_kind')
payment_event_source = sa.Enum('WEBHOOK', 'CLIENT', 'DIRECT', name='payment_event_source')
payment_event_outcome = sa.Enum('applied', 'duplicate', 'ignored', name='payment_event_outcome')
settlement_status = sa.Enum('PENDING', 'PAID_OUT', 'NOT_APPLICABLE', name='settlement_status')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('fund_account_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'stores',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stores_owner_id', 'stores', ['owner_id'])

    op.create_table(
        'store_services',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('price >= 0', name='store_service_price_non_negative'),
        sa.CheckConstraint('duration_minutes > 0', name='store_service_duration_positive'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_services_store_id', 'store_services', ['store_id'])

    op.create_table(
        'store_availability',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='store_availability_day_range'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_availability_store_id', 'store_availability', ['store_id'])

    op.create_table(
        'employees',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('designation', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_employees_store_id', 'employees', ['store_id'])

    op.create_table(
        'employee_availability',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='employee_availability_day_range'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_employee_availability_employee_id', 'employee_availability', ['employee_id'])
    op.create_index('ix_employee_availability_store_id', 'employee_availability', ['store_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('store_service_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=True),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('paid_amount >= 0', name='booking_paid_non_negative'),
        sa.CheckConstraint('paid_amount <= total_price', name='booking_paid_within_total'),
        sa.CheckConstraint('start_time < end_time', name='booking_start_before_end'),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['store_service_id'], ['store_services.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_store_id', 'bookings', ['store_id'])
    op.create_index('ix_bookings_booking_date', 'bookings', ['booking_date'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_store_date', 'bookings', ['store_id', 'booking_date'])
    # At most one active booking per store, date and start time
    op.create_index(
        'uq_bookings_active_slot',
        'bookings',
        ['store_id', 'booking_date', 'start_time'],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'CONFIRMED')"),
    )

    op.create_table(
        'owner_payouts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', payout_status, nullable=False),
        sa.Column('gateway_payout_id', sa.String(length=64), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_owner_payouts_owner_id', 'owner_payouts', ['owner_id'])

    op.create_table(
        'payment_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('kind', payment_event_kind, nullable=False),
        sa.Column('source', payment_event_source, nullable=False),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('payment_ref', sa.String(length=128), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=True),
        sa.Column('outcome', payment_event_outcome, nullable=False),
        sa.Column('payout_status', settlement_status, nullable=False),
        sa.Column('payout_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payout_id'], ['owner_payouts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        # Idempotency gate for webhook retries and client/webhook races
        sa.UniqueConstraint('kind', 'external_id', name='uq_payment_events_kind_external_id'),
    )
    op.create_index('ix_payment_events_booking_id', 'payment_events', ['booking_id'])
    op.create_index('ix_payment_events_payment_ref', 'payment_events', ['payment_ref'])
    op.create_index('ix_payment_events_payout_status', 'payment_events', ['payout_status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('payment_events')
    op.drop_table('owner_payouts')
    op.drop_table('bookings')
    op.drop_table('employee_availability')
    op.drop_table('employees')
    op.drop_table('store_availability')
    op.drop_table('store_services')
    op.drop_table('stores')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        settlement_status,
        payment_event_outcome,
        payment_event_source,
        payment_event_kind,
        payout_status,
        payment_status,
        booking_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
