"""create rental tables

Revision ID: 4f2a9c1e7b30
Revises:
Create Date: 2025-07-01 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '4f2a9c1e7b30'
down_revision = None
branch_labels = None
depends_on = None


def timestamps():
    return [
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'rooms',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('number', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='available'),
        sa.Column('price', sa.Numeric(14, 2), nullable=False),
        sa.Column('area', sa.Float(), nullable=False),
        sa.Column('floor', sa.Integer(), nullable=False),
        sa.Column('has_wifi', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_air_conditioner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_refrigerator', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_washing_machine', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_balcony', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_private_bathroom', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('number', name='uq_rooms_number'),
    )
    op.create_index('idx_room_status', 'rooms', ['status'])
    op.create_index('idx_room_price', 'rooms', ['price'])
    op.create_index('idx_room_floor', 'rooms', ['floor'])

    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=11), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('id_card', sa.String(length=12), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=False),
        sa.Column('gender', sa.String(length=10), nullable=False),
        sa.Column('street', sa.String(length=255), nullable=False),
        sa.Column('ward', sa.String(length=100), nullable=False),
        sa.Column('district', sa.String(length=100), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('emergency_name', sa.String(length=100), nullable=False),
        sa.Column('emergency_phone', sa.String(length=11), nullable=False),
        sa.Column('emergency_relationship', sa.String(length=50), nullable=False),
        sa.Column('occupation', sa.String(length=100), nullable=False),
        sa.Column('workplace', sa.String(length=255), nullable=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='SET NULL'), nullable=True),
        sa.Column('move_in_date', sa.Date(), nullable=True),
        sa.Column('move_out_date', sa.Date(), nullable=True),
        sa.Column('deposit', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('documents', sa.JSON(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('phone', name='uq_tenants_phone'),
        sa.UniqueConstraint('email', name='uq_tenants_email'),
        sa.UniqueConstraint('id_card', name='uq_tenants_id_card'),
    )
    op.create_index('idx_tenant_status', 'tenants', ['status'])
    op.create_index('idx_tenant_room_id', 'tenants', ['room_id'])

    with op.batch_alter_table('rooms', schema=None) as batch_op:
        batch_op.create_foreign_key('fk_rooms_tenant_id', 'tenants', ['tenant_id'], ['id'], ondelete='SET NULL')

    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('contract_number', sa.String(length=20), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('monthly_rent', sa.Numeric(14, 2), nullable=False),
        sa.Column('deposit', sa.Numeric(14, 2), nullable=False),
        sa.Column('electricity_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('water_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('internet_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('parking_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('cleaning_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('payment_day', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('terms', sa.Text(), nullable=False),
        sa.Column('rules', sa.JSON(), nullable=True),
        sa.Column('witnesses', sa.JSON(), nullable=True),
        sa.Column('documents', sa.JSON(), nullable=True),
        sa.Column('termination_reason', sa.String(length=500), nullable=True),
        sa.Column('termination_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('contract_number', name='uq_contracts_contract_number'),
    )
    op.create_index('idx_contract_room_id', 'contracts', ['room_id'])
    op.create_index('idx_contract_tenant_id', 'contracts', ['tenant_id'])
    op.create_index('idx_contract_status', 'contracts', ['status'])
    op.create_index('idx_contract_start_date', 'contracts', ['start_date'])
    op.create_index('idx_contract_end_date', 'contracts', ['end_date'])

    op.create_table(
        'contract_renewals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('contract_id', sa.Integer(), sa.ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('old_end_date', sa.Date(), nullable=False),
        sa.Column('new_end_date', sa.Date(), nullable=False),
        sa.Column('renewal_date', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('payment_code', sa.String(length=20), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('contract_id', sa.Integer(), sa.ForeignKey('contracts.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('month', sa.SmallInteger(), nullable=False),
        sa.Column('year', sa.SmallInteger(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('rent_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('electricity_usage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('electricity_price', sa.Numeric(14, 2), nullable=False, server_default='3000'),
        sa.Column('electricity_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('water_usage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('water_price', sa.Numeric(14, 2), nullable=False, server_default='5000'),
        sa.Column('water_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('internet_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('parking_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('cleaning_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('discount_reason', sa.String(length=255), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='cash'),
        sa.Column('bank_name', sa.String(length=100), nullable=True),
        sa.Column('account_number', sa.String(length=50), nullable=True),
        sa.Column('transfer_code', sa.String(length=100), nullable=True),
        sa.Column('transfer_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('collected_by', sa.String(length=100), nullable=True),
        sa.Column('receipts', sa.JSON(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('payment_code', name='uq_payments_payment_code'),
    )
    op.create_index('idx_payment_room_id', 'payments', ['room_id'])
    op.create_index('idx_payment_tenant_id', 'payments', ['tenant_id'])
    op.create_index('idx_payment_contract_id', 'payments', ['contract_id'])
    op.create_index('idx_payment_status', 'payments', ['status'])
    op.create_index('idx_payment_month_year', 'payments', ['month', 'year'])
    op.create_index('idx_payment_due_date', 'payments', ['due_date'])
    op.create_index('idx_payment_paid_date', 'payments', ['paid_date'])

    op.create_table(
        'payment_fees',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
    )

    op.create_table(
        'payment_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.Column('changed_by', sa.String(length=100), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
    )

    op.create_table(
        'notes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False, server_default='general'),
        sa.Column('priority', sa.String(length=10), nullable=False, server_default='medium'),
        sa.Column('related_type', sa.String(length=20), nullable=True),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('reminder_date', sa.DateTime(), nullable=True),
        sa.Column('is_reminder', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        *timestamps(),
    )
    op.create_index('idx_note_category', 'notes', ['category'])
    op.create_index('idx_note_priority', 'notes', ['priority'])
    op.create_index('idx_note_reminder_date', 'notes', ['reminder_date'])
    op.create_index('idx_note_is_completed', 'notes', ['is_completed'])
    op.create_index('idx_note_created_at', 'notes', ['created_at'])

    op.create_table(
        'note_tags',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('note_id', sa.Integer(), sa.ForeignKey('notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
    )
    op.create_index('idx_note_tag_name', 'note_tags', ['name'])

    op.create_table(
        'sequence_counters',
        sa.Column('name', sa.String(length=30), nullable=False),
        sa.Column('period', sa.String(length=10), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('name', 'period'),
    )


def downgrade():
    op.drop_table('sequence_counters')
    op.drop_index('idx_note_tag_name', table_name='note_tags')
    op.drop_table('note_tags')
    op.drop_table('notes')
    op.drop_table('payment_status_history')
    op.drop_table('payment_fees')
    op.drop_table('payments')
    op.drop_table('contract_renewals')
    op.drop_table('contracts')
    with op.batch_alter_table('rooms', schema=None) as batch_op:
        batch_op.drop_constraint('fk_rooms_tenant_id', type_='foreignkey')
    op.drop_table('tenants')
    op.drop_table('rooms')
