"""create scheduling tables

Revision ID: a41c7d2e9b10
Revises:
Create Date: 2026-10-18 09:12:44.502311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a41c7d2e9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Providers and their calendar connection
    op.create_table(
        'providers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    op.create_table(
        'calendar_integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('calendar_provider', sa.String(20), server_default='google'),
        sa.Column('calendar_id', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('access_token_encrypted', sa.LargeBinary, nullable=True),
        sa.Column('refresh_token_encrypted', sa.LargeBinary, nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_config', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    # 2. Availability settings
    op.create_table(
        'availability_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('enabled', sa.Boolean, server_default=sa.text('true')),
        sa.Column('position', sa.Integer, nullable=False, server_default='0')
    )
    op.create_index('ix_availability_rules_provider_day', 'availability_rules', ['provider_id', 'day_of_week'])

    op.create_table(
        'appointment_types',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('buffer_before', sa.Integer, server_default='0'),
        sa.Column('buffer_after', sa.Integer, server_default='0'),
        sa.Column('color', sa.String(20), server_default='#4CAF50'),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('enabled', sa.Boolean, server_default=sa.text('true')),
        sa.Column('time_restrictions', sa.JSON, nullable=True)
    )

    op.create_table(
        'booking_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('min_lead_time', sa.Integer, server_default='1'),
        sa.Column('max_advance_booking', sa.Integer, server_default='90'),
        sa.Column('min_reschedule_notice', sa.Integer, server_default='24'),
        sa.Column('min_cancellation_notice', sa.Integer, server_default='24'),
        sa.Column('allow_reschedule', sa.Boolean, server_default=sa.text('true')),
        sa.Column('allow_cancellation', sa.Boolean, server_default=sa.text('true')),
        sa.Column('max_appointments_per_day', sa.Integer, nullable=True)
    )

    op.create_table(
        'blocked_intervals',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('is_recurring', sa.Boolean, server_default=sa.text('false'))
    )
    op.create_index('ix_blocked_intervals_provider_start', 'blocked_intervals', ['provider_id', 'start_time'])

    # 3. Slots - one row per (provider, start, end)
    op.create_table(
        'slots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('type', sa.String(255), nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('external_event_id', sa.String(255), nullable=True),
        sa.Column('absorbed_type', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('provider_id', 'start_time', 'end_time', name='uq_slots_provider_interval')
    )
    op.create_index('ix_slots_provider_external_event', 'slots', ['provider_id', 'external_event_id'])
    op.create_index('ix_slots_provider_start_available', 'slots', ['provider_id', 'start_time', 'is_available'])

    # 4. Appointments and their status history
    appointment_status = postgresql.ENUM(
        'SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'NO_SHOW', 'RESCHEDULED',
        name='appointment_status'
    )

    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('slot_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('slots.id'), nullable=False),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('client_name', sa.String, nullable=False),
        sa.Column('client_email', sa.String, nullable=True),
        sa.Column('client_phone', sa.String, nullable=True),
        sa.Column('reason_for_visit', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('status', appointment_status, nullable=False, server_default='SCHEDULED'),
        sa.Column('external_event_id', sa.String(255), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('cancelled_by', sa.String, nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )
    op.create_index('ix_appointments_provider_status', 'appointments', ['provider_id', 'status'])
    op.create_index('ix_appointments_external_event', 'appointments', ['external_event_id'])

    op.create_table(
        'appointment_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('performed_by', sa.String, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_appointment_history_appointment_id', 'appointment_history', ['appointment_id'])

    # 5. Push channel and sync cursor per provider
    op.create_table(
        'sync_states',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('channel_id', sa.String(255), nullable=False, unique=True),
        sa.Column('resource_id', sa.String(255), nullable=True),
        sa.Column('sync_token', sa.Text, nullable=True),
        sa.Column('expiration', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_time', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_sync_states_expiration', 'sync_states', ['expiration'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_sync_states_expiration', table_name='sync_states')
    op.drop_table('sync_states')

    op.drop_index('ix_appointment_history_appointment_id', table_name='appointment_history')
    op.drop_table('appointment_history')

    op.drop_index('ix_appointments_external_event', table_name='appointments')
    op.drop_index('ix_appointments_provider_status', table_name='appointments')
    op.drop_table('appointments')
    sa.Enum(name='appointment_status').drop(op.get_bind(), checkfirst=True)

    op.drop_index('ix_slots_provider_start_available', table_name='slots')
    op.drop_index('ix_slots_provider_external_event', table_name='slots')
    op.drop_table('slots')

    op.drop_index('ix_blocked_intervals_provider_start', table_name='blocked_intervals')
    op.drop_table('blocked_intervals')
    op.drop_table('booking_rules')
    op.drop_table('appointment_types')

    op.drop_index('ix_availability_rules_provider_day', table_name='availability_rules')
    op.drop_table('availability_rules')

    op.drop_table('calendar_integrations')
    op.drop_table('providers')
