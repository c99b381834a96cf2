"""Initial schema - inventory ledger and channel sync tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

This migration adds:
- room_types: sellable room categories
- inventory_days: per room type, per night ledger
- bookings: direct and channel reservations
- channel_connections: encrypted credentials and status per channel
- channel_mappings: room type/rate plan <-> channel ids
- channel_sync_logs: one row per sync batch
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==================
    # room_types table
    # ==================
    op.create_table(
        'room_types',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('code', sa.String(50), nullable=True, unique=True),
        sa.Column('base_price', sa.Numeric(10, 2), server_default='0'),
        sa.Column('total_rooms', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )

    # ==================
    # inventory_days table
    # ==================
    op.create_table(
        'inventory_days',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('room_type_id', sa.String(36), sa.ForeignKey('room_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('total_rooms', sa.Integer, nullable=False, server_default='0'),
        sa.Column('available_rooms', sa.Integer, nullable=False, server_default='0'),
        sa.Column('booked_rooms', sa.Integer, nullable=False, server_default='0'),
        sa.Column('stop_sell', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('min_stay', sa.Integer, nullable=False, server_default='1'),
        sa.Column('price_override', sa.Numeric(10, 2), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('room_type_id', 'date', name='uq_inventory_room_type_date'),
        sa.CheckConstraint('available_rooms >= 0', name='ck_inventory_available_non_negative'),
        sa.CheckConstraint('booked_rooms >= 0', name='ck_inventory_booked_non_negative'),
        sa.CheckConstraint('min_stay >= 1', name='ck_inventory_min_stay'),
    )
    op.create_index('ix_inventory_room_type_date', 'inventory_days', ['room_type_id', 'date'])

    # ==================
    # bookings table
    # ==================
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('room_type_id', sa.String(36), sa.ForeignKey('room_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('guest_name', sa.String(200), nullable=False, server_default=''),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('guest_phone', sa.String(50), nullable=True),
        sa.Column('check_in_date', sa.Date, nullable=False),
        sa.Column('check_out_date', sa.Date, nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('num_guests', sa.Integer, server_default='1'),
        sa.Column('total_price', sa.Numeric(10, 2), server_default='0'),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('status', sa.String(30), server_default='confirmed'),
        sa.Column('rooms_deducted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('channel_name', sa.String(50), nullable=True),
        sa.Column('external_reservation_id', sa.String(255), nullable=True),
        sa.Column('channel_data', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('channel_name', 'external_reservation_id', name='uq_booking_channel_external_ref'),
    )
    op.create_index('ix_booking_room_type_dates', 'bookings', ['room_type_id', 'check_in_date', 'check_out_date'])

    # ==================
    # channel_connections table
    # ==================
    op.create_table(
        'channel_connections',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('channel_name', sa.String(50), nullable=False, unique=True),
        sa.Column('credentials', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.false()),
        sa.Column('status', sa.String(20), server_default='active'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('last_sync_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )

    # ==================
    # channel_mappings table
    # ==================
    op.create_table(
        'channel_mappings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('channel_name', sa.String(50), nullable=False),
        sa.Column('room_type_id', sa.String(36), sa.ForeignKey('room_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rate_plan_id', sa.Integer, nullable=False, server_default='0'),
        sa.Column('external_room_id', sa.String(255), nullable=False),
        sa.Column('external_rate_id', sa.String(255), nullable=True),
        sa.Column('sync_availability', sa.Boolean, server_default=sa.true()),
        sa.Column('sync_rates', sa.Boolean, server_default=sa.true()),
        sa.Column('sync_reservations', sa.Boolean, server_default=sa.true()),
        sa.Column('status', sa.String(20), server_default='active'),
        sa.Column('last_sync_at', sa.DateTime, nullable=True),
        sa.Column('last_sync_status', sa.String(20), nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('consecutive_failures', sa.Integer, server_default='0'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('channel_name', 'room_type_id', 'rate_plan_id', name='uq_channel_mapping_triple'),
    )
    op.create_index('ix_channel_mapping_channel', 'channel_mappings', ['channel_name'])
    op.create_index('ix_channel_mapping_room_type', 'channel_mappings', ['room_type_id'])

    # ==================
    # channel_sync_logs table
    # ==================
    op.create_table(
        'channel_sync_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('channel_name', sa.String(50), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('sync_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('records_processed', sa.Integer, server_default='0'),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('started_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime, nullable=True),
        sa.Column('duration_ms', sa.Integer, nullable=True),
        sa.Column('request_id', sa.String(50), nullable=True),
    )
    op.create_index('ix_sync_log_channel_started', 'channel_sync_logs', ['channel_name', 'started_at'])
    op.create_index('ix_sync_log_status', 'channel_sync_logs', ['status'])


def downgrade() -> None:
    op.drop_table('channel_sync_logs')
    op.drop_table('channel_mappings')
    op.drop_table('channel_connections')
    op.drop_table('bookings')
    op.drop_table('inventory_days')
    op.drop_table('room_types')
