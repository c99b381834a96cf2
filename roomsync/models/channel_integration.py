"""
Channel Integration Models

Models for the OTA synchronization subsystem:
- ChannelConnection: one configuration per channel with encrypted credentials
- ChannelMapping: maps a local (room type, rate plan) pair to channel identifiers
- SyncLogEntry: append-only record of every sync attempt
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Integer, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class ConnectionStatus(str, enum.Enum):
    ACTIVE = "active"
    ERROR = "error"


class MappingStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class SyncDirection(str, enum.Enum):
    PUSH = "push"
    PULL = "pull"


class SyncType(str, enum.Enum):
    AVAILABILITY = "availability"
    RATES = "rates"
    RESERVATIONS = "reservations"


class SyncStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ChannelConnection(Base):
    """
    Stores credentials and status for one external channel.
    Never hard-deleted while mappings still reference the channel.
    """
    __tablename__ = "channel_connections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    channel_name = Column(String(50), nullable=False, unique=True)

    # base64(iv + ciphertext), see CredentialVault
    credentials = Column(Text, nullable=True)

    is_active = Column(Boolean, default=False)

    # Auth failures park the channel until credentials are updated
    status = Column(String(20), default=ConnectionStatus.ACTIVE.value)
    last_error = Column(Text, nullable=True)
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ChannelConnection {self.channel_name} active={self.is_active}>"


class ChannelMapping(Base):
    """
    Maps a local room type and rate plan to external channel IDs.
    One row per (channel, room type, rate plan); rate_plan_id 0 is the base rate.
    """
    __tablename__ = "channel_mappings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    channel_name = Column(String(50), nullable=False)

    # Internal references
    room_type_id = Column(String(36), ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False)
    rate_plan_id = Column(Integer, nullable=False, default=0)

    # External identifiers
    external_room_id = Column(String(255), nullable=False)
    external_rate_id = Column(String(255), nullable=True)

    # Sync toggles
    sync_availability = Column(Boolean, default=True)
    sync_rates = Column(Boolean, default=True)
    sync_reservations = Column(Boolean, default=True)

    # Health
    status = Column(String(20), default=MappingStatus.ACTIVE.value)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_status = Column(String(20), nullable=True)
    last_error = Column(Text, nullable=True)
    consecutive_failures = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room_type = relationship("RoomType")

    __table_args__ = (
        UniqueConstraint('channel_name', 'room_type_id', 'rate_plan_id', name='uq_channel_mapping_triple'),
        Index("ix_channel_mapping_channel", "channel_name"),
        Index("ix_channel_mapping_room_type", "room_type_id"),
    )

    def __repr__(self):
        return f"<ChannelMapping {self.channel_name} room_type={self.room_type_id} -> {self.external_room_id}>"


class SyncLogEntry(Base):
    """
    One row per (channel, sync_type) batch.
    Immutable once completed_at is set; pruned after the retention window.
    """
    __tablename__ = "channel_sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    channel_name = Column(String(50), nullable=False)
    direction = Column(String(10), nullable=False)  # push / pull
    sync_type = Column(String(20), nullable=False)  # availability / rates / reservations
    status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)

    records_processed = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    request_id = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_sync_log_channel_started", "channel_name", "started_at"),
        Index("ix_sync_log_status", "status"),
    )

    def __repr__(self):
        return f"<SyncLogEntry {self.channel_name} {self.direction}/{self.sync_type} {self.status}>"
