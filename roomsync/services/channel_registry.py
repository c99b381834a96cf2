"""
Channel Registry Service

CRUD and derived queries for channel connections and mappings, plus the
health bookkeeping the orchestrator writes after each sync attempt.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ValidationError
from ..models.channel_integration import (
    ChannelConnection,
    ChannelMapping,
    ConnectionStatus,
    MappingStatus
)
from ..models.inventory import RoomType
from .channel_clients import ChannelClientRegistry
from .credential_vault import CredentialVault

logger = logging.getLogger(__name__)

CHANNEL_NAME_RE = re.compile(r"^[a-z0-9_]+$")
MAPPING_STATUSES = {s.value for s in MappingStatus}
SYNC_FLAGS = ("sync_availability", "sync_rates", "sync_reservations")
MAPPING_FIELDS = (
    "channel_name", "room_type_id", "rate_plan_id", "external_room_id", "external_rate_id",
    "status", *SYNC_FLAGS,
)


class ChannelRegistryService:
    def __init__(self, db: Session, vault: CredentialVault, clients: ChannelClientRegistry):
        self.db = db
        self.vault = vault
        self.clients = clients

    # ==================
    # Validation
    # ==================

    def _channel_name_errors(self, channel_name: Optional[str]) -> Dict[str, str]:
        if not channel_name:
            return {"channel_name": "is required"}
        if len(channel_name) > 50:
            return {"channel_name": "must be 50 characters or fewer"}
        if not CHANNEL_NAME_RE.match(channel_name):
            return {"channel_name": "may only contain lowercase letters, digits and underscores"}
        if not self.clients.is_registered(channel_name):
            return {"channel_name": f"'{channel_name}' is not a supported channel"}
        return {}

    def validate_mapping(self, data: Dict, mapping_id: Optional[str] = None) -> Dict[str, str]:
        """Returns field -> message for every problem found; empty when valid."""
        errors = self._channel_name_errors(data.get("channel_name"))

        room_type_id = data.get("room_type_id")
        if not room_type_id:
            errors["room_type_id"] = "is required"
        elif not self.db.query(RoomType.id).filter(RoomType.id == room_type_id).first():
            errors["room_type_id"] = "does not exist"

        rate_plan_id = data.get("rate_plan_id", 0)
        if not isinstance(rate_plan_id, int) or isinstance(rate_plan_id, bool) or rate_plan_id < 0:
            errors["rate_plan_id"] = "must be a non-negative integer"

        external_room_id = data.get("external_room_id")
        if not external_room_id or not str(external_room_id).strip():
            errors["external_room_id"] = "is required"
        elif len(str(external_room_id)) > 255:
            errors["external_room_id"] = "must be 255 characters or fewer"

        external_rate_id = data.get("external_rate_id")
        if external_rate_id and len(str(external_rate_id)) > 255:
            errors["external_rate_id"] = "must be 255 characters or fewer"

        status = data.get("status", MappingStatus.ACTIVE.value)
        if status not in MAPPING_STATUSES:
            errors["status"] = f"must be one of {', '.join(sorted(MAPPING_STATUSES))}"

        if not errors:
            duplicate = self.db.query(ChannelMapping).filter(
                ChannelMapping.channel_name == data["channel_name"],
                ChannelMapping.room_type_id == room_type_id,
                ChannelMapping.rate_plan_id == rate_plan_id,
            )
            if mapping_id:
                duplicate = duplicate.filter(ChannelMapping.id != mapping_id)
            if duplicate.first():
                errors["room_type_id"] = "a mapping for this channel, room type and rate plan already exists"

        return errors

    # ==================
    # Connections
    # ==================

    def list_connections(self) -> List[ChannelConnection]:
        return self.db.query(ChannelConnection).order_by(ChannelConnection.channel_name).all()

    def get_connection(self, connection_id: str) -> ChannelConnection:
        connection = self.db.query(ChannelConnection).filter(ChannelConnection.id == connection_id).first()
        if not connection:
            raise NotFoundError(f"Connection {connection_id} not found")
        return connection

    def get_connection_by_channel(self, channel_name: str) -> Optional[ChannelConnection]:
        return self.db.query(ChannelConnection).filter(ChannelConnection.channel_name == channel_name).first()

    def get_active_connections(self) -> List[ChannelConnection]:
        """Activated connections that are not parked by an auth failure"""
        return self.db.query(ChannelConnection).filter(
            ChannelConnection.is_active == True,  # noqa: E712
            ChannelConnection.status != ConnectionStatus.ERROR.value,
        ).order_by(ChannelConnection.channel_name).all()

    def create_connection(
        self,
        channel_name: str,
        credentials: Dict[str, str],
        is_active: bool = False
    ) -> ChannelConnection:
        errors = self._channel_name_errors(channel_name)
        if not errors and self.get_connection_by_channel(channel_name):
            errors["channel_name"] = f"a connection for '{channel_name}' already exists"
        if errors:
            raise ValidationError(errors)

        connection = ChannelConnection(
            channel_name=channel_name,
            credentials=self.vault.encrypt(credentials or {}),
            is_active=is_active,
            status=ConnectionStatus.ACTIVE.value,
        )
        self.db.add(connection)
        self.db.commit()
        self.db.refresh(connection)

        logger.info(f"Created channel connection {channel_name} (active={is_active})")
        return connection

    def update_connection(
        self,
        connection_id: str,
        credentials: Optional[Dict[str, str]] = None,
        is_active: Optional[bool] = None
    ) -> ChannelConnection:
        connection = self.get_connection(connection_id)

        if credentials is not None:
            connection.credentials = self.vault.encrypt(credentials)
            # New credentials lift an auth parking
            connection.status = ConnectionStatus.ACTIVE.value
            connection.last_error = None
        if is_active is not None:
            connection.is_active = is_active

        self.db.commit()
        self.db.refresh(connection)
        logger.info(f"Updated channel connection {connection.channel_name}")
        return connection

    def delete_connection(self, connection_id: str, cascade: bool = False) -> None:
        connection = self.get_connection(connection_id)
        mappings = self.db.query(ChannelMapping).filter(
            ChannelMapping.channel_name == connection.channel_name
        )
        mapping_count = mappings.count()

        if mapping_count and not cascade:
            raise ValidationError({
                "connection": f"{mapping_count} mapping(s) still reference {connection.channel_name}"
            })

        if mapping_count:
            mappings.delete(synchronize_session=False)
        self.db.delete(connection)
        self.db.commit()
        logger.info(f"Removed channel connection {connection.channel_name} and {mapping_count} mapping(s)")

    def get_credentials(self, connection: ChannelConnection) -> Dict[str, str]:
        return self.vault.decrypt(connection.credentials)

    def mark_synced(self, connection: ChannelConnection) -> None:
        connection.last_sync_at = datetime.utcnow()

    def mark_connection_error(self, connection: ChannelConnection, message: str) -> None:
        """Park the channel and flag all its mappings until credentials change"""
        connection.status = ConnectionStatus.ERROR.value
        connection.last_error = message
        self.db.query(ChannelMapping).filter(
            ChannelMapping.channel_name == connection.channel_name
        ).update({
            "status": MappingStatus.ERROR.value,
            "last_error": message,
            "updated_at": datetime.utcnow(),
        }, synchronize_session=False)
        self.db.commit()
        logger.error(f"[{connection.channel_name}] Connection parked: {message}")

    # ==================
    # Mappings
    # ==================

    def list_mappings(
        self,
        channel_name: Optional[str] = None,
        room_type_id: Optional[str] = None
    ) -> List[ChannelMapping]:
        query = self.db.query(ChannelMapping)
        if channel_name:
            query = query.filter(ChannelMapping.channel_name == channel_name)
        if room_type_id:
            query = query.filter(ChannelMapping.room_type_id == room_type_id)
        return query.order_by(ChannelMapping.channel_name, ChannelMapping.created_at).all()

    def get_mapping(self, mapping_id: str) -> ChannelMapping:
        mapping = self.db.query(ChannelMapping).filter(ChannelMapping.id == mapping_id).first()
        if not mapping:
            raise NotFoundError(f"Mapping {mapping_id} not found")
        return mapping

    def get_mappings_for_channel(self, channel_name: str, sync_flag: Optional[str] = None) -> List[ChannelMapping]:
        """
        Mappings that take part in syncs for a channel. Inactive mappings are
        skipped; mappings in error are kept so a success can recover them.
        """
        query = self.db.query(ChannelMapping).filter(
            ChannelMapping.channel_name == channel_name,
            ChannelMapping.status != MappingStatus.INACTIVE.value,
        )
        if sync_flag:
            if sync_flag not in SYNC_FLAGS:
                raise ValueError(f"Unknown sync flag {sync_flag}")
            query = query.filter(getattr(ChannelMapping, sync_flag) == True)  # noqa: E712
        return query.order_by(ChannelMapping.created_at).all()

    def get_mappings_for_room_type(self, room_type_id: str, sync_flag: Optional[str] = None) -> List[ChannelMapping]:
        query = self.db.query(ChannelMapping).filter(
            ChannelMapping.room_type_id == room_type_id,
            ChannelMapping.status != MappingStatus.INACTIVE.value,
        )
        if sync_flag:
            query = query.filter(getattr(ChannelMapping, sync_flag) == True)  # noqa: E712
        return query.order_by(ChannelMapping.channel_name).all()

    def find_mapping_by_external_room(
        self,
        channel_name: str,
        external_room_id: str,
        external_rate_id: Optional[str] = None
    ) -> Optional[ChannelMapping]:
        query = self.db.query(ChannelMapping).filter(
            ChannelMapping.channel_name == channel_name,
            ChannelMapping.external_room_id == external_room_id,
            ChannelMapping.status != MappingStatus.INACTIVE.value,
        )
        if external_rate_id:
            exact = query.filter(ChannelMapping.external_rate_id == external_rate_id).first()
            if exact:
                return exact
        return query.order_by(ChannelMapping.rate_plan_id).first()

    def create_mapping(self, **data) -> ChannelMapping:
        data = {k: v for k, v in data.items() if k in MAPPING_FIELDS}
        data.setdefault("rate_plan_id", 0)
        data.setdefault("status", MappingStatus.ACTIVE.value)

        errors = self.validate_mapping(data)
        if errors:
            raise ValidationError(errors)

        mapping = ChannelMapping(**data)
        self.db.add(mapping)
        self.db.commit()
        self.db.refresh(mapping)

        logger.info(
            f"Mapped room type {mapping.room_type_id} rate plan {mapping.rate_plan_id} "
            f"to {mapping.channel_name}:{mapping.external_room_id}"
        )
        return mapping

    def update_mapping(self, mapping_id: str, **changes) -> ChannelMapping:
        mapping = self.get_mapping(mapping_id)
        changes = {k: v for k, v in changes.items() if k in MAPPING_FIELDS and v is not None}

        merged = {field: getattr(mapping, field) for field in MAPPING_FIELDS}
        merged.update(changes)
        errors = self.validate_mapping(merged, mapping_id=mapping.id)
        if errors:
            raise ValidationError(errors)

        for field, value in changes.items():
            setattr(mapping, field, value)
        if changes.get("status") == MappingStatus.ACTIVE.value:
            mapping.consecutive_failures = 0

        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def delete_mapping(self, mapping_id: str) -> None:
        mapping = self.get_mapping(mapping_id)
        self.db.delete(mapping)
        self.db.commit()

    # ==================
    # Health bookkeeping (committed by the caller)
    # ==================

    def record_mapping_success(self, mapping: ChannelMapping, status: str) -> None:
        mapping.last_sync_at = datetime.utcnow()
        mapping.last_sync_status = status
        mapping.last_error = None
        mapping.consecutive_failures = 0
        if mapping.status == MappingStatus.ERROR.value:
            mapping.status = MappingStatus.ACTIVE.value
            logger.info(f"[{mapping.channel_name}] Mapping {mapping.id} recovered")

    def record_mapping_failure(self, mapping: ChannelMapping, error: str, threshold: int) -> None:
        mapping.last_sync_at = datetime.utcnow()
        mapping.last_sync_status = "failed"
        mapping.last_error = error[:2000] if error else error
        mapping.consecutive_failures = (mapping.consecutive_failures or 0) + 1
        if mapping.status == MappingStatus.ACTIVE.value and mapping.consecutive_failures >= threshold:
            mapping.status = MappingStatus.ERROR.value
            logger.warning(
                f"[{mapping.channel_name}] Mapping {mapping.id} flagged as error after "
                f"{mapping.consecutive_failures} consecutive failure(s)"
            )
