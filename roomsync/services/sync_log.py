"""
Sync Log Repository

Append-only audit trail: one entry per (channel, sync_type) batch, opened as
pending and completed exactly once.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.channel_integration import SyncLogEntry, SyncStatus

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


class SyncLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def start(
        self,
        channel_name: str,
        direction: str,
        sync_type: str,
        request_id: Optional[str] = None
    ) -> SyncLogEntry:
        entry = SyncLogEntry(
            channel_name=channel_name,
            direction=getattr(direction, "value", direction),
            sync_type=getattr(sync_type, "value", sync_type),
            status=SyncStatus.PENDING.value,
            records_processed=0,
            started_at=datetime.utcnow(),
            request_id=request_id,
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def complete(
        self,
        entry: SyncLogEntry,
        status: str,
        records_processed: int = 0,
        error_message: Optional[str] = None
    ) -> SyncLogEntry:
        if entry.completed_at is not None:
            raise ValueError(f"Sync log entry {entry.id} is already completed")

        now = datetime.utcnow()
        entry.status = getattr(status, "value", status)
        entry.records_processed = records_processed
        entry.error_message = error_message[:MAX_ERROR_LENGTH] if error_message else None
        entry.completed_at = now
        if entry.started_at:
            entry.duration_ms = int((now - entry.started_at).total_seconds() * 1000)
        self.db.commit()

        logger.info(
            f"[{entry.channel_name}] {entry.direction}/{entry.sync_type} -> {entry.status} "
            f"({records_processed} record(s), {entry.duration_ms}ms)"
        )
        return entry

    def recent(self, limit: int = 20) -> List[SyncLogEntry]:
        return self.db.query(SyncLogEntry).order_by(
            SyncLogEntry.started_at.desc(), SyncLogEntry.id.desc()
        ).limit(limit).all()

    def list(
        self,
        channel_name: Optional[str] = None,
        sync_type: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[SyncLogEntry], int]:
        query = self.db.query(SyncLogEntry)
        if channel_name:
            query = query.filter(SyncLogEntry.channel_name == channel_name)
        if sync_type:
            query = query.filter(SyncLogEntry.sync_type == sync_type)
        if status:
            query = query.filter(SyncLogEntry.status == status)

        total = query.count()
        items = query.order_by(
            SyncLogEntry.started_at.desc(), SyncLogEntry.id.desc()
        ).offset((max(page, 1) - 1) * per_page).limit(per_page).all()
        return items, total

    def prune(self, older_than_days: int) -> int:
        cutoff = datetime.utcnow() - timedelta(days=older_than_days)
        count = self.db.query(SyncLogEntry).filter(
            SyncLogEntry.completed_at.isnot(None),
            SyncLogEntry.started_at < cutoff,
        ).delete(synchronize_session=False)
        self.db.commit()
        if count:
            logger.info(f"Pruned {count} sync log entr{'y' if count == 1 else 'ies'} older than {older_than_days} days")
        return count
