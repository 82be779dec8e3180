"""
In-memory Notification Record store.

Records are created PENDING on intake, only ever change through
`update_status`, and are never deleted while the process lives.
"""
import threading
import uuid
from typing import Dict, List, Optional

from notify_shared.models import (
    LifecycleStatus,
    NotificationCreate,
    NotificationRecord,
    QueueStats,
    utcnow,
)


class NotificationStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, NotificationRecord] = {}

    def create(self, data: NotificationCreate) -> NotificationRecord:
        now = utcnow()
        record = NotificationRecord(
            id=str(uuid.uuid4()),
            status=LifecycleStatus.PENDING,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            return self._records.get(notification_id)

    def list(self) -> List[NotificationRecord]:
        """All records, newest first (insertion order reversed)."""
        with self._lock:
            return list(reversed(self._records.values()))

    def update_status(self, notification_id: str, status: LifecycleStatus) -> Optional[NotificationRecord]:
        with self._lock:
            record = self._records.get(notification_id)
            if record is None:
                return None
            # Replace, never mutate: readers may still hold the old object.
            updated = record.model_copy(update={"status": status, "updated_at": utcnow()})
            self._records[notification_id] = updated
            return updated

    def stats(self) -> QueueStats:
        with self._lock:
            statuses = [r.status for r in self._records.values()]
        return QueueStats(
            pending=statuses.count(LifecycleStatus.PENDING),
            processing=statuses.count(LifecycleStatus.PROCESSING),
            completed=statuses.count(LifecycleStatus.COMPLETED),
            failed=statuses.count(LifecycleStatus.FAILED),
        )

    def snapshot(self) -> Dict[str, LifecycleStatus]:
        with self._lock:
            return {rid: r.status for rid, r in self._records.items()}
