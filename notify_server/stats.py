"""
Queue Statistics Aggregator.

Counts are derived on every read, never stored. An identifier is counted once:
from the Status Tracking Map when the processor has touched it, otherwise from
its notification record (which can only be PENDING at that point).
"""
from notify_server.notification_store import NotificationStore
from notify_server.status_store import StatusStore
from notify_shared.models import LifecycleStatus, QueueStats


class QueueStatsAggregator:
    def __init__(self, status_store: StatusStore, notification_store: NotificationStore):
        self.status_store = status_store
        self.notification_store = notification_store

    def compute(self) -> QueueStats:
        # Records first: anything the processor touches after this snapshot is
        # picked up by the status snapshot below, so nobody is counted twice.
        records = self.notification_store.snapshot()
        tracked = self.status_store.all()

        merged = dict(records)
        merged.update(tracked)

        counts = {status: 0 for status in LifecycleStatus}
        for status in merged.values():
            counts[status] += 1

        return QueueStats(
            pending=counts[LifecycleStatus.PENDING],
            processing=counts[LifecycleStatus.PROCESSING],
            completed=counts[LifecycleStatus.COMPLETED],
            failed=counts[LifecycleStatus.FAILED],
        )
