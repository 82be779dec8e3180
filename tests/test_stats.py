from notify_server.notification_store import NotificationStore
from notify_server.stats import QueueStatsAggregator
from notify_server.status_store import StatusStore
from notify_shared.errors import NotificationNotFoundError
from notify_shared.models import LifecycleStatus, NotificationCreate, QueueStats


def _create(store: NotificationStore, subject: str = "Hi"):
    return store.create(NotificationCreate(recipient="user@example.com", subject=subject, message="Body"))


class TestNotificationStore:
    def test_create_starts_pending_with_defaults(self):
        store = NotificationStore()

        record = _create(store)

        assert record.status is LifecycleStatus.PENDING
        assert record.priority == "medium"
        assert record.created_at == record.updated_at
        assert store.get(record.id) == record

    def test_list_newest_first(self):
        store = NotificationStore()
        first = _create(store, "first")
        second = _create(store, "second")

        assert [r.id for r in store.list()] == [second.id, first.id]

    def test_update_status_replaces_record(self):
        store = NotificationStore()
        record = _create(store)

        updated = store.update_status(record.id, LifecycleStatus.PROCESSING)

        assert updated.status is LifecycleStatus.PROCESSING
        assert record.status is LifecycleStatus.PENDING
        assert store.get(record.id).status is LifecycleStatus.PROCESSING
        assert updated.updated_at >= record.updated_at

    def test_update_unknown_returns_none(self):
        assert NotificationStore().update_status("ghost", LifecycleStatus.FAILED) is None

    def test_stats_counts_by_status(self):
        store = NotificationStore()
        a, b, _ = _create(store), _create(store), _create(store)
        store.update_status(a.id, LifecycleStatus.COMPLETED)
        store.update_status(b.id, LifecycleStatus.FAILED)

        assert store.stats() == QueueStats(pending=1, completed=1, failed=1)

    def test_not_found_error_message(self):
        assert str(NotificationNotFoundError("abc")) == "notification not found: abc"


class TestQueueStatsAggregator:
    def test_empty(self):
        aggregator = QueueStatsAggregator(StatusStore(), NotificationStore())

        assert aggregator.compute() == QueueStats()

    def test_direct_and_record_identifiers_both_counted(self):
        statuses, records = StatusStore(), NotificationStore()
        aggregator = QueueStatsAggregator(statuses, records)
        statuses.set("m1", LifecycleStatus.PROCESSING)
        statuses.set("m2", LifecycleStatus.PROCESSING)
        statuses.set("m2", LifecycleStatus.COMPLETED)
        _create(records)

        stats = aggregator.compute()

        assert stats == QueueStats(pending=1, processing=1, completed=1)
        assert stats.total == 3

    def test_tracked_record_counted_once(self):
        statuses, records = StatusStore(), NotificationStore()
        aggregator = QueueStatsAggregator(statuses, records)
        record = _create(records)
        # The status map has moved on but the record update has not landed yet.
        statuses.set(record.id, LifecycleStatus.PROCESSING)

        stats = aggregator.compute()

        assert stats == QueueStats(processing=1)
        assert stats.total == 1
