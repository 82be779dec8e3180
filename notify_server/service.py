"""
MODULE OVERVIEW:
The pipeline facade: one object that owns every component and exposes the
operations the HTTP routes and observers need.

WHAT IS HAPPENING HERE:
There is no global state. `NotificationPipeline` builds the Status Store, the
Notification Store, the aggregator, the broadcaster and the processor, and
injects them into each other. The FastAPI app keeps a single instance on
`app.state.pipeline`; tests build their own with a fake broker and
deterministic strategies.

Startup follows a resilience contract: if the broker cannot be reached the
pipeline runs degraded. Reads and observers keep working, intake raises
ChannelUnavailableError (served as 503) until the process is restarted.
"""
import asyncio
from typing import List, Optional

from loguru import logger

from notify_server.broadcaster import EventBroadcaster, Observer
from notify_server.broker import BrokerClient
from notify_server.notification_store import NotificationStore
from notify_server.processor import NotificationProcessor
from notify_server.simulation import (
    OutcomePolicy,
    ProbabilityPolicy,
    RandomDelaySimulator,
    WorkSimulator,
)
from notify_server.stats import QueueStatsAggregator
from notify_server.status_store import StatusStore
from notify_shared.config import Settings
from notify_shared.errors import (
    BrokerConnectionError,
    ChannelUnavailableError,
    NotificationNotFoundError,
)
from notify_shared.models import (
    DirectEnvelope,
    InitialDataEvent,
    LifecycleStatus,
    MessageStatus,
    NotificationCreate,
    NotificationRecord,
    QueueStats,
    RecordEnvelope,
)


class NotificationPipeline:
    def __init__(
        self,
        broker: BrokerClient,
        simulator: WorkSimulator,
        policy: OutcomePolicy,
        work_timeout_s: float = 30.0,
        observer_queue_size: int = 100,
        initial_notifications_limit: int = 10,
    ):
        self.broker = broker
        self.entrada_queue = broker.entrada_queue
        self.status_queue = broker.status_queue
        self.initial_notifications_limit = initial_notifications_limit

        self.status_store = StatusStore()
        self.notification_store = NotificationStore()
        self.aggregator = QueueStatsAggregator(self.status_store, self.notification_store)
        self.broadcaster = EventBroadcaster(self._initial_data, queue_size=observer_queue_size)
        self.processor = NotificationProcessor(
            broker=broker,
            status_store=self.status_store,
            notification_store=self.notification_store,
            aggregator=self.aggregator,
            broadcaster=self.broadcaster,
            simulator=simulator,
            policy=policy,
            status_queue=self.status_queue,
            work_timeout_s=work_timeout_s,
        )
        self._consumer_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        broker: Optional[BrokerClient] = None,
        simulator: Optional[WorkSimulator] = None,
        policy: Optional[OutcomePolicy] = None,
    ) -> "NotificationPipeline":
        if broker is None:
            broker = BrokerClient(
                url=settings.AMQP_URL,
                entrada_queue=settings.ENTRADA_QUEUE,
                status_queue=settings.STATUS_QUEUE,
                prefetch_count=settings.PREFETCH_COUNT,
                connect_attempts=settings.CONNECT_ATTEMPTS,
                base_delay_s=settings.RECONNECT_BASE_DELAY_S,
                max_delay_s=settings.RECONNECT_MAX_DELAY_S,
            )
        return cls(
            broker=broker,
            simulator=simulator or RandomDelaySimulator(settings.WORK_MIN_DELAY_S, settings.WORK_MAX_DELAY_S),
            policy=policy or ProbabilityPolicy(settings.FAILURE_RATE),
            work_timeout_s=settings.WORK_TIMEOUT_S,
            observer_queue_size=settings.OBSERVER_QUEUE_SIZE,
            initial_notifications_limit=settings.INITIAL_NOTIFICATIONS_LIMIT,
        )

    # ==========================
    # LIFECYCLE
    # ==========================
    async def start(self) -> None:
        try:
            await self.broker.connect()
        except BrokerConnectionError as e:
            logger.warning(f"event=degraded_mode reason='{e}'")
            self.broadcaster.emit_system_event("system_start", "Services started without broker (degraded mode)")
            return

        self._consumer_task = asyncio.create_task(self._consume())
        self.broadcaster.emit_system_event("system_start", "Services started")

    async def _consume(self) -> None:
        try:
            await self.broker.consume(self.entrada_queue, self.processor.handle)
        except asyncio.CancelledError:
            logger.debug("event=consumer_cancelled")
            raise
        except Exception as e:
            logger.error(f"event=consumer_crashed error={e}")
            self.broadcaster.emit_system_event("consumer_stopped", str(e))

    async def stop(self) -> None:
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            await asyncio.gather(self._consumer_task, return_exceptions=True)
            self._consumer_task = None
        await self.broker.close()

    @property
    def broker_connected(self) -> bool:
        return self.broker.is_connected

    # ==========================
    # INTAKE
    # ==========================
    async def publish_direct(self, mensagem_id: str, content: str) -> DirectEnvelope:
        envelope = DirectEnvelope(mensagem_id=mensagem_id, conteudo_mensagem=content)
        # Raises DuplicateMessageError for ids already accepted or processed.
        self.status_store.reserve(mensagem_id)
        try:
            await self.broker.publish(self.entrada_queue, envelope)
        except ChannelUnavailableError:
            self.status_store.release(mensagem_id)
            raise
        except Exception as e:
            self.status_store.release(mensagem_id)
            raise ChannelUnavailableError(f"publish to {self.entrada_queue} failed: {e}") from e
        logger.info(f"mensagem_id={mensagem_id} event=accepted queue={self.entrada_queue}")
        self.broadcaster.emit_queue_stats(self.aggregator.compute())
        return envelope

    async def create_notification(self, data: NotificationCreate) -> NotificationRecord:
        # Refuse before creating a record that could never leave PENDING.
        if not self.broker.is_connected:
            raise ChannelUnavailableError("broker channel unavailable, notification not created")
        record = self.notification_store.create(data)
        try:
            await self.publish_notification(record.id)
        except Exception as e:
            # Never queued, so it would otherwise sit in PENDING forever.
            logger.error(f"mensagem_id={record.id} event=publish_failed action=mark_failed error={e}")
            self.notification_store.update_status(record.id, LifecycleStatus.FAILED)
            self.broadcaster.emit_status_update(record.id, LifecycleStatus.FAILED)
            self.broadcaster.emit_queue_stats(self.aggregator.compute())
            if isinstance(e, ChannelUnavailableError):
                raise
            raise ChannelUnavailableError(f"publish to {self.entrada_queue} failed: {e}") from e
        return record

    async def publish_notification(self, notification_id: str) -> None:
        record = self.notification_store.get(notification_id)
        if record is None:
            raise NotificationNotFoundError(notification_id)

        envelope = RecordEnvelope(
            id=record.id,
            recipient=record.recipient,
            subject=record.subject,
            message=record.message,
            priority=record.priority,
        )
        await self.broker.publish(self.entrada_queue, envelope)
        logger.info(f"mensagem_id={record.id} event=accepted queue={self.entrada_queue} priority={record.priority}")
        self.broadcaster.emit_queue_stats(self.aggregator.compute())

    # ==========================
    # QUERIES
    # ==========================
    def get_status(self, identifier: str) -> Optional[LifecycleStatus]:
        return self.status_store.get(identifier)

    def get_all_statuses(self) -> List[MessageStatus]:
        return [
            MessageStatus(mensagem_id=identifier, status=status)
            for identifier, status in self.status_store.all().items()
        ]

    def get_queue_stats(self) -> QueueStats:
        return self.aggregator.compute()

    def list_notifications(self) -> List[NotificationRecord]:
        return self.notification_store.list()

    def get_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        return self.notification_store.get(notification_id)

    # ==========================
    # OBSERVERS
    # ==========================
    def subscribe(self, client_id: str, transport: str = "websocket") -> Observer:
        return self.broadcaster.subscribe(client_id, transport)

    def unsubscribe(self, observer: Observer) -> None:
        self.broadcaster.unsubscribe(observer)

    def _initial_data(self) -> InitialDataEvent:
        return InitialDataEvent(
            notifications=self.notification_store.list()[: self.initial_notifications_limit],
            statuses=self.get_all_statuses(),
            queue_stats=self.aggregator.compute(),
        )
