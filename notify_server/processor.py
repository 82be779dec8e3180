"""
MODULE OVERVIEW:
The Notification Processor: the per-message state machine.

WHAT IS HAPPENING HERE:
For every delivery from the entrada queue:
  1. Decode the body. Garbage is rejected without requeue.
  2. Move the identifier to PROCESSING and tell observers, before any work.
  3. Let the WorkSimulator do its thing, bounded by `work_timeout_s`.
  4. Ask the OutcomePolicy: COMPLETED or FAILED. Both are terminal.
  5. Record it, tell observers, publish one status message, ACK.
If anything from step 2 on raises (a broadcast included), the identifier is forced to FAILED (unless
it already reached a terminal state), a status message is published on a
best-effort basis and the delivery is REJECTed without requeue. Nothing is
left PROCESSING and nothing is silently retried.
"""
import asyncio

from loguru import logger

from notify_server.broker import BrokerClient, Disposition
from notify_server.broadcaster import EventBroadcaster
from notify_server.notification_store import NotificationStore
from notify_server.simulation import OutcomePolicy, WorkSimulator
from notify_server.stats import QueueStatsAggregator
from notify_server.status_store import StatusStore
from notify_shared import codec
from notify_shared.errors import DecodeError, InvalidTransitionError
from notify_shared.models import (
    EntradaEnvelope,
    LifecycleStatus,
    RecordEnvelope,
    StatusEnvelope,
)


class NotificationProcessor:
    def __init__(
        self,
        broker: BrokerClient,
        status_store: StatusStore,
        notification_store: NotificationStore,
        aggregator: QueueStatsAggregator,
        broadcaster: EventBroadcaster,
        simulator: WorkSimulator,
        policy: OutcomePolicy,
        status_queue: str,
        work_timeout_s: float = 30.0,
    ):
        self.broker = broker
        self.status_store = status_store
        self.notification_store = notification_store
        self.aggregator = aggregator
        self.broadcaster = broadcaster
        self.simulator = simulator
        self.policy = policy
        self.status_queue = status_queue
        self.work_timeout_s = work_timeout_s

    async def handle(self, body: bytes) -> Disposition:
        try:
            envelope = codec.decode_entrada(body)
        except DecodeError as e:
            logger.warning(f"event=decode_error action=reject reason='{e}'")
            return Disposition.REJECT

        identifier = envelope.tracking_id
        try:
            self._transition(envelope, LifecycleStatus.PROCESSING)
        except InvalidTransitionError as e:
            logger.warning(f"mensagem_id={identifier} event=duplicate_delivery action=reject reason='{e}'")
            return Disposition.REJECT
        except Exception:
            # PROCESSING may already be recorded; it must not stay that way.
            logger.exception(f"mensagem_id={identifier} event=processing_start_error action=reject")
            await self._fail(envelope)
            return Disposition.REJECT

        try:
            await asyncio.wait_for(self.simulator.run(envelope), timeout=self.work_timeout_s)
            if self.policy.succeeded(envelope):
                outcome = LifecycleStatus.COMPLETED
            else:
                outcome = LifecycleStatus.FAILED
            self._transition(envelope, outcome)
            await self._publish_status(identifier, outcome)
        except Exception:
            logger.exception(f"mensagem_id={identifier} event=processing_error action=reject")
            await self._fail(envelope)
            return Disposition.REJECT

        logger.info(f"mensagem_id={identifier} status={outcome.value} event=processed")
        return Disposition.ACK

    def _transition(self, envelope: EntradaEnvelope, status: LifecycleStatus) -> None:
        identifier = envelope.tracking_id
        self.status_store.set(identifier, status)

        if isinstance(envelope, RecordEnvelope):
            if self.notification_store.update_status(identifier, status) is None:
                logger.debug(f"mensagem_id={identifier} event=no_record")
            self.broadcaster.emit_status_update(identifier, status)
        else:
            self.broadcaster.emit_message_status_update(identifier, status)

        if status.is_terminal:
            self.broadcaster.emit_queue_stats(self.aggregator.compute())

    async def _publish_status(self, identifier: str, status: LifecycleStatus) -> None:
        await self.broker.publish(
            self.status_queue,
            StatusEnvelope(mensagem_id=identifier, status=status),
        )

    async def _fail(self, envelope: EntradaEnvelope) -> None:
        identifier = envelope.tracking_id
        status = self.status_store.get(identifier)

        if status is None or not status.is_terminal:
            status = LifecycleStatus.FAILED
            try:
                self._transition(envelope, status)
            except Exception:
                logger.exception(f"mensagem_id={identifier} event=force_failed_error")
                status = self.status_store.get(identifier) or status

        try:
            await self._publish_status(identifier, status)
        except Exception as e:
            logger.error(f"mensagem_id={identifier} status={status.value} event=status_publish_failed error={e}")
