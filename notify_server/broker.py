"""
MODULE OVERVIEW:
The Broker Client: one connection and one channel to RabbitMQ, via aio-pika.

WHAT IS HAPPENING HERE:
`connect()` opens a robust connection (aio-pika re-establishes it and its
queues on its own after a drop), sets the prefetch window and declares both
durable queues. Declarations are cached, so declaring twice is a no-op.

Consumption is split in two halves so broker I/O never waits on business logic:
  1. A receive loop drains the queue iterator into a bounded in-process inbox.
  2. `PREFETCH_COUNT` workers take deliveries from the inbox, call the handler
     and ack or reject according to the Disposition it returns.
A handler that raises is treated exactly like one that returned REJECT: the
delivery is rejected without requeue and the loop keeps going.
"""
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import aio_pika
from aio_pika.exceptions import AMQPConnectionError
from loguru import logger
from pydantic import BaseModel

from notify_shared import codec
from notify_shared.client_utils import backoff_delay
from notify_shared.errors import BrokerConnectionError, ChannelUnavailableError


class Disposition(str, Enum):
    ACK = "ack"
    REJECT = "reject"


Handler = Callable[[bytes], Awaitable[Disposition]]


class BrokerClient:
    def __init__(
        self,
        url: str,
        entrada_queue: str,
        status_queue: str,
        prefetch_count: int = 1,
        connect_attempts: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 30.0,
        connect_fn: Callable[..., Awaitable[Any]] = aio_pika.connect_robust,
    ):
        if prefetch_count < 1:
            raise ValueError("prefetch_count must be at least 1")
        self.url = url
        self.entrada_queue = entrada_queue
        self.status_queue = status_queue
        self.prefetch_count = prefetch_count
        self.connect_attempts = max(1, connect_attempts)
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self._connect_fn = connect_fn

        self._connection = None
        self._channel = None
        self._queues: Dict[str, Any] = {}

    @property
    def is_connected(self) -> bool:
        return self._channel is not None and not self._channel.is_closed

    # ==========================
    # CONNECTION MANAGEMENT
    # ==========================
    async def connect(self) -> None:
        if self.is_connected:
            return

        last_error: Optional[BaseException] = None
        for attempt in range(self.connect_attempts):
            try:
                await self._open()
                logger.info(
                    f"event=broker_connected entrada={self.entrada_queue} "
                    f"status={self.status_queue} prefetch={self.prefetch_count}"
                )
                return
            except (AMQPConnectionError, OSError, asyncio.TimeoutError) as e:
                last_error = e
                await self._discard()
                if attempt + 1 < self.connect_attempts:
                    delay = backoff_delay(attempt, self.base_delay_s, self.max_delay_s)
                    logger.warning(
                        f"event=broker_connect_failed attempt={attempt + 1} "
                        f"delay={delay:.2f}s error={e}"
                    )
                    await asyncio.sleep(delay)

        raise BrokerConnectionError(
            f"could not connect to broker after {self.connect_attempts} attempts: {last_error}"
        ) from last_error

    async def _open(self) -> None:
        self._connection = await self._connect_fn(self.url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self.prefetch_count)
        await self.declare_queue(self.entrada_queue)
        await self.declare_queue(self.status_queue)

    async def declare_queue(self, name: str):
        if name in self._queues:
            return self._queues[name]
        if self._channel is None:
            raise ChannelUnavailableError(f"cannot declare queue {name}: no channel")
        queue = await self._channel.declare_queue(name, durable=True)
        self._queues[name] = queue
        return queue

    async def _discard(self) -> None:
        channel, connection = self._channel, self._connection
        self._channel = None
        self._connection = None
        self._queues.clear()

        for resource in (channel, connection):
            if resource is None or resource.is_closed:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"event=broker_close_error resource={type(resource).__name__} error={e}")

    async def close(self) -> None:
        """Closes the channel, then the connection. Safe to call at any time."""
        was_open = self._connection is not None
        await self._discard()
        if was_open:
            logger.info("event=broker_closed")

    # ==========================
    # PUBLISH
    # ==========================
    async def publish(self, queue_name: str, envelope: BaseModel) -> None:
        if not self.is_connected:
            raise ChannelUnavailableError(f"broker channel unavailable, cannot publish to {queue_name}")

        message = aio_pika.Message(
            body=codec.encode(envelope),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        await self._channel.default_exchange.publish(message, routing_key=queue_name)
        logger.debug(f"event=published queue={queue_name} bytes={len(message.body)}")

    # ==========================
    # CONSUME
    # ==========================
    async def consume(self, queue_name: str, handler: Handler) -> None:
        """Runs until cancelled, feeding every delivery on `queue_name` to `handler`."""
        if not self.is_connected:
            raise ChannelUnavailableError(f"broker channel unavailable, cannot consume {queue_name}")

        queue = await self.declare_queue(queue_name)
        inbox: asyncio.Queue = asyncio.Queue(maxsize=self.prefetch_count)
        workers = [
            asyncio.create_task(self._worker(inbox, handler))
            for _ in range(self.prefetch_count)
        ]
        logger.info(f"event=consumer_started queue={queue_name} workers={len(workers)}")

        try:
            async with queue.iterator() as deliveries:
                async for message in deliveries:
                    await inbox.put(message)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.info(f"event=consumer_stopped queue={queue_name}")

    async def _worker(self, inbox: asyncio.Queue, handler: Handler) -> None:
        while True:
            message = await inbox.get()
            try:
                await self._dispatch(message, handler)
            finally:
                inbox.task_done()

    async def _dispatch(self, message, handler: Handler) -> None:
        try:
            disposition = await handler(message.body)
        except Exception:
            logger.exception("event=handler_error action=reject requeue=false")
            disposition = Disposition.REJECT

        try:
            if disposition is Disposition.ACK:
                await message.ack()
            else:
                await message.reject(requeue=False)
        except Exception as e:
            # Channel went away mid-flight; the broker redelivers unacked messages.
            logger.warning(f"event=settle_failed disposition={disposition.value} error={e}")
