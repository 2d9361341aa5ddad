"""
Управляемый канал поверх aio-pika.

Wraps a plain (non-robust) aio-pika channel. Recovery is driven by
``ConnectionManager`` and by the channel itself: a replacement channel is
opened and every registered setup runs again on it.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from aio_pika import Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue

from rabbit_rpc.exceptions.rabbit_exceptions import ChannelError
from .base import ChannelHandle, Delivery, DeliveryHandler, QueueDeclaration, Setup

if TYPE_CHECKING:
    from .connection import ConnectionManager

logger = logging.getLogger(__name__)


class ManagedChannel(ChannelHandle):

    def __init__(
        self,
        connection_manager: "ConnectionManager",
        name: str,
        setup: Optional[Setup] = None,
        json: bool = True,
    ):
        super().__init__(name, setup=setup, json=json)
        self.connection_manager = connection_manager
        self._channel: Optional[AbstractChannel] = None
        self._queues: Dict[str, AbstractQueue] = {}
        self._lock = asyncio.Lock()
        self._closing = False
        self._initializing = False
        self._reopen_task: Optional[asyncio.Task] = None

    async def open(self, connection: AbstractConnection) -> bool:
        """
        Открывает новый канал на соединении и повторяет все setup.

        :return: True если канал открыт и все setup выполнены
        """
        async with self._lock:
            if self._closing:
                return False
            if self.is_open and self._channel is not None and not self._channel.is_closed:
                return True

            self._initializing = True
            try:
                try:
                    channel = await connection.channel(publisher_confirms=True, on_return_raises=False)
                except Exception as e:
                    logger.error(f"<{self.name}> channel :: failed to open: {e}")
                    self.emit("error", e)
                    return False

                channel.close_callbacks.add(self._on_channel_closed)
                channel.return_callbacks.add(self._on_message_returned)
                self._channel = channel
                self._queues.clear()
                return await self._initialize()
            finally:
                self._initializing = False

    def _on_channel_closed(self, sender, exc: Optional[BaseException] = None) -> None:
        if sender is not None and sender is not self._channel:
            return
        self.is_open = False
        if self._closing:
            self.emit("close", None)
            return
        # a failing setup reports itself through "error"
        if self._initializing:
            return

        self.emit("close", exc)
        if self.connection_manager.is_connected:
            self._schedule_reopen()

    def _schedule_reopen(self) -> None:
        if self._reopen_task is None or self._reopen_task.done():
            self._reopen_task = asyncio.get_running_loop().create_task(self._reopen_later())

    async def _reopen_later(self) -> None:
        await asyncio.sleep(self.connection_manager.reconnect_delay)
        connection = self.connection_manager.connection
        if connection is not None and self.connection_manager.is_connected:
            logger.warning(f"<{self.name}> channel :: reopening")
            await self.open(connection)

    def _on_message_returned(self, sender, message: AbstractIncomingMessage) -> None:
        self.emit("drop", self._to_delivery(message))

    def _require_channel(self) -> AbstractChannel:
        if self._channel is None or self._channel.is_closed:
            raise ChannelError(f"<{self.name}> channel is not open")
        return self._channel

    async def _get_queue(self, name: str) -> AbstractQueue:
        queue = self._queues.get(name)
        if queue is None:
            queue = await self._require_channel().get_queue(name, ensure=False)
            self._queues[name] = queue
        return queue

    @staticmethod
    def _to_delivery(message: AbstractIncomingMessage) -> Delivery:
        return Delivery(
            body=message.body,
            routing_key=message.routing_key or "",
            correlation_id=message.correlation_id,
            reply_to=message.reply_to,
            headers=dict(message.headers or {}),
            delivery_tag=message.delivery_tag,
            consumer_tag=message.consumer_tag,
            redelivered=bool(message.redelivered),
            raw=message,
        )

    async def assert_queue(self, name: str, *, durable: bool, auto_delete: bool) -> QueueDeclaration:
        queue = await self._require_channel().declare_queue(name, durable=durable, auto_delete=auto_delete)
        self._queues[name] = queue
        result = queue.declaration_result
        return QueueDeclaration(name, result.consumer_count or 0, result.message_count or 0)

    async def prefetch(self, count: int) -> None:
        await self._require_channel().set_qos(prefetch_count=count)

    async def _consume(self, queue: str, handler: DeliveryHandler, consumer_tag: Optional[str]) -> str:
        amqp_queue = await self._get_queue(queue)

        async def on_message(message: AbstractIncomingMessage) -> None:
            await handler(self._to_delivery(message))

        return await amqp_queue.consume(on_message, no_ack=False, consumer_tag=consumer_tag)

    async def _cancel(self, queue: str, consumer_tag: str) -> None:
        amqp_queue = await self._get_queue(queue)
        await amqp_queue.cancel(consumer_tag)

    async def _publish(
        self,
        queue: str,
        body: bytes,
        *,
        correlation_id: Optional[str],
        reply_to: Optional[str],
        headers: Dict[str, Any],
    ) -> None:
        message = Message(
            body=body,
            content_type="application/json" if self.json else None,
            correlation_id=correlation_id,
            reply_to=reply_to,
            headers=headers or None,
        )
        # mandatory: unroutable messages come back through return_callbacks as "drop"
        await self._require_channel().default_exchange.publish(message, routing_key=queue, mandatory=True)

    async def ack(self, delivery: Delivery) -> None:
        await delivery.raw.ack()

    async def nack(self, delivery: Delivery, requeue: bool = True) -> None:
        await delivery.raw.nack(requeue=requeue)

    async def get(self, queue: str, *, no_ack: bool = True) -> Optional[Delivery]:
        amqp_queue = await self._get_queue(queue)
        message = await amqp_queue.get(no_ack=no_ack, fail=False)
        if message is None:
            return None
        return self._to_delivery(message)

    async def close(self) -> None:
        self._closing = True
        if self._reopen_task is not None and not self._reopen_task.done():
            self._reopen_task.cancel()
        self.connection_manager.forget(self)
        if self._channel is not None and not self._channel.is_closed:
            await self._channel.close()
        self.is_open = False
        logger.debug(f"<{self.name}> channel :: closed")
