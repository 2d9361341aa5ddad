"""
Подписка на очереди и разовое чтение сообщений.
"""

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from rabbit_rpc.exceptions.rabbit_exceptions import ChannelError, ConsumerNotFoundError, EmptyQueueError
from .base import ChannelHandle, Delivery, Setup
from .codec import decode_payload
from .events import EventReporter
from .queue_manager import QueueManager
from .registry import ChannelRegistry

logger = logging.getLogger(__name__)


class InboundMessage:
    """
    Входящее сообщение, переданное в callback подписчика.

    ``ack``/``nack`` settle the underlying delivery; only the first call has
    an effect, later calls are logged and ignored.
    """

    def __init__(self, delivery: Delivery, channel: ChannelHandle):
        self.content: Any = decode_payload(delivery.body)
        self.reply_to: Optional[str] = delivery.reply_to
        self.routing_key: str = delivery.routing_key
        self.correlation_id: Optional[str] = delivery.correlation_id
        self.consumer_tag: Optional[str] = delivery.consumer_tag
        self.headers: Dict[str, Any] = delivery.headers
        self.redelivered: bool = delivery.redelivered
        self.settled = False
        self._delivery = delivery
        self._channel = channel

    async def ack(self) -> None:
        if self._settle("ack"):
            await self._channel.ack(self._delivery)

    async def nack(self, requeue: bool = True) -> None:
        if self._settle("nack"):
            await self._channel.nack(self._delivery, requeue=requeue)

    def _settle(self, action: str) -> bool:
        if self.settled:
            logger.warning(f"Ignoring {action} of an already settled message (tag {self._delivery.delivery_tag})")
            return False
        self.settled = True
        return True

    def __repr__(self) -> str:
        return (
            f"InboundMessage(routing_key={self.routing_key!r}, correlation_id={self.correlation_id!r}, "
            f"reply_to={self.reply_to!r}, content={self.content!r})"
        )


MessageCallback = Callable[[InboundMessage], Union[Awaitable[Any], Any]]


@dataclass
class Subscription:
    queue_name: str
    consumer_tag: str
    callback: MessageCallback
    setup: Optional[Setup] = field(default=None, repr=False)
    active: bool = True


class Subscriber:
    """
    Консьюмер сообщений из очередей, созданных через QueueManager.

    The consume procedure is registered as a setup of the queue's channel, so
    it re-attaches after every reconnect under the same consumer tag. There is
    no implicit acknowledgement: with prefetch 1 the next message is not
    delivered until the callback acks or nacks the current one.
    """

    def __init__(self, queues: QueueManager, registry: ChannelRegistry, events: EventReporter, default_channel: str = "global"):
        self.queues = queues
        self.registry = registry
        self.events = events
        self.default_channel = default_channel
        self._subscriptions: Dict[Tuple[str, str], Subscription] = {}

    async def subscribe(self, queue_name: str, callback: MessageCallback) -> str:
        """
        Подписывает callback на очередь.

        :param queue_name: имя очереди, созданной в этом экземпляре
        :param callback: sync или async функция, получающая InboundMessage
        :return: consumer tag подписки (не меняется при переподключениях)
        :raises UnknownQueueError: если очередь не создавалась
        """
        record = self.queues.get(queue_name)
        subscription = Subscription(queue_name, f"{queue_name}.{uuid.uuid4().hex}", callback)

        async def consume_setup(channel: ChannelHandle) -> str:
            if channel.has_consumer(subscription.consumer_tag):
                return subscription.consumer_tag
            self.events.log(f"Subscribing to {queue_name}", {"queue_name": queue_name})
            return await channel.consume(
                queue_name,
                lambda delivery: self._dispatch(subscription, channel, delivery),
                consumer_tag=subscription.consumer_tag,
            )

        subscription.setup = consume_setup
        self._subscriptions[(queue_name, subscription.consumer_tag)] = subscription
        try:
            await record.channel.add_setup(consume_setup)
        except Exception:
            record.channel.remove_setup(consume_setup)
            del self._subscriptions[(queue_name, subscription.consumer_tag)]
            raise
        return subscription.consumer_tag

    async def _dispatch(self, subscription: Subscription, channel: ChannelHandle, delivery: Delivery) -> None:
        if not subscription.active:
            # unsubscribe already started: give the message back to the broker
            await channel.nack(delivery, requeue=True)
            return

        message: Optional[InboundMessage] = None
        try:
            message = InboundMessage(delivery, channel)
            result = subscription.callback(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.events.error(e, {
                "queue_name": subscription.queue_name,
                "consumer_tag": subscription.consumer_tag,
                "correlation_id": delivery.correlation_id,
            })
            if message is None:
                await channel.nack(delivery, requeue=False)
            elif not message.settled:
                await message.nack(requeue=False)

    async def unsubscribe(self, queue_name: str, consumer_tag: str) -> None:
        """
        Отменяет подписку.

        The consume setup is removed first so the subscription does not come
        back on reconnect. Deliveries dispatched after this call starts are
        requeued instead of reaching the callback.

        :raises UnknownQueueError: если очередь не создавалась
        :raises ConsumerNotFoundError: если тег не принадлежит активной подписке
        """
        record = self.queues.get(queue_name)
        subscription = self._subscriptions.pop((queue_name, consumer_tag), None)
        if subscription is None:
            raise ConsumerNotFoundError(f'No active consumer "{consumer_tag}" on queue "{queue_name}"')

        subscription.active = False
        record.channel.remove_setup(subscription.setup)
        if record.channel.has_consumer(consumer_tag):
            await record.channel.cancel(consumer_tag)
        self.events.log(f"Unsubscribed from {queue_name}", {"queue_name": queue_name, "consumer_tag": consumer_tag})

    async def get_message(self, queue_name: str) -> Any:
        """
        Забирает одно сообщение из очереди без подписки (no_ack).

        :return: декодированное содержимое сообщения
        :raises EmptyQueueError: если в очереди нет сообщений в момент вызова
        """
        channel = self.registry.get(self.default_channel)
        if channel is None:
            raise ChannelError(f"Default channel <{self.default_channel}> is not open, call init() first")

        delivery = await channel.get(queue_name, no_ack=True)
        if delivery is None:
            raise EmptyQueueError(f"No message on {queue_name}")
        return decode_payload(delivery.body)
