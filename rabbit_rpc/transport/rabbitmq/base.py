"""
Граница с брокером (broker transport boundary).

The channel registry and everything built on it only talk to the classes
declared here. ``connection.ConnectionManager``/``channel.ManagedChannel`` are
the aio-pika implementation; tests plug in an in-memory broker instead.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .codec import encode_payload

logger = logging.getLogger(__name__)


class EventSource:
    """Minimal synchronous event emitter used by connections and channels."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Callable[..., Any]) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)


@dataclass
class QueueDeclaration:
    queue: str
    consumer_count: int
    message_count: int


@dataclass
class Delivery:
    """A message handed over by the broker, before payload decoding."""
    body: bytes
    routing_key: str = ""
    correlation_id: Optional[str] = None
    reply_to: Optional[str] = None
    headers: Dict[str, Any] = field(default_factory=dict)
    delivery_tag: Optional[int] = None
    consumer_tag: Optional[str] = None
    redelivered: bool = False
    raw: Any = None  # transport specific message object


Setup = Callable[["ChannelHandle"], Awaitable[Any]]
DeliveryHandler = Callable[[Delivery], Awaitable[None]]


class ChannelHandle(EventSource, ABC):
    """
    Долгоживущий логический канал.

    The handle keeps its identity while the transport swaps the underlying
    channel after a reconnect. Every time a new underlying channel is opened
    all registered setups run again, in registration order, so each setup
    must be idempotent.

    Events:
    - ``connect`` - setups completed on a freshly opened channel
    - ``close`` (exc or None) - underlying channel closed
    - ``error`` (exc) - opening the channel or one of its setups failed
    - ``drop`` (Delivery) - the broker returned a message as unroutable
    """

    def __init__(self, name: str, setup: Optional[Setup] = None, json: bool = True):
        super().__init__()
        self.name = name
        self.json = json
        self.is_open = False
        self._setups: List[Setup] = [setup] if setup is not None else []
        # consumer tag -> queue name, for the current underlying channel only
        self._consumers: Dict[str, str] = {}

    @property
    def consumer_tags(self) -> List[str]:
        return list(self._consumers)

    def has_consumer(self, consumer_tag: str) -> bool:
        return consumer_tag in self._consumers

    async def add_setup(self, setup: Setup) -> Any:
        """
        Регистрирует setup и сразу выполняет его, если канал открыт.

        :return: результат setup, либо None если канал сейчас закрыт
        """
        self._setups.append(setup)
        if self.is_open:
            return await setup(self)
        return None

    def remove_setup(self, setup: Setup) -> None:
        if setup in self._setups:
            self._setups.remove(setup)

    async def run_setups(self) -> None:
        for setup in list(self._setups):
            await setup(self)

    async def _initialize(self) -> bool:
        """Replays all setups on a new underlying channel and emits ``connect``."""
        self.is_open = False
        self._consumers.clear()
        try:
            await self.run_setups()
        except Exception as e:
            logger.debug(f"<{self.name}> channel setup failed: {e}")
            self.emit("error", e)
            return False
        self.is_open = True
        self.emit("connect")
        return True

    async def consume(self, queue: str, handler: DeliveryHandler, consumer_tag: Optional[str] = None) -> str:
        tag = await self._consume(queue, handler, consumer_tag)
        self._consumers[tag] = queue
        return tag

    async def cancel(self, consumer_tag: str) -> None:
        queue = self._consumers.get(consumer_tag)
        if queue is None:
            return
        await self._cancel(queue, consumer_tag)
        self._consumers.pop(consumer_tag, None)

    async def send_to_queue(
        self,
        queue: str,
        content: Any,
        *,
        correlation_id: Optional[str] = None,
        reply_to: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        body = encode_payload(content) if self.json else content
        await self._publish(
            queue,
            body,
            correlation_id=correlation_id,
            reply_to=reply_to,
            headers=headers or {},
        )

    @abstractmethod
    async def assert_queue(self, name: str, *, durable: bool, auto_delete: bool) -> QueueDeclaration:
        ...

    @abstractmethod
    async def prefetch(self, count: int) -> None:
        ...

    @abstractmethod
    async def _consume(self, queue: str, handler: DeliveryHandler, consumer_tag: Optional[str]) -> str:
        ...

    @abstractmethod
    async def _cancel(self, queue: str, consumer_tag: str) -> None:
        ...

    @abstractmethod
    async def _publish(
        self,
        queue: str,
        body: bytes,
        *,
        correlation_id: Optional[str],
        reply_to: Optional[str],
        headers: Dict[str, Any],
    ) -> None:
        ...

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        ...

    @abstractmethod
    async def nack(self, delivery: Delivery, requeue: bool = True) -> None:
        ...

    @abstractmethod
    async def get(self, queue: str, *, no_ack: bool = True) -> Optional[Delivery]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class BrokerTransport(EventSource, ABC):
    """
    Физическое соединение с брокером.

    Owns reconnection: after a reconnect every channel it created and that
    is not closed is re-opened, which replays the channel's setups.

    Events: ``connect`` (url), ``disconnect`` (exc or None).
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    def create_channel(self, name: str, setup: Optional[Setup] = None, json: bool = True) -> ChannelHandle:
        """Creates a channel handle; opening happens in the background."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
