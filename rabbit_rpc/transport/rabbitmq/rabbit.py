"""
Фасад поверх реестра каналов, очередей, продюсера и консьюмера.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from rabbit_rpc.config.rabbitmq_config import RabbitConfig
from rabbit_rpc.schemas.message_schemas import QueueOptions
from .base import BrokerTransport, ChannelHandle
from .connection import ConnectionManager
from .consumer import MessageCallback, Subscriber
from .events import EventReporter
from .producer import Publisher, PublishOptionsLike
from .queue_manager import QueueManager, QueueRecord
from .registry import ChannelRegistry

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global"


class Rabbit:
    """
    Клиент RabbitMQ с устойчивыми каналами.

    Пример::

        rabbit = Rabbit("billing", {"user": "guest", "password": "guest"})
        await rabbit.init()
        await rabbit.create_queue("invoices")
        await rabbit.subscribe("invoices", handle_invoice)
        await rabbit.publish("invoices", {"id": 1})
    """

    def __init__(
        self,
        name: str,
        config: Union[RabbitConfig, Dict[str, Any]],
        transport: Optional[BrokerTransport] = None,
        events: Optional[EventReporter] = None,
    ):
        """
        :param name: уникальное имя сервиса (попадает во все события)
        :param config: RabbitConfig или dict с теми же ключами
        :param transport: транспорт брокера; по умолчанию ConnectionManager на aio-pika
        :param events: приёмник событий; по умолчанию новый EventReporter(name)
        """
        self.name = name
        self.config = config if isinstance(config, RabbitConfig) else RabbitConfig.model_validate(config)
        self.events = events or EventReporter(name)
        self.transport = transport or ConnectionManager(self.config)

        self.registry = ChannelRegistry(self.transport, self.events)
        self.queue_manager = QueueManager(self.registry, self.events)
        self.publisher = Publisher(self.queue_manager, self.registry, self.events, GLOBAL_CHANNEL)
        self.subscriber = Subscriber(self.queue_manager, self.registry, self.events, GLOBAL_CHANNEL)
        self.channel: Optional[ChannelHandle] = None

    @property
    def queues(self) -> List[str]:
        return self.queue_manager.names

    def get_queue(self, name: str) -> QueueRecord:
        return self.queue_manager.get(name)

    async def init(self) -> "Rabbit":
        """
        Подключается к брокеру и открывает общий канал. Повторный вызов ничего не делает.

        :raises ConnectivityError: если брокер недоступен
        """
        if self.channel is not None:
            return self

        self.events.log("Connecting to", {"hosts": self.config.hosts, "port": self.config.port})
        await self.registry.connect()
        self.channel = await self.registry.open_channel(GLOBAL_CHANNEL, json=True)
        return self

    async def create_queue(self, name: str, options: Optional[QueueOptions] = None, **overrides: Any) -> ChannelHandle:
        return await self.queue_manager.create_queue(name, options, **overrides)

    async def publish(self, queue_name: str, message: Any, options: PublishOptionsLike = None, handle_errors: bool = True) -> None:
        await self.publisher.publish(queue_name, message, options, handle_errors)

    async def send(self, queue_name: str, message: Any, options: PublishOptionsLike = None, handle_errors: bool = True) -> None:
        await self.publisher.send(queue_name, message, options, handle_errors)

    async def subscribe(self, queue_name: str, callback: MessageCallback) -> str:
        return await self.subscriber.subscribe(queue_name, callback)

    async def unsubscribe(self, queue_name: str, consumer_tag: str) -> None:
        await self.subscriber.unsubscribe(queue_name, consumer_tag)

    async def get_message(self, queue_name: str) -> Any:
        return await self.subscriber.get_message(queue_name)

    async def close(self) -> None:
        """Закрывает все каналы и соединение."""
        await self.registry.close()
        self.channel = None

    async def __aenter__(self) -> "Rabbit":
        return await self.init()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
