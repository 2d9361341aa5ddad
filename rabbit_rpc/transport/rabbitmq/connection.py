"""
Менеджер соединений с RabbitMQ.
Управляет установкой соединения, созданием каналов и переподключением при обрыве связи.
"""

import asyncio
import logging
from typing import Coroutine, List, Optional, Set

import aio_pika
from aio_pika.abc import AbstractConnection
from aio_pika.exceptions import AMQPConnectionError

from rabbit_rpc.config.rabbitmq_config import RabbitConfig
from rabbit_rpc.exceptions.rabbit_exceptions import ConnectivityError
from .base import BrokerTransport, Setup
from .channel import ManagedChannel

logger = logging.getLogger(__name__)


class ConnectionManager(BrokerTransport):
    """
    Менеджер для управления подключением к RabbitMQ.

    Обеспечивает:
    - Подключение к первому доступному хосту из списка
    - Создание управляемых каналов
    - Автоматическое переподключение при обрыве связи и повторное открытие каналов
    """

    def __init__(self, config: RabbitConfig):
        """
        Инициализация менеджера соединений.

        :param config: параметры подключения (хосты, учётные данные, heartbeat, задержка переподключения)
        """
        super().__init__()
        self.config = config
        self.url: Optional[str] = None
        self._connection: Optional[AbstractConnection] = None
        self._channels: List[ManagedChannel] = []
        self._reconnect_attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closing = False
        logger.info(f"ConnectionManager initialized with hosts: {config.hosts}")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    @property
    def connection(self) -> Optional[AbstractConnection]:
        return self._connection

    @property
    def reconnect_delay(self) -> float:
        return self.config.opts.reconnect_time_in_seconds

    async def connect(self) -> None:
        """
        Устанавливает соединение с RabbitMQ.

        :raises ConnectivityError: если ни один из хостов не доступен
        """
        if self.is_connected:
            logger.debug("Connection already established")
            return

        self._closing = False
        try:
            await self._connect_any()
        except (AMQPConnectionError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            self.emit("disconnect", e)
            raise ConnectivityError(f"Failed to connect to any of {self.config.safe_urls}: {e}") from e

    async def _connect_any(self) -> AbstractConnection:
        last_error: Optional[BaseException] = None
        timeout = self.config.opts.connection_timeout_in_seconds
        for url, safe_url in zip(self.config.urls, self.config.safe_urls):
            try:
                logger.info(f"Connecting to {safe_url}...")
                connection = await aio_pika.connect(url, timeout=timeout)
            except (AMQPConnectionError, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Connection to {safe_url} failed: {e}")
                last_error = e
                continue

            connection.close_callbacks.add(self._on_connection_closed)
            self._connection = connection
            self.url = safe_url
            self._reconnect_attempts = 0
            logger.info(f"Successfully connected to {safe_url}")
            self.emit("connect", safe_url)
            return connection

        assert last_error is not None, "At least one host should be configured"
        raise last_error

    def _on_connection_closed(self, sender, exc: Optional[BaseException] = None) -> None:
        if sender is not None and sender is not self._connection:
            return
        if self._closing:
            logger.info("Connection to RabbitMQ closed")
            return

        logger.warning(f"Connection to RabbitMQ lost: {exc}")
        self.emit("disconnect", exc)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = self._spawn(self.reconnect())
            self._reconnect_task.add_done_callback(self._on_reconnect_done)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()}")

    def _on_reconnect_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not self._closing:
            # reconnect gave up: channels stay closed until connect() is called again
            self.emit("disconnect", error)

    async def reconnect(self) -> AbstractConnection:
        """
        Попытка переподключения к RabbitMQ с задержкой и ограничением попыток.
        После успешного подключения заново открывает все живые каналы.

        :return: Объект подключения
        :raises ConnectivityError: Если исчерпаны все попытки переподключения
        """
        max_attempts = self.config.opts.max_reconnect_attempts
        while not self._closing and (max_attempts == 0 or self._reconnect_attempts < max_attempts):
            self._reconnect_attempts += 1
            logger.warning(
                f"Reconnection attempt {self._reconnect_attempts}"
                f"{f'/{max_attempts}' if max_attempts > 0 else ''}"
            )

            await asyncio.sleep(self.reconnect_delay)
            try:
                connection = await self._connect_any()
            except (AMQPConnectionError, OSError, asyncio.TimeoutError) as e:
                logger.error(f"Reconnection attempt {self._reconnect_attempts} failed: {e}")
                continue

            for channel in list(self._channels):
                await channel.open(connection)
            return connection

        if self._closing:
            raise ConnectivityError("Connection manager closed while reconnecting")
        logger.critical("Max reconnection attempts reached. Giving up.")
        raise ConnectivityError("Failed to reconnect to RabbitMQ")

    def create_channel(self, name: str, setup: Optional[Setup] = None, json: bool = True) -> ManagedChannel:
        """
        Создает управляемый канал. Канал открывается в фоне; подпишитесь
        на его события ``connect``/``error``/``close`` до первого await.
        """
        channel = ManagedChannel(self, name, setup=setup, json=json)
        self._channels.append(channel)
        if self.is_connected:
            self._spawn(channel.open(self._connection))
        logger.debug(f"Channel <{name}> created")
        return channel

    def forget(self, channel: ManagedChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    async def close(self) -> None:
        """
        Закрывает все каналы и соединение с RabbitMQ.
        """
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        for channel in list(self._channels):
            await channel.close()
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
            logger.info("Connection to RabbitMQ closed")
        self._connection = None
