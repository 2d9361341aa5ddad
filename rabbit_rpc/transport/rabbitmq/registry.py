"""
Реестр каналов: владеет соединением и всеми именованными каналами.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from rabbit_rpc.exceptions.rabbit_exceptions import ChannelError, RabbitException
from .base import BrokerTransport, ChannelHandle, Delivery, Setup
from .events import EventReporter

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """
    Registry of named channels over one managed connection.

    Обеспечивает:
    - Подключение к брокеру и отчёт о connect/disconnect
    - Ленивое создание каналов с именем для диагностики
    - Перевод событий канала (opened, closed, error, dropped message) в события сервиса
    """

    def __init__(self, transport: BrokerTransport, events: EventReporter):
        self.transport = transport
        self.events = events
        self._channels: Dict[str, ChannelHandle] = {}
        self._connection_listeners_added = False

    @property
    def channels(self) -> List[ChannelHandle]:
        return list(self._channels.values())

    def get(self, name: str) -> Optional[ChannelHandle]:
        return self._channels.get(name)

    async def connect(self) -> BrokerTransport:
        """
        Устанавливает соединение через транспорт.

        :raises ConnectivityError: если соединение не установлено
        """
        if not self._connection_listeners_added:
            self.transport.on("connect", self._on_connect)
            self.transport.on("disconnect", self._on_disconnect)
            self._connection_listeners_added = True

        await self.transport.connect()
        return self.transport

    def _on_connect(self, url: str) -> None:
        self.events.success(f"Connected to {url}", {"url": url})

    def _on_disconnect(self, err: Optional[BaseException]) -> None:
        error = err or ChannelError("Disconnected from broker")
        self.events.error(error, {"url": getattr(self.transport, "url", None)})

    async def open_channel(self, name: str, setup: Optional[Setup] = None, json: bool = True) -> ChannelHandle:
        """
        Открывает канал и ждёт его первого открытия.

        ``setup`` runs on every (re)open of the channel and must be idempotent.

        :param name: имя канала (для диагностики)
        :param setup: coroutine function receiving the channel
        :param json: сериализовать сообщения в JSON
        :return: канал после первого успешного выполнения setup
        :raises ChannelError: если канал закрылся или упал до первого открытия
        """
        loop = asyncio.get_running_loop()
        opened: asyncio.Future = loop.create_future()
        channel = self.transport.create_channel(name, setup=setup, json=json)

        def on_connect() -> None:
            self.events.log(f"<{name}> channel :: opened", {"channel_name": name})
            if not opened.done():
                opened.set_result(channel)

        def on_close(err: Optional[BaseException] = None) -> None:
            if err is not None:
                self.events.error(err, {"channel_name": name})
            if not opened.done():
                opened.set_exception(self._open_failure(name, err, "closed before open"))

        def on_error(err: BaseException) -> None:
            self.events.error(err, {"channel_name": name})
            if not opened.done():
                opened.set_exception(self._open_failure(name, err, "failed to open"))

        def on_drop(delivery: Delivery) -> None:
            error = ChannelError(f"{name} channel :: dropped message")
            self.events.error(error, {"channel_name": name, "dropped_message": delivery})

        channel.on("connect", on_connect)
        channel.on("close", on_close)
        channel.on("error", on_error)
        channel.on("drop", on_drop)

        self._channels[name] = channel
        try:
            return await opened
        except Exception:
            if self._channels.get(name) is channel:
                del self._channels[name]
            await channel.close()
            raise

    @staticmethod
    def _open_failure(name: str, err: Optional[BaseException], reason: str) -> BaseException:
        if isinstance(err, RabbitException):
            return err
        error = ChannelError(f"<{name}> channel :: {reason}" + (f": {err}" if err else ""))
        error.__cause__ = err
        return error

    async def close_channel(self, name: str) -> None:
        channel = self._channels.pop(name, None)
        if channel is not None:
            await channel.close()

    async def close(self) -> None:
        """Закрывает все каналы, затем соединение."""
        for name in list(self._channels):
            await self.close_channel(name)
        await self.transport.close()
        self.events.log("Connection closed")
