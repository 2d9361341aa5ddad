"""
Объявление очередей и учёт их каналов.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from rabbit_rpc.exceptions.rabbit_exceptions import DeclarationError, RabbitException, UnknownQueueError
from rabbit_rpc.schemas.message_schemas import QueueOptions
from .base import ChannelHandle
from .events import EventReporter
from .registry import ChannelRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueRecord:
    name: str
    channel: ChannelHandle
    options: QueueOptions


class QueueManager:
    """
    Owns the mapping from queue name to its dedicated channel.

    Each queue gets one channel whose setup sets prefetch to 1 and asserts the
    queue, so the queue is re-declared whenever that channel reconnects.
    """

    def __init__(self, registry: ChannelRegistry, events: EventReporter):
        self.registry = registry
        self.events = events
        self._queues: Dict[str, QueueRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __contains__(self, name: str) -> bool:
        return name in self._queues

    @property
    def names(self) -> List[str]:
        return list(self._queues)

    def get(self, name: str) -> QueueRecord:
        """
        :raises UnknownQueueError: если очередь не создавалась в этом экземпляре
        """
        record = self._queues.get(name)
        if record is None:
            raise UnknownQueueError(f'Queue "{name}" was not created in this instance')
        return record

    async def create_queue(self, name: str, options: Optional[QueueOptions] = None, **overrides: Any) -> ChannelHandle:
        """
        Создает очередь и её канал.

        :param name: имя очереди
        :param options: durable (default True), auto_delete (default False)
        :param overrides: отдельные опции поверх ``options`` (``durable=False`` и т.п.)
        :return: канал очереди после первого объявления
        :raises DeclarationError: если брокер отклонил объявление или опции
            расходятся с уже созданной очередью
        """
        opts = options or QueueOptions()
        if overrides:
            opts = QueueOptions(**{**opts.model_dump(), **overrides})

        async with self._locks[name]:
            record = self._queues.get(name)
            if record is not None:
                if record.options != opts:
                    error = DeclarationError(
                        f'Queue "{name}" already declared with {record.options.model_dump()}, '
                        f'requested {opts.model_dump()}'
                    )
                    self.events.error(error, {"queue_name": name})
                    raise error
                return record.channel

            channel = await self.registry.open_channel(name, setup=self._queue_setup(name, opts), json=True)
            self._queues[name] = QueueRecord(name, channel, opts)
            return channel

    def _queue_setup(self, name: str, opts: QueueOptions):
        async def setup(channel: ChannelHandle) -> ChannelHandle:
            await channel.prefetch(1)
            try:
                declaration = await channel.assert_queue(
                    name,
                    durable=opts.durable,
                    auto_delete=opts.auto_delete,
                )
            except RabbitException:
                raise
            except Exception as e:
                raise DeclarationError(f'Failed to assert queue "{name}": {e}') from e

            self.events.log(
                f'"{name}" -> created -> '
                f'{declaration.consumer_count} consumers & {declaration.message_count} messages',
                {
                    "queue_name": name,
                    "consumer_count": declaration.consumer_count,
                    "message_count": declaration.message_count,
                },
            )
            return channel

        return setup
