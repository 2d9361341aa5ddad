"""
Отправка сообщений в очереди.
"""

import logging
from typing import Any, Dict, Union

from rabbit_rpc.exceptions.rabbit_exceptions import PublishError
from rabbit_rpc.schemas.message_schemas import PublishOptions
from .base import ChannelHandle
from .events import EventReporter
from .queue_manager import QueueManager
from .registry import ChannelRegistry

logger = logging.getLogger(__name__)

PublishOptionsLike = Union[PublishOptions, Dict[str, Any], None]


class Publisher:
    """
    Продюсер для отправки сообщений в именованные очереди.

    Publish failures are reported as error events and swallowed unless the
    caller passes ``handle_errors=False``.
    """

    def __init__(self, queues: QueueManager, registry: ChannelRegistry, events: EventReporter, default_channel: str = "global"):
        self.queues = queues
        self.registry = registry
        self.events = events
        self.default_channel = default_channel

    async def publish(
        self,
        queue_name: str,
        message: Any,
        options: PublishOptionsLike = None,
        handle_errors: bool = True,
    ) -> None:
        """
        Публикует сообщение в очередь, созданную в этом экземпляре.

        :param queue_name: имя очереди
        :param message: сообщение (сериализуется в JSON)
        :param options: correlation_id, reply_to, headers
        :param handle_errors: False - ошибка отправки пробрасывается как PublishError
        :raises UnknownQueueError: если очередь не создавалась через create_queue
        """
        record = self.queues.get(queue_name)
        await self._send(record.channel, queue_name, message, options, handle_errors)

    async def send(
        self,
        queue_name: str,
        message: Any,
        options: PublishOptionsLike = None,
        handle_errors: bool = True,
    ) -> None:
        """
        Публикует сообщение через общий канал, не проверяя существование очереди.

        :param queue_name: имя очереди
        :param message: сообщение (сериализуется в JSON)
        :param options: correlation_id, reply_to, headers
        :param handle_errors: False - ошибка отправки пробрасывается как PublishError
        """
        channel = self.registry.get(self.default_channel)
        if channel is None:
            error = PublishError(f"Default channel <{self.default_channel}> is not open, call init() first")
            self._fail(error, queue_name, message, options, handle_errors)
            return
        await self._send(channel, queue_name, message, options, handle_errors)

    async def _send(
        self,
        channel: ChannelHandle,
        queue_name: str,
        message: Any,
        options: PublishOptionsLike,
        handle_errors: bool,
    ) -> None:
        opts = options if isinstance(options, PublishOptions) else PublishOptions.model_validate(options or {})
        try:
            await channel.send_to_queue(
                queue_name,
                message,
                correlation_id=opts.correlation_id,
                reply_to=opts.reply_to,
                headers=opts.headers,
            )
        except PublishError as e:
            self._fail(e, queue_name, message, opts, handle_errors)
            return
        except Exception as e:
            error = PublishError(f'Failed to publish to "{queue_name}": {e}')
            error.__cause__ = e
            self._fail(error, queue_name, message, opts, handle_errors)
            return
        logger.debug(f'Message published to "{queue_name}" via <{channel.name}>')

    def _fail(
        self,
        error: PublishError,
        queue_name: str,
        message: Any,
        options: PublishOptionsLike,
        handle_errors: bool,
    ) -> None:
        if not handle_errors:
            raise error
        self.events.error(error, {
            "queue_name": queue_name,
            "message": message,
            "options": options,
        })
