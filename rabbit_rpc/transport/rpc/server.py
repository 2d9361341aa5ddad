"""
RPC сервер: слушает очередь запросов, вызывает обработчик и отправляет ответ в reply_to.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from rabbit_rpc.schemas.message_schemas import PublishOptions
from rabbit_rpc.transport.rabbitmq.consumer import InboundMessage
from rabbit_rpc.transport.rabbitmq.events import EventReporter
from rabbit_rpc.transport.rabbitmq.rabbit import Rabbit

logger = logging.getLogger(__name__)

RequestHandler = Callable[[Any], Union[Awaitable[Any], Any]]


class RPCServer:
    """
    Консьюмер для обработки RPC запросов.

    Получает сообщения из очереди запросов, передает их содержимое в
    обработчик и отправляет результат в очередь из ``reply_to`` с тем же
    correlation_id. Ошибка обработчика возвращается клиенту как
    ``{"error": {"type": ..., "message": ...}}``.
    """

    def __init__(
        self,
        name: str,
        rabbit: Rabbit,
        request_queue: str,
        handler: RequestHandler,
        events: Optional[EventReporter] = None,
    ):
        self.name = name
        self.rabbit = rabbit
        self.request_queue = request_queue
        self.handler = handler
        self.events = events or rabbit.events.child(name)
        self._consumer_tag: Optional[str] = None

    async def init(self) -> str:
        """
        Объявляет очередь запросов и начинает её слушать.

        :return: consumer tag
        """
        if self._consumer_tag is None:
            await self.rabbit.create_queue(self.request_queue)
            self._consumer_tag = await self.rabbit.subscribe(self.request_queue, self.on_message)
            self.events.log(f"Started consuming from queue: {self.request_queue}", {"request_queue": self.request_queue})
        return self._consumer_tag

    async def on_message(self, message: InboundMessage) -> None:
        """
        Callback для обработки каждого входящего запроса.
        """
        logger.info(f"Received RPC request. Correlation ID: {message.correlation_id}")
        try:
            result = self.handler(message.content)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Error processing message: {e}", exc_info=True)
            self.events.error(e, {"correlation_id": message.correlation_id, "request_queue": self.request_queue})
            result = {"error": {"type": type(e).__name__, "message": str(e)}}

        if message.reply_to:
            await self.rabbit.send(
                message.reply_to,
                result,
                PublishOptions(correlation_id=message.correlation_id),
            )
            logger.info(f"Response sent to {message.reply_to}. Correlation ID: {message.correlation_id}")
        else:
            logger.warning("No reply_to address specified. Response will not be sent.")

        await message.ack()

    async def close(self) -> None:
        if self._consumer_tag is not None:
            await self.rabbit.unsubscribe(self.request_queue, self._consumer_tag)
            self._consumer_tag = None
