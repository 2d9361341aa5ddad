"""
RPC клиент поверх двух обычных очередей.

Запросы уходят в очередь запросов с correlation_id и reply_to, ответы
приходят в очередь ответов и сопоставляются с ожидающими вызовами только по
correlation_id, поэтому параллельные запросы могут завершаться в любом порядке.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from rabbit_rpc.exceptions.rabbit_exceptions import RPCClosedError, RPCTimeoutError, UnmatchedReplyError
from rabbit_rpc.schemas.message_schemas import PublishOptions
from rabbit_rpc.transport.rabbitmq.consumer import InboundMessage
from rabbit_rpc.transport.rabbitmq.events import EventReporter
from rabbit_rpc.transport.rabbitmq.rabbit import Rabbit

logger = logging.getLogger(__name__)


class RPCClient:
    """
    Продюсер RPC запросов.

    Each request registers a future under a fresh correlation id; the reply
    consumer resolves and removes it exactly once. Replies are acknowledged
    unconditionally, a reply nobody waits for is reported and dropped.
    """

    def __init__(
        self,
        name: str,
        rabbit: Rabbit,
        request_queue: str,
        reply_queue: str,
        events: Optional[EventReporter] = None,
    ):
        """
        :param name: уникальное имя сервиса (попадает во все события)
        :param rabbit: инициализированный клиент RabbitMQ
        :param request_queue: очередь запросов
        :param reply_queue: очередь ответов этого клиента
        """
        self.name = name
        self.rabbit = rabbit
        self.request_queue = request_queue
        self.reply_queue = reply_queue
        self.events = events or rabbit.events.child(name)
        self._futures: Dict[str, asyncio.Future] = {}
        self._consumer_tag: Optional[str] = None

    @property
    def pending(self) -> int:
        """Количество запросов, ожидающих ответа."""
        return len(self._futures)

    async def init(self) -> str:
        """
        Объявляет очередь запросов (durable) и очередь ответов (не auto-delete,
        переживает переподключения) и подписывается на ответы.

        :return: consumer tag подписки на очередь ответов
        """
        if self._consumer_tag is not None:
            return self._consumer_tag

        await asyncio.gather(
            self.rabbit.create_queue(self.request_queue),
            self.rabbit.create_queue(self.reply_queue, auto_delete=False),
        )
        self._consumer_tag = await self.rabbit.subscribe(self.reply_queue, self._on_reply)
        self.events.log(
            f"RPC client ready: {self.request_queue} -> {self.reply_queue}",
            {"request_queue": self.request_queue, "reply_queue": self.reply_queue},
        )
        return self._consumer_tag

    async def request(self, message: Any, timeout: Optional[float] = None) -> Any:
        """
        Выполняет RPC запрос.

        :param message: тело запроса (сериализуется в JSON)
        :param timeout: таймаут ожидания ответа в секундах, None - ждать бесконечно
        :return: декодированное содержимое ответа
        :raises RPCTimeoutError: если ответ не получен в течение timeout
        :raises PublishError: если запрос не удалось отправить
        """
        correlation_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._futures[correlation_id] = future

        try:
            logger.debug(f"Sending RPC request. ID: {correlation_id}")
            await self.rabbit.publish(
                self.request_queue,
                message,
                PublishOptions(correlation_id=correlation_id, reply_to=self.reply_queue),
                handle_errors=False,
            )

            if timeout is None:
                return await future
            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                logger.error(f"RPC request timeout. ID: {correlation_id}")
                raise RPCTimeoutError(f"RPC call timeout after {timeout} seconds (correlation id {correlation_id})")
        finally:
            # no-op if the reply already removed it
            self._futures.pop(correlation_id, None)

    async def _on_reply(self, message: InboundMessage) -> None:
        await message.ack()

        correlation_id = message.correlation_id
        future = self._futures.pop(correlation_id, None) if correlation_id is not None else None
        if future is None:
            error = UnmatchedReplyError(f"Callback not present for {correlation_id}")
            self.events.error(error, {"correlation_id": correlation_id})
            return

        if not future.done():
            future.set_result(message.content)
        logger.debug(f"Received RPC response. ID: {correlation_id}")

    async def close(self) -> None:
        """
        Отписывается от очереди ответов и завершает ожидающие запросы с RPCClosedError.
        """
        if self._consumer_tag is not None:
            await self.rabbit.unsubscribe(self.reply_queue, self._consumer_tag)
            self._consumer_tag = None

        futures, self._futures = self._futures, {}
        for correlation_id, future in futures.items():
            if not future.done():
                future.set_exception(RPCClosedError(f"RPC client closed before reply {correlation_id} arrived"))
        self.events.log("RPC client closed", {"dropped_requests": len(futures)})
