"""
Unit тесты для RPC клиента и сервера.
Клиент и сервер работают через разные клиенты Rabbit поверх одного in-memory брокера.

Запуск тестов:
    pytest rabbit_rpc/tests/test_rpc.py -v
"""

import asyncio
import logging

import pytest
import pytest_asyncio

from rabbit_rpc.exceptions.rabbit_exceptions import (
    PublishError,
    RPCClosedError,
    RPCTimeoutError,
    UnmatchedReplyError,
)
from rabbit_rpc.schemas.message_schemas import PublishOptions
from rabbit_rpc.tests.fakes import settle, wait_until
from rabbit_rpc.transport.rpc import RPCClient, RPCServer
from rabbit_rpc.worker import echo

logger = logging.getLogger(__name__)

REQUESTS = "rpc.requests"
REPLIES = "rpc.replies"


@pytest_asyncio.fixture(scope="function")
async def client(rabbit):
    rpc_client = RPCClient("client", rabbit, REQUESTS, REPLIES)
    await rpc_client.init()
    yield rpc_client
    await rpc_client.close()


@pytest_asyncio.fixture(scope="function")
async def server_rabbit(rabbit_factory):
    return await rabbit_factory("server")


class TestRPCClient:
    """
    Тесты RPCClient.
    """

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_declares_queues(self, client, broker):
        assert (broker.queues[REQUESTS].durable, broker.queues[REQUESTS].auto_delete) == (True, False)
        assert broker.queues[REPLIES].auto_delete is False, "Reply queue must survive reconnects"
        assert len(broker.queues[REPLIES].consumers) == 1
        assert await client.init() == next(iter(broker.queues[REPLIES].consumers)), "init() is idempotent"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_request_sets_correlation_and_reply_to(self, client, broker):
        task = asyncio.create_task(client.request({"method": "ping"}))
        await settle()

        request = broker.queues[REQUESTS].messages[0]
        assert request.body == b'{"method": "ping"}'
        assert request.reply_to == REPLIES
        assert request.correlation_id, "Request should carry a correlation id"
        assert client.pending == 1
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert client.pending == 0, "Cancelled request must leave the pending table"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_requests_resolve_out_of_order(self, client, server_rabbit):
        await server_rabbit.create_queue(REQUESTS)
        held = []

        async def responder(message):
            await message.ack()
            held.append(message)
            if len(held) == 2:
                for request in reversed(held):
                    await server_rabbit.send(
                        request.reply_to,
                        {"echo": request.content},
                        PublishOptions(correlation_id=request.correlation_id),
                    )

        await server_rabbit.subscribe(REQUESTS, responder)

        first, second = await asyncio.wait_for(
            asyncio.gather(client.request({"n": 1}), client.request({"n": 2})),
            timeout=1,
        )

        assert first == {"echo": {"n": 1}}, "Reply must be matched by correlation id, not by order"
        assert second == {"echo": {"n": 2}}
        assert client.pending == 0
        assert held[0].correlation_id != held[1].correlation_id
        assert {m.reply_to for m in held} == {REPLIES}
        logger.info("✓ Out of order replies test passed")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unmatched_reply_is_reported_once(self, client, rabbit, broker, recorder):
        await rabbit.send(REPLIES, {"late": True}, {"correlation_id": "nobody-waits"})
        await wait_until(lambda: recorder.errors(UnmatchedReplyError))
        await settle()

        errors = recorder.errors(UnmatchedReplyError)
        assert len(errors) == 1, "Unmatched reply should produce exactly one error event"
        assert errors[0].message == "Callback not present for nobody-waits"
        assert errors[0].data == {"correlation_id": "nobody-waits"}
        assert not broker.queues[REPLIES].messages, "Unmatched reply is acknowledged and dropped"
        assert client.pending == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_reply_is_reported(self, client, server_rabbit, recorder):
        await server_rabbit.create_queue(REQUESTS)

        async def responder(message):
            await message.ack()
            for _ in range(2):
                await server_rabbit.send(message.reply_to, "pong", {"correlation_id": message.correlation_id})

        await server_rabbit.subscribe(REQUESTS, responder)

        assert await asyncio.wait_for(client.request("ping"), timeout=1) == "pong"
        await wait_until(lambda: recorder.errors(UnmatchedReplyError))
        assert len(recorder.errors(UnmatchedReplyError)) == 1, "Second reply for the same id is unmatched"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_request_timeout(self, client):
        with pytest.raises(RPCTimeoutError):
            await client.request({"method": "slow"}, timeout=0.05)

        assert client.pending == 0, "Timed out request must leave the pending table"

    @pytest.mark.unit
    def test_timeout_error_is_a_timeout(self):
        assert issubclass(RPCTimeoutError, TimeoutError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_publish_failure_rejects_request(self, client, broker, recorder):
        broker.publish_error = RuntimeError("channel closed")

        with pytest.raises(PublishError):
            await client.request({"method": "ping"})

        assert client.pending == 0
        assert not recorder.errors(PublishError), "Request publish errors are raised, not reported"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close_fails_pending_requests(self, client, broker):
        task = asyncio.create_task(client.request({"method": "never"}))
        await settle()
        assert client.pending == 1

        await client.close()

        with pytest.raises(RPCClosedError):
            await task
        assert client.pending == 0
        assert not broker.queues[REPLIES].consumers, "Reply consumer should be cancelled"


class TestRPCServer:
    """
    Тесты RPCServer вместе с RPCClient.
    """

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_echo_round_trip(self, client, server_rabbit):
        server = RPCServer("server.rpc", server_rabbit, REQUESTS, echo)
        await server.init()

        result = await asyncio.wait_for(client.request({"message": "hi"}), timeout=1)

        assert result == {"status": "success", "echo": {"message": "hi"}}
        await server.close()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_async_handler(self, client, server_rabbit):
        async def handler(content):
            await asyncio.sleep(0)
            return content["a"] + content["b"]

        server = RPCServer("server.rpc", server_rabbit, REQUESTS, handler)
        await server.init()

        results = await asyncio.wait_for(
            asyncio.gather(*(client.request({"a": n, "b": n}) for n in range(5))),
            timeout=1,
        )
        assert results == [0, 2, 4, 6, 8]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handler_error_is_returned(self, client, server_rabbit, recorder):
        def handler(content):
            raise ValueError(f"bad request {content}")

        server = RPCServer("server.rpc", server_rabbit, REQUESTS, handler)
        await server.init()

        result = await asyncio.wait_for(client.request("x"), timeout=1)

        assert result == {"error": {"type": "ValueError", "message": "bad request x"}}
        errors = recorder.errors(ValueError)
        assert len(errors) == 1
        assert errors[0].service == "server.rpc"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_request_without_reply_to_is_acked(self, server_rabbit, broker):
        handled = []
        server = RPCServer("server.rpc", server_rabbit, REQUESTS, handled.append)
        await server.init()

        await server_rabbit.publish(REQUESTS, {"fire": "and forget"})
        await wait_until(lambda: handled)
        await settle()

        assert handled == [{"fire": "and forget"}]
        assert not broker.queues[REQUESTS].messages
        assert server_rabbit.transport.channel(REQUESTS).unacked == 0, "Request must be acknowledged"
