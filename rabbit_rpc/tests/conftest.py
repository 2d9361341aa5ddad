"""
Pytest конфигурация и общие фикстуры для тестов.
"""

import logging
from typing import AsyncGenerator, Callable, Awaitable

import pytest
import pytest_asyncio

from rabbit_rpc.config.logging_config import setup_logging
from rabbit_rpc.transport.rabbitmq import EventReporter, Rabbit
from rabbit_rpc.tests.fakes import EventRecorder, FakeBroker, FakeTransport

# Настраиваем логирование для тестов
setup_logging("DEBUG")
logger = logging.getLogger(__name__)

TEST_CONFIG = {"user": "guest", "password": "guest"}


@pytest.fixture
def broker() -> FakeBroker:
    """Общий in-memory брокер для всех клиентов одного теста."""
    return FakeBroker()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest_asyncio.fixture(scope="function")
async def rabbit_factory(broker: FakeBroker, recorder: EventRecorder) -> AsyncGenerator[Callable[[str], Awaitable[Rabbit]], None]:
    """
    Фабрика инициализированных клиентов Rabbit поверх общего брокера.
    Все созданные клиенты закрываются после теста.
    """
    created = []

    async def factory(name: str = "test") -> Rabbit:
        events = EventReporter(name)
        events.add_listener(recorder)
        rabbit = Rabbit(name, TEST_CONFIG, transport=FakeTransport(broker), events=events)
        await rabbit.init()
        created.append(rabbit)
        return rabbit

    yield factory

    for rabbit in created:
        await rabbit.close()
    logger.info(f"Closed {len(created)} rabbit client(s) after test")


@pytest_asyncio.fixture(scope="function")
async def rabbit(rabbit_factory) -> Rabbit:
    """Инициализированный клиент Rabbit на in-memory брокере."""
    return await rabbit_factory("test")


@pytest.fixture
def transport(rabbit: Rabbit) -> FakeTransport:
    return rabbit.transport
