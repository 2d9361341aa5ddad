"""
Точка входа для запуска RPC воркера.
Слушает очередь запросов и отвечает эхом на каждый запрос.

Использование:
    python -m rabbit_rpc.worker
"""

import asyncio
import sys
from typing import Any

from rabbit_rpc.config.app_config import settings
from rabbit_rpc.config.logging_config import get_logger, setup_logging
from rabbit_rpc.config.rabbitmq_config import get_rabbitmq_settings
from rabbit_rpc.exceptions.rabbit_exceptions import RabbitException
from rabbit_rpc.transport.rabbitmq import Rabbit
from rabbit_rpc.transport.rpc import RPCServer

logger = get_logger(__name__)


def echo(content: Any) -> dict:
    """Обработчик по умолчанию: возвращает запрос как есть."""
    return {"status": "success", "echo": content}


async def main():
    """
    Главная функция запуска воркера.
    Инициализирует все компоненты и запускает консьюмер.
    """
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR, settings.LOG_TO_FILE)
    rabbitmq_settings = get_rabbitmq_settings()
    rabbit = Rabbit(settings.SERVICE_NAME, rabbitmq_settings.to_rabbit_config())

    try:
        logger.info("=" * 60)
        logger.info("Starting RabbitMQ Worker")
        logger.info("=" * 60)

        logger.info(f"Connecting to RabbitMQ at {rabbitmq_settings.hosts}:{rabbitmq_settings.RABBITMQ_PORT}")
        await rabbit.init()

        server = RPCServer(f"{settings.SERVICE_NAME}.rpc", rabbit, rabbitmq_settings.RABBITMQ_RPC_QUEUE, echo)
        await server.init()

        logger.info("=" * 60)
        logger.info("RabbitMQ Worker is ready!")
        logger.info("Waiting for RPC requests... Press Ctrl+C to stop.")
        logger.info("=" * 60)

        # Блокируемся навсегда (пока не будет сигнала остановки)
        await asyncio.Event().wait()

    except RabbitException as e:
        logger.error(f"Fatal error in worker: {e}", exc_info=True)
        sys.exit(1)

    finally:
        await rabbit.close()
        logger.info("RabbitMQ Worker stopped.")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # Обрабатываем Ctrl+C на уровне asyncio.run()
        pass


if __name__ == "__main__":
    run()
