"""
Resilient RabbitMQ queues and request/reply RPC on top of aio-pika.
"""

from rabbit_rpc.config.rabbitmq_config import ConnectionOptions, RabbitConfig
from rabbit_rpc.schemas.message_schemas import PublishOptions, QueueOptions
from rabbit_rpc.transport.rabbitmq import EventReporter, InboundMessage, Rabbit, ServiceEvent
from rabbit_rpc.transport.rpc import RPCClient, RPCServer

__version__ = "0.1.0"

__all__ = [
    "ConnectionOptions",
    "RabbitConfig",
    "PublishOptions",
    "QueueOptions",
    "EventReporter",
    "InboundMessage",
    "Rabbit",
    "ServiceEvent",
    "RPCClient",
    "RPCServer",
]
