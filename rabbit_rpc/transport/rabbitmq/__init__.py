"""
Модуль для работы с RabbitMQ.
Содержит устойчивые каналы, объявление очередей, отправку и получение сообщений.
"""

from .base import BrokerTransport, ChannelHandle, Delivery, QueueDeclaration
from .connection import ConnectionManager
from .channel import ManagedChannel
from .events import EventReporter, ServiceEvent
from .registry import ChannelRegistry
from .queue_manager import QueueManager, QueueRecord
from .producer import Publisher
from .consumer import InboundMessage, Subscriber
from .rabbit import Rabbit

__all__ = [
    'BrokerTransport',
    'ChannelHandle',
    'Delivery',
    'QueueDeclaration',
    'ConnectionManager',
    'ManagedChannel',
    'EventReporter',
    'ServiceEvent',
    'ChannelRegistry',
    'QueueManager',
    'QueueRecord',
    'Publisher',
    'InboundMessage',
    'Subscriber',
    'Rabbit',
]
