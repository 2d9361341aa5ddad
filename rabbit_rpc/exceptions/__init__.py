from .rabbit_exceptions import (
    RabbitException,
    ConnectivityError,
    ChannelError,
    DeclarationError,
    PublishError,
    EmptyQueueError,
    UnknownQueueError,
    ConsumerNotFoundError,
    UnmatchedReplyError,
    RPCTimeoutError,
    RPCClosedError,
)

__all__ = [
    'RabbitException',
    'ConnectivityError',
    'ChannelError',
    'DeclarationError',
    'PublishError',
    'EmptyQueueError',
    'UnknownQueueError',
    'ConsumerNotFoundError',
    'UnmatchedReplyError',
    'RPCTimeoutError',
    'RPCClosedError',
]
