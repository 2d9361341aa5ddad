"""
Exceptions raised by the RabbitMQ channel/queue layer and the RPC engine.
"""


class RabbitException(Exception):
    """Base exception for all broker operations."""
    pass


class ConnectivityError(RabbitException):
    """Raised when the connection to the broker cannot be established."""
    pass


class ChannelError(RabbitException):
    """Raised when a channel closes or fails before it was first opened."""
    pass


class DeclarationError(RabbitException):
    """Raised when a queue cannot be asserted with the requested options."""
    pass


class PublishError(RabbitException):
    """Raised when a message could not be sent to the broker."""
    pass


class EmptyQueueError(RabbitException):
    """Raised when a poll finds no message available on a queue."""
    pass


class UnknownQueueError(RabbitException):
    """Raised when an operation refers to a queue that was never created in this instance."""
    pass


class ConsumerNotFoundError(RabbitException):
    """Raised when a consumer tag does not belong to an active subscription."""
    pass


class UnmatchedReplyError(RabbitException):
    """Reported when a reply arrives for a correlation id nobody is waiting on."""
    pass


class RPCTimeoutError(RabbitException, TimeoutError):
    """Raised when an RPC request receives no reply within the given timeout."""
    pass


class RPCClosedError(RabbitException):
    """Raised on pending RPC requests when the client is closed."""
    pass
