"""
Request/reply RPC over two plain queues.
"""

from .client import RPCClient
from .server import RPCServer

__all__ = ["RPCClient", "RPCServer"]
