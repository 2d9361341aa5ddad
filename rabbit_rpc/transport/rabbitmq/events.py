"""
Structured log/success/error events emitted by the messaging layer.

Every event is written to the ``logging`` module and handed to the registered
listeners, which is how applications (and tests) observe failures that are
reported rather than raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ServiceEvent:
    kind: str  # "log" | "success" | "error"
    service: str
    message: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None


EventListener = Callable[[ServiceEvent], None]


class EventReporter:
    """
    Sink for the events of one named service.

    Reporters created with ``child`` share the listener list of their parent,
    so a single listener sees the events of ``Rabbit`` and of every RPC
    component built on top of it.
    """

    def __init__(self, service: str, listeners: Optional[List[EventListener]] = None):
        self.service = service
        self._listeners: List[EventListener] = listeners if listeners is not None else []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def child(self, service: str) -> "EventReporter":
        return EventReporter(service, self._listeners)

    def log(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        logger.info(f"[{self.service}] {message}")
        self._emit(ServiceEvent("log", self.service, message, data))

    def success(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        logger.info(f"[{self.service}] {message}")
        self._emit(ServiceEvent("success", self.service, message, data))

    def error(self, err: BaseException, data: Optional[Dict[str, Any]] = None) -> None:
        logger.error(f"[{self.service}] {err}", exc_info=err)
        self._emit(ServiceEvent("error", self.service, str(err), data, err))

    def _emit(self, event: ServiceEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # a broken listener must not break the broker callbacks that emit
                logger.error(f"Event listener {listener!r} failed: {e}", exc_info=True)
