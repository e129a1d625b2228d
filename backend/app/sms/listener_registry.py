"""
listener_registry.py — Token-scoped acknowledgment listeners.

The telephony stack delivers "sent" events to whatever is currently
registered for a token. The registry is injected wherever it is needed
so tests can substitute their own.

    register(token, handler)   arm a listener (at most one per token)
    unregister(token)          idempotent; returns whether one was removed
    deliver(token, code)       called by the event source; returns whether
                               a listener received the event
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Protocol

logger = logging.getLogger(__name__)

AckHandler = Callable[[int], None]


class ListenerRegistry(Protocol):
    """Capability to route acknowledgment events by correlation token."""

    def register(self, token: str, handler: AckHandler) -> None:
        ...

    def unregister(self, token: str) -> bool:
        ...

    def deliver(self, token: str, result_code: int) -> bool:
        ...


class InMemoryListenerRegistry:
    """Thread-safe process-local registry."""

    def __init__(self) -> None:
        self._handlers: Dict[str, AckHandler] = {}
        self._lock = threading.Lock()

    def register(self, token: str, handler: AckHandler) -> None:
        with self._lock:
            if token in self._handlers:
                raise ValueError(f"Listener already registered for token {token}")
            self._handlers[token] = handler
        logger.debug("Listener armed", extra={"correlation_token": token})

    def unregister(self, token: str) -> bool:
        with self._lock:
            removed = self._handlers.pop(token, None) is not None
        if removed:
            logger.debug("Listener released", extra={"correlation_token": token})
        return removed

    def deliver(self, token: str, result_code: int) -> bool:
        with self._lock:
            handler = self._handlers.get(token)
        if handler is None:
            logger.debug(
                "No listener for token %s (code %s); event dropped",
                token, result_code,
                extra={"correlation_token": token, "result_code": result_code},
            )
            return False
        # Handlers run outside the lock so they may unregister themselves.
        handler(result_code)
        return True

    def is_registered(self, token: str) -> bool:
        with self._lock:
            return token in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
