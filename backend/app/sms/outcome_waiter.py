"""
outcome_waiter.py — Turn an out-of-band "sent" event into a return value.

═══════════════════════════════════════════════════════════════════════════
WAIT LIFECYCLE (one per send)
═══════════════════════════════════════════════════════════════════════════

    IDLE ──arm──▶ ARMED ──ack──────▶ RESOLVED   (Success / Failure)
                    │
                    ├──timeout──────▶ TIMED_OUT
                    ├──cancel───────▶ TIMED_OUT
                    └──submit raises─▶ RESOLVED (Failure)

    • The listener is registered before anything is submitted, so an
      ack that beats the submit call back is not lost.
    • The listener is released exactly once, on entry to a terminal state,
      whichever way the wait ends. The telephony is then told to drop any
      uncollected copy of the submission.
    • The first ack wins; duplicates hit a spent signal and are ignored.
    • Only the "sent" ack is awaited. Delivery receipts go to a separate
      token that nobody waits on.
    • A timeout is reported as TIMED_OUT, not as a failure: the carrier may
      have accepted the message while the ack broadcast stalled.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from backend.app.sms.listener_registry import ListenerRegistry
from backend.app.sms.models import (
    DELIVERED_TOKEN_PREFIX,
    Channel,
    CorrelationToken,
    Outcome,
    SendRequest,
)
from backend.app.sms.result_translator import ResultTranslator
from backend.app.sms.telephony import TelephonyPort

logger = logging.getLogger(__name__)

DEFAULT_ACK_TIMEOUT_SECONDS = 10.0

_CANCELLED = object()


class WaitState(str, Enum):
    IDLE      = "idle"
    ARMED     = "armed"
    RESOLVED  = "resolved"
    TIMED_OUT = "timed_out"


class OneShotSignal:
    """Single-write, many-read hand-off between threads."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._value: Any = None

    def set(self, value: Any) -> bool:
        """Store ``value`` if nothing has been stored yet."""
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def value(self) -> Any:
        return self._value


class AckWait:
    """State of one armed send."""

    def __init__(self, token: CorrelationToken) -> None:
        self.token = token
        self.signal = OneShotSignal()
        self.state = WaitState.IDLE
        self._lock = threading.Lock()

    def transition(self, new_state: WaitState) -> bool:
        with self._lock:
            if self.state in (WaitState.RESOLVED, WaitState.TIMED_OUT):
                return False
            self.state = new_state
            return True

    def on_ack(self, result_code: int) -> None:
        if not self.signal.set(result_code):
            logger.warning(
                "Duplicate ack ignored (code %s)", result_code,
                extra={"correlation_token": self.token.value, "result_code": result_code},
            )
            return
        logger.debug(
            "SMS SENT ack received with code %s", result_code,
            extra={"correlation_token": self.token.value, "result_code": result_code},
        )


class OutcomeWaiter:
    """
    Send-and-await dispatcher over a fire-and-forget telephony channel.

    Parameters
    ----------
    telephony : TelephonyPort
        Where messages are submitted.
    registry : ListenerRegistry
        Where the per-send ack listener is armed.
    translator : ResultTranslator
        Maps the ack's result code to an Outcome.
    default_timeout : float
        Seconds to wait when ``send_and_await`` gets no explicit timeout.
    """

    def __init__(
        self,
        telephony: TelephonyPort,
        registry: ListenerRegistry,
        translator: Optional[ResultTranslator] = None,
        *,
        default_timeout: float = DEFAULT_ACK_TIMEOUT_SECONDS,
    ) -> None:
        self._telephony = telephony
        self._registry = registry
        self._translator = translator or ResultTranslator()
        self.default_timeout = default_timeout
        self._pending: Dict[str, AckWait] = {}
        self._pending_lock = threading.Lock()

    # ── Public API ──

    def send_and_await(
        self,
        channel: Channel,
        request: SendRequest,
        timeout: Optional[float] = None,
        *,
        token: Optional[CorrelationToken] = None,
    ) -> Outcome:
        timeout = self.default_timeout if timeout is None else timeout
        wait = AckWait(token or CorrelationToken.new())
        log_extra = {
            "correlation_token": wait.token.value,
            "channel_id": channel.channel_id,
        }

        with self._armed(wait):
            started = time.perf_counter()
            try:
                self._submit(channel, request, wait.token)
            except Exception as exc:
                logger.error(
                    "Exception during SMS send: %s", exc,
                    exc_info=True, extra=log_extra,
                )
                wait.transition(WaitState.RESOLVED)
                return Outcome.failure(str(exc) or f"Exception: {type(exc).__name__}")

            logger.debug("Waiting for SMS result (timeout: %.1fs)", timeout, extra=log_extra)
            if not wait.signal.wait(timeout) or wait.signal.value is _CANCELLED:
                wait.transition(WaitState.TIMED_OUT)
                if wait.signal.value is _CANCELLED:
                    logger.info("SMS wait cancelled", extra=log_extra)
                    return Outcome.timed_out("Cancelled before acknowledgment")
                logger.warning(
                    "SMS send timed out after %.1fs; may have been sent but ack was blocked",
                    timeout, extra=log_extra,
                )
                return Outcome.timed_out()

            wait.transition(WaitState.RESOLVED)
            duration_ms = (time.perf_counter() - started) * 1000
            outcome = self._translator.translate(wait.signal.value)
            logger.info(
                "SMS %s in %.0fms", outcome.kind.value, duration_ms,
                extra={**log_extra, "duration_ms": duration_ms, "outcome": outcome.kind.value},
            )
            return outcome

    def cancel(self, token: str) -> bool:
        """End a pending wait early; it resolves as TimedOut."""
        with self._pending_lock:
            wait = self._pending.get(token)
        if wait is None:
            return False
        return wait.signal.set(_CANCELLED)

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    # ── Internals ──

    @contextmanager
    def _armed(self, wait: AckWait) -> Iterator[AckWait]:
        token = wait.token.value
        self._registry.register(token, wait.on_ack)
        wait.transition(WaitState.ARMED)
        with self._pending_lock:
            self._pending[token] = wait
        try:
            yield wait
        finally:
            with self._pending_lock:
                self._pending.pop(token, None)
            self._registry.unregister(token)
            try:
                self._telephony.release(token)
            except Exception as exc:
                logger.warning(
                    "Telephony release failed: %s", exc,
                    extra={"correlation_token": token},
                )

    def _submit(self, channel: Channel, request: SendRequest, token: CorrelationToken) -> None:
        segments = request.segments
        delivery_token = CorrelationToken.new(DELIVERED_TOKEN_PREFIX)
        if request.is_multipart:
            logger.debug(
                "Sending multipart SMS with %d parts", len(segments),
                extra={"correlation_token": token.value, "segment_count": len(segments)},
            )
        else:
            logger.debug("Sending single SMS", extra={"correlation_token": token.value})
        self._telephony.submit(
            channel,
            request.recipient,
            list(segments),
            token.value,
            delivery_token.value,
        )
