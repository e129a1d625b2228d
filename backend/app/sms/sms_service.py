"""
sms_service.py — The sendMessage operation exposed to callers.

This is the only entry point callers use. It:
    1. Validates arguments (BAD_ARGS, nothing touched)
    2. Checks SEND_SMS (NO_PERMISSION, nothing submitted)
    3. Selects a channel (never fails, degrades to the generic default)
    4. Submits and waits for the "sent" ack with a bounded timeout
    5. Returns exactly one SendResult; exceptions never escape

``send_message`` runs the blocking part on a dedicated thread pool so
the event loop serving callers is never blocked while a send waits for
its acknowledgment.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from backend.app.core.config import Settings, get_settings
from backend.app.sms.channel_selector import ChannelSelector
from backend.app.sms.listener_registry import InMemoryListenerRegistry, ListenerRegistry
from backend.app.sms.models import (
    SMS_SEGMENT_LIMIT,
    CallErrorCode,
    CorrelationToken,
    OutcomeKind,
    SendRequest,
    SendResult,
)
from backend.app.sms.outcome_waiter import DEFAULT_ACK_TIMEOUT_SECONDS, OutcomeWaiter
from backend.app.sms.permissions import Permission, PermissionChecker, StaticPermissions
from backend.app.sms.result_translator import ResultTranslator
from backend.app.sms.telephony import TelephonyPort, build_telephony

logger = logging.getLogger(__name__)


class SmsService:
    """
    Usage:
        service = SmsService(telephony, permissions, registry=registry)
        result = await service.send_message("+15551234567", "On my way")
        if result.ok:
            ...
    """

    def __init__(
        self,
        telephony: TelephonyPort,
        permissions: PermissionChecker,
        *,
        registry: Optional[ListenerRegistry] = None,
        translator: Optional[ResultTranslator] = None,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT_SECONDS,
        segment_limit: int = SMS_SEGMENT_LIMIT,
        max_workers: int = 4,
    ) -> None:
        self.telephony = telephony
        self.permissions = permissions
        self.registry = registry if registry is not None else InMemoryListenerRegistry()
        self.selector = ChannelSelector(telephony, permissions)
        self.waiter = OutcomeWaiter(
            telephony, self.registry, translator, default_timeout=ack_timeout,
        )
        self.segment_limit = segment_limit
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sms-send",
        )

    async def send_message(
        self,
        recipient: Optional[str],
        body: Optional[str],
        timeout: Optional[float] = None,
    ) -> SendResult:
        """Send off the event loop; resolves to exactly one SendResult."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                self._executor, self.send_message_sync, recipient, body, timeout,
            )
        except RuntimeError as exc:
            # executor already shut down
            logger.error("sendSms rejected: %s", exc)
            return SendResult.rejected(
                CallErrorCode.SEND_FAIL, "SMS service is shut down", recipient,
            )

    def send_message_sync(
        self,
        recipient: Optional[str],
        body: Optional[str],
        timeout: Optional[float] = None,
    ) -> SendResult:
        """Blocking variant; call from a worker thread, not the event loop."""
        if not recipient or not recipient.strip() or not body or not body.strip():
            logger.warning("sendSms rejected: phone or message missing")
            return SendResult.rejected(
                CallErrorCode.BAD_ARGS, "phone or message missing", recipient,
            )

        try:
            return self._send(recipient.strip(), body, timeout)
        except Exception as exc:
            logger.exception("Exception in sendSms: %s", exc)
            return SendResult.rejected(
                CallErrorCode.SEND_FAIL, str(exc) or "Unknown error", recipient,
            )

    def _send(self, recipient: str, body: str, timeout: Optional[float]) -> SendResult:
        logger.debug("sendSms called for: %s", recipient)
        if not self.permissions.has(Permission.SEND_SMS):
            logger.error("SMS permission not granted")
            return SendResult.rejected(
                CallErrorCode.NO_PERMISSION, "SEND_SMS permission not granted", recipient,
            )

        channel = self.selector.select()
        request = SendRequest(recipient, body, self.segment_limit)
        token = CorrelationToken.new()

        result = SendResult(
            outcome=self.waiter.send_and_await(channel, request, timeout, token=token),
            recipient=recipient,
            segment_count=len(request.segments),
            channel=channel,
            correlation_token=token.value,
        )
        result.completed_at = datetime.now(timezone.utc)

        if result.outcome.kind == OutcomeKind.FAILURE:
            result.error_code = CallErrorCode.SEND_FAIL
            logger.error("SMS failed to %s: %s", recipient, result.message)
        elif result.outcome.kind == OutcomeKind.TIMED_OUT:
            logger.warning("SMS to %s unconfirmed: %s", recipient, result.message)
        else:
            logger.info("SMS sent successfully to %s", recipient)
        return result

    def cancel(self, token: str) -> bool:
        return self.waiter.cancel(token)

    def status(self) -> Dict[str, Any]:
        return {
            "telephony_profile": getattr(self.telephony, "name", type(self.telephony).__name__),
            "pending_waits": self.waiter.pending_count,
            "ack_timeout_seconds": self.waiter.default_timeout,
            "segment_limit": self.segment_limit,
        }

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_sms_service(cfg: Settings) -> SmsService:
    """Wire the service for the configured environment profile."""
    registry = InMemoryListenerRegistry()
    telephony = build_telephony(cfg.TELEPHONY_PROFILE, registry, cfg)
    return SmsService(
        telephony,
        StaticPermissions(cfg.SMS_GRANTED_PERMISSIONS),
        registry=registry,
        translator=ResultTranslator(app_name=cfg.APP_NAME),
        ack_timeout=cfg.SMS_ACK_TIMEOUT_SECONDS,
        segment_limit=cfg.SMS_SEGMENT_LIMIT,
        max_workers=cfg.SMS_SEND_WORKERS,
    )


@lru_cache()
def get_sms_service() -> SmsService:
    """Process-wide service, built once at startup."""
    return build_sms_service(get_settings())
