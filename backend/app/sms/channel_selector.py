"""
channel_selector.py — Pick the SIM subscription a message goes out on.

Selection order:
    1. The designated default SMS subscription, if its id is valid.
       Active subscriptions are not enumerated in this case.
    2. The first active subscription, if READ_PHONE_STATE is held
       (dual-SIM devices with no default set).
    3. The generic default transport.

A step that raises (SecurityException-style PermissionError included)
is logged and skipped. ``select`` always returns a usable channel.
"""

from __future__ import annotations

import logging
from typing import Optional

from backend.app.sms.models import GENERIC_DEFAULT_CHANNEL, Channel, is_valid_channel_id
from backend.app.sms.permissions import Permission, PermissionChecker
from backend.app.sms.telephony import TelephonyPort

logger = logging.getLogger(__name__)


class ChannelSelector:

    def __init__(self, telephony: TelephonyPort, permissions: PermissionChecker) -> None:
        self._telephony = telephony
        self._permissions = permissions

    def select(self) -> Channel:
        for step in (self._designated_default, self._first_active):
            try:
                channel = step()
            except Exception as exc:
                logger.warning(
                    "Channel selection degraded: %s", exc,
                    extra={"outcome": type(exc).__name__},
                )
                continue
            if channel is not None:
                return channel
        return self._generic_default()

    def _designated_default(self) -> Optional[Channel]:
        default_id = self._telephony.get_default_channel_id()
        if not is_valid_channel_id(default_id):
            logger.debug("No valid default SMS subscription (%s)", default_id)
            return None
        channel = self._telephony.get_channel(default_id)
        logger.debug(
            "Using default SMS subscription %s", default_id,
            extra={"channel_id": default_id},
        )
        return channel

    def _first_active(self) -> Optional[Channel]:
        if not self._permissions.has(Permission.READ_PHONE_STATE):
            logger.debug("READ_PHONE_STATE not granted; skipping subscription lookup")
            return None
        active = self._telephony.list_active_channels()
        if not active:
            logger.warning("No active subscriptions found; falling back")
            return None
        chosen = active[0]
        logger.debug(
            "Using first active subscription %s", chosen.channel_id,
            extra={"channel_id": chosen.channel_id},
        )
        return chosen

    def _generic_default(self) -> Channel:
        try:
            return self._telephony.generic_default_channel()
        except Exception as exc:
            logger.warning("Generic default channel unavailable: %s", exc)
            return GENERIC_DEFAULT_CHANNEL
