"""
telephony.py — Telephony capability and its environment profiles.

The carrier stack is opaque: "submit a message, eventually receive an
event". Each environment gets one implementation of ``TelephonyPort``,
chosen once at startup by ``build_telephony`` from TELEPHONY_PROFILE,
so call sites never branch on the runtime environment.

═══════════════════════════════════════════════════════════════════════════
PROFILES
═══════════════════════════════════════════════════════════════════════════

    Profile      Acknowledgment source          Use
    ──────────   ────────────────────────────   ─────────────────────────
    simulation   timer thread, configured code  local dev, demos, tests
    webhook      POST /api/v1/sms/acks          external SMS gateway that
                                                reports results out-of-band

Both fire acknowledgments through the ListenerRegistry, exactly as the
platform broadcasts them to a registered receiver.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence

from backend.app.core.config import Settings
from backend.app.core.errors import SubmissionError
from backend.app.sms.listener_registry import ListenerRegistry
from backend.app.sms.models import (
    GENERIC_DEFAULT_CHANNEL,
    INVALID_CHANNEL_ID,
    Channel,
    is_valid_channel_id,
)
from backend.app.sms.result_translator import ResultCode

logger = logging.getLogger(__name__)


class TelephonyPort(Protocol):
    """Outbound dependency surface of the SMS core."""

    name: str

    def list_active_channels(self) -> List[Channel]:
        """Active subscriptions in platform order."""
        ...

    def get_default_channel_id(self) -> Optional[int]:
        """Designated default SMS subscription id, or an invalid id."""
        ...

    def get_channel(self, channel_id: int) -> Channel:
        ...

    def generic_default_channel(self) -> Channel:
        ...

    def submit(
        self,
        channel: Channel,
        recipient: str,
        segments: Sequence[str],
        ack_token: str,
        delivery_token: Optional[str] = None,
    ) -> None:
        """Hand the message to the carrier. Returns before the ack arrives."""
        ...

    def release(self, ack_token: str) -> None:
        """Forget the submission behind ``ack_token``; its wait has ended."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Channel configuration
# ═══════════════════════════════════════════════════════════════════════════

def parse_channels(specs: Sequence[str], default_channel_id: int = INVALID_CHANNEL_ID) -> List[Channel]:
    """
    Parse ``"<id>:<label>"`` entries into channels.

    A bare ``"<id>"`` gets the label ``"SIM <id>"``.
    """
    channels: List[Channel] = []
    for spec in specs:
        raw_id, _, label = spec.partition(":")
        try:
            channel_id = int(raw_id.strip())
        except ValueError:
            raise ValueError(f"Invalid channel spec '{spec}': id must be an integer")
        channels.append(Channel(
            channel_id=channel_id,
            label=label.strip() or f"SIM {channel_id}",
            is_default=channel_id == default_channel_id,
        ))
    return channels


@dataclass
class Submission:
    """One message handed to the carrier."""
    channel: Channel
    recipient: str
    segments: List[str]
    ack_token: str
    delivery_token: Optional[str] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_multipart(self) -> bool:
        return len(self.segments) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.to_dict(),
            "recipient": self.recipient,
            "segments": list(self.segments),
            "segment_count": len(self.segments),
            "multipart": self.is_multipart,
            "ack_token": self.ack_token,
            "delivery_token": self.delivery_token,
            "submitted_at": self.submitted_at.isoformat(),
        }


class _ConfiguredChannels:
    """Channel lookups shared by the profiles."""

    def __init__(self, channels: Sequence[Channel], default_channel_id: int) -> None:
        self._channels = list(channels)
        self._default_channel_id = default_channel_id

    def list_active_channels(self) -> List[Channel]:
        return list(self._channels)

    def get_default_channel_id(self) -> Optional[int]:
        return self._default_channel_id

    def get_channel(self, channel_id: int) -> Channel:
        for channel in self._channels:
            if channel.channel_id == channel_id:
                return channel
        if not is_valid_channel_id(channel_id):
            return GENERIC_DEFAULT_CHANNEL
        return Channel(
            channel_id=channel_id,
            label=f"SIM {channel_id}",
            is_default=channel_id == self._default_channel_id,
        )

    def generic_default_channel(self) -> Channel:
        return GENERIC_DEFAULT_CHANNEL

    def release(self, ack_token: str) -> None:
        pass

    def _check_submission(self, recipient: str, segments: Sequence[str]) -> None:
        if not segments or not any(segments):
            raise SubmissionError("Null PDU: nothing to send", recipient=recipient)


# ═══════════════════════════════════════════════════════════════════════════
# Simulation profile
# ═══════════════════════════════════════════════════════════════════════════

class SimulatedTelephony(_ConfiguredChannels):
    """
    Self-acknowledging telephony for development.

    Every submission schedules a "sent" event after ``ack_delay_seconds``
    carrying ``result_code``; with ``drop_acks`` the event never fires,
    reproducing devices whose ack broadcast is swallowed. A delivery
    receipt is fired at the delivery token too; nothing waits on it.
    Only the last ``history_size`` submissions are kept for inspection.
    """

    name = "simulation"

    def __init__(
        self,
        registry: ListenerRegistry,
        channels: Sequence[Channel] = (),
        *,
        default_channel_id: int = INVALID_CHANNEL_ID,
        result_code: int = ResultCode.OK,
        ack_delay_seconds: float = 0.2,
        drop_acks: bool = False,
        history_size: int = 100,
    ) -> None:
        super().__init__(channels, default_channel_id)
        self._registry = registry
        self.result_code = result_code
        self.ack_delay_seconds = ack_delay_seconds
        self.drop_acks = drop_acks
        self.submissions: Deque[Submission] = deque(maxlen=history_size)

    def submit(
        self,
        channel: Channel,
        recipient: str,
        segments: Sequence[str],
        ack_token: str,
        delivery_token: Optional[str] = None,
    ) -> None:
        self._check_submission(recipient, segments)
        submission = Submission(channel, recipient, list(segments), ack_token, delivery_token)
        self.submissions.append(submission)

        logger.info(
            "[SIM] %s SMS → %s via %s (%d part%s)",
            "Multipart" if submission.is_multipart else "Single",
            recipient, channel.label, len(segments),
            "" if len(segments) == 1 else "s",
            extra={
                "correlation_token": ack_token,
                "channel_id": channel.channel_id,
                "segment_count": len(segments),
            },
        )

        if self.drop_acks:
            logger.warning("[SIM] Dropping ack for %s", ack_token)
            return

        self._schedule(self._registry.deliver, ack_token, int(self.result_code))
        if delivery_token and self.result_code == ResultCode.OK:
            self._schedule(self._registry.deliver, delivery_token, int(ResultCode.OK))

    def _schedule(self, fn: Callable[[str, int], bool], token: str, code: int) -> None:
        timer = threading.Timer(self.ack_delay_seconds, fn, args=(token, code))
        timer.daemon = True
        timer.start()


# ═══════════════════════════════════════════════════════════════════════════
# Webhook profile
# ═══════════════════════════════════════════════════════════════════════════

class WebhookTelephony(_ConfiguredChannels):
    """
    Submissions wait in a bounded outbox until an external gateway drains
    them; the gateway reports each result to the acks endpoint.

    A submission leaves the outbox when it is drained or when its wait
    ends (ack, timeout, cancel), so the bound only counts sends that are
    still in flight and not yet collected.
    """

    name = "webhook"

    def __init__(
        self,
        channels: Sequence[Channel] = (),
        *,
        default_channel_id: int = INVALID_CHANNEL_ID,
        outbox_size: int = 100,
    ) -> None:
        super().__init__(channels, default_channel_id)
        self.outbox_size = outbox_size
        self._outbox: "OrderedDict[str, Submission]" = OrderedDict()
        self._lock = threading.Lock()

    def submit(
        self,
        channel: Channel,
        recipient: str,
        segments: Sequence[str],
        ack_token: str,
        delivery_token: Optional[str] = None,
    ) -> None:
        self._check_submission(recipient, segments)
        submission = Submission(channel, recipient, list(segments), ack_token, delivery_token)
        with self._lock:
            if len(self._outbox) >= self.outbox_size:
                raise SubmissionError(
                    "Gateway outbox full", outbox_size=self.outbox_size,
                )
            self._outbox[ack_token] = submission

        logger.info(
            "[WEBHOOK] Queued SMS → %s via %s (%d parts), awaiting gateway ack",
            recipient, channel.label, len(segments),
            extra={"correlation_token": ack_token, "channel_id": channel.channel_id},
        )

    def release(self, ack_token: str) -> None:
        with self._lock:
            dropped = self._outbox.pop(ack_token, None)
        if dropped is not None:
            logger.debug(
                "[WEBHOOK] Removed uncollected submission from outbox",
                extra={"correlation_token": ack_token},
            )

    def drain(self) -> List[Submission]:
        """Hand all queued submissions to the gateway."""
        with self._lock:
            pending = list(self._outbox.values())
            self._outbox.clear()
        if pending:
            logger.info("[WEBHOOK] Gateway collected %d submission(s)", len(pending))
        return pending

    def pending(self) -> List[Submission]:
        with self._lock:
            return list(self._outbox.values())


# ═══════════════════════════════════════════════════════════════════════════
# Profile selection
# ═══════════════════════════════════════════════════════════════════════════

def _build_simulation(registry: ListenerRegistry, cfg: Settings) -> TelephonyPort:
    return SimulatedTelephony(
        registry,
        parse_channels(cfg.SMS_CHANNELS, cfg.SMS_DEFAULT_CHANNEL_ID),
        default_channel_id=cfg.SMS_DEFAULT_CHANNEL_ID,
        result_code=cfg.SIMULATION_RESULT_CODE,
        ack_delay_seconds=cfg.SIMULATION_ACK_DELAY_SECONDS,
        drop_acks=cfg.SIMULATION_DROP_ACKS,
        history_size=cfg.SIMULATION_HISTORY_SIZE,
    )


def _build_webhook(registry: ListenerRegistry, cfg: Settings) -> TelephonyPort:
    return WebhookTelephony(
        parse_channels(cfg.SMS_CHANNELS, cfg.SMS_DEFAULT_CHANNEL_ID),
        default_channel_id=cfg.SMS_DEFAULT_CHANNEL_ID,
        outbox_size=cfg.WEBHOOK_OUTBOX_SIZE,
    )


_PROFILES: Dict[str, Callable[[ListenerRegistry, Settings], TelephonyPort]] = {
    "simulation": _build_simulation,
    "webhook": _build_webhook,
}


def build_telephony(profile: str, registry: ListenerRegistry, cfg: Settings) -> TelephonyPort:
    """Instantiate the telephony implementation for an environment profile."""
    builder = _PROFILES.get(profile.lower())
    if builder is None:
        raise ValueError(
            f"Unknown telephony profile '{profile}'. "
            f"Must be one of: {sorted(_PROFILES)}"
        )
    telephony = builder(registry, cfg)
    logger.info("Telephony profile: %s", telephony.name)
    return telephony
