"""
models.py — Shared data structures for the SMS bridge.

Defines:
    • Channel          — an outbound SIM subscription / transport identity
    • SendRequest      — recipient + body, with derived segmentation
    • CorrelationToken — routes one acknowledgment back to its waiting call
    • Outcome          — tagged result: SUCCESS | FAILURE | TIMED_OUT
    • SendResult       — the single terminal response of a sendMessage call

═══════════════════════════════════════════════════════════════════════════
SEGMENTATION
═══════════════════════════════════════════════════════════════════════════

    Body length ≤ segment limit (160)  →  1 segment, single-part submit
    Body length  > segment limit       →  ceil(len / limit) segments,
                                          one multipart submit, one ack

    Example (limit=160):
        len 160 → 1 segment
        len 161 → 2 segments (160 + 1)
        len 480 → 3 segments
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

SMS_SEGMENT_LIMIT = 160     # GSM 7-bit single-part length
INVALID_CHANNEL_ID = -1     # platform marker for "no subscription"

SENT_TOKEN_PREFIX = "SMS_SENT_"
DELIVERED_TOKEN_PREFIX = "SMS_DELIVERED_"


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class OutcomeKind(str, Enum):
    """Terminal states of one send."""
    SUCCESS   = "success"
    FAILURE   = "failure"
    TIMED_OUT = "timed_out"   # ack never arrived; message may still be sent


class CallErrorCode(str, Enum):
    """Machine-readable error codes returned on the call surface."""
    BAD_ARGS      = "BAD_ARGS"
    NO_PERMISSION = "NO_PERMISSION"
    SEND_FAIL     = "SEND_FAIL"


# ═══════════════════════════════════════════════════════════════════════════
# Channel
# ═══════════════════════════════════════════════════════════════════════════

def is_valid_channel_id(channel_id: Optional[int]) -> bool:
    return channel_id is not None and channel_id >= 0


@dataclass(frozen=True)
class Channel:
    """
    An outbound transport identity (e.g. one SIM subscription).

    Attributes
    ----------
    channel_id : int
        Subscription id. ``INVALID_CHANNEL_ID`` for the generic default.
    label : str
        Human label ("SIM 1", "Carrier X").
    is_default : bool
        True if this is the platform's designated default for SMS.
    """
    channel_id: int
    label: str
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "label": self.label,
            "is_default": self.is_default,
        }


# Stands in for the platform's generic default transport handle
GENERIC_DEFAULT_CHANNEL = Channel(
    channel_id=INVALID_CHANNEL_ID,
    label="system-default",
    is_default=True,
)


# ═══════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════

def divide_message(body: str, segment_limit: int = SMS_SEGMENT_LIMIT) -> Tuple[str, ...]:
    """Split a body into ordered segments of at most ``segment_limit`` units."""
    if segment_limit <= 0:
        raise ValueError(f"segment_limit must be positive, got {segment_limit}")
    if len(body) <= segment_limit:
        return (body,)
    count = math.ceil(len(body) / segment_limit)
    return tuple(
        body[i * segment_limit:(i + 1) * segment_limit] for i in range(count)
    )


@dataclass(frozen=True)
class SendRequest:
    """One outbound SMS. Immutable once constructed."""
    recipient: str
    body: str
    segment_limit: int = SMS_SEGMENT_LIMIT

    @property
    def segments(self) -> Tuple[str, ...]:
        return divide_message(self.body, self.segment_limit)

    @property
    def is_multipart(self) -> bool:
        return len(self.body) > self.segment_limit


# ═══════════════════════════════════════════════════════════════════════════
# Correlation
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CorrelationToken:
    """Unique per-send identifier scoping one acknowledgment listener."""
    value: str

    @classmethod
    def new(cls, prefix: str = SENT_TOKEN_PREFIX) -> "CorrelationToken":
        return cls(f"{prefix}{uuid.uuid4().hex}")

    def __str__(self) -> str:
        return self.value


# ═══════════════════════════════════════════════════════════════════════════
# Outcome
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Outcome:
    """
    Tagged result of a send: Success, Failure(reason) or TimedOut.

    ``result_code`` keeps the raw provider code when one was received so
    unrecognised codes stay diagnosable.
    """
    kind: OutcomeKind
    reason: Optional[str] = None
    result_code: Optional[int] = None

    @classmethod
    def success(cls, result_code: Optional[int] = None) -> "Outcome":
        return cls(OutcomeKind.SUCCESS, None, result_code)

    @classmethod
    def failure(cls, reason: str, result_code: Optional[int] = None) -> "Outcome":
        return cls(OutcomeKind.FAILURE, reason, result_code)

    @classmethod
    def timed_out(
        cls,
        reason: str = "No acknowledgment before timeout; SMS may have been sent",
    ) -> "Outcome":
        return cls(OutcomeKind.TIMED_OUT, reason)

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.kind == OutcomeKind.FAILURE

    @property
    def is_timed_out(self) -> bool:
        return self.kind == OutcomeKind.TIMED_OUT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reason": self.reason,
            "result_code": self.result_code,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SendResult:
    """The one terminal response a sendMessage call produces."""
    outcome: Outcome
    recipient: Optional[str] = None
    error_code: Optional[CallErrorCode] = None
    segment_count: int = 0
    channel: Optional[Channel] = None
    correlation_token: Optional[str] = None
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @classmethod
    def rejected(
        cls,
        error_code: CallErrorCode,
        reason: str,
        recipient: Optional[str] = None,
    ) -> "SendResult":
        """A call refused before anything was submitted."""
        return cls(
            outcome=Outcome.failure(reason),
            recipient=recipient,
            error_code=error_code,
            completed_at=_now(),
        )

    @property
    def ok(self) -> bool:
        return self.outcome.is_success

    @property
    def message(self) -> Optional[str]:
        return self.outcome.reason

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True if self.ok else (None if self.outcome.is_timed_out else False),
            "status": self.outcome.kind.value,
            "error_code": self.error_code.value if self.error_code else None,
            "message": self.message,
            "result_code": self.outcome.result_code,
            "recipient": self.recipient,
            "segment_count": self.segment_count,
            "channel": self.channel.to_dict() if self.channel else None,
            "correlation_token": self.correlation_token,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }
