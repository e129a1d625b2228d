"""
Pydantic schemas for the SMS API.

Separated from the route handler so they are reusable across
the codebase (gateway clients, tests).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AckKind(str, Enum):
    SENT      = "sent"        # resolves the waiting send
    DELIVERED = "delivered"   # best-effort receipt, logged only


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SendSmsRequest(BaseModel):
    """
    Arguments of a sendSms call. Both fields are optional at the schema
    level so that missing or blank values come back as BAD_ARGS rather
    than a generic validation error.
    """
    phone: Optional[str] = Field(
        None, description="Recipient number (E.164)", examples=["+919876543210"],
    )
    message: Optional[str] = Field(
        None, description="Message body; split into parts above 160 chars",
        examples=["I need help. My location: https://maps.example/?q=13.08,80.27"],
    )


class AckRequest(BaseModel):
    """An acknowledgment event reported by an external SMS gateway."""
    token: str = Field(..., min_length=1, description="Correlation token from the submission")
    result_code: int = Field(..., description="Provider result code (-1 = OK)", examples=[-1])
    kind: AckKind = Field(AckKind.SENT)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ChannelOut(BaseModel):
    channel_id: int
    label: str
    is_default: bool


class SendSmsResponse(BaseModel):
    """Terminal response of one sendSms call."""
    success: Optional[bool] = Field(
        ..., description="True when sent; null when the ack timed out",
    )
    status: str = Field(..., examples=["success", "timed_out"])
    message: Optional[str] = None
    result_code: Optional[int] = None
    recipient: Optional[str] = None
    segment_count: int = 0
    channel: Optional[ChannelOut] = None
    correlation_token: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class AckResponse(BaseModel):
    token: str
    kind: AckKind
    delivered: bool = Field(..., description="Whether a waiting send received the event")


class SubmissionOut(BaseModel):
    """A queued message as handed to an external gateway."""
    channel: ChannelOut
    recipient: str
    segments: List[str]
    segment_count: int
    multipart: bool
    ack_token: str = Field(..., description="Report the sent result under this token")
    delivery_token: Optional[str] = None
    submitted_at: str


class OutboxResponse(BaseModel):
    telephony_profile: str
    submissions: List[SubmissionOut]


class ChannelsResponse(BaseModel):
    telephony_profile: str
    default_channel_id: Optional[int]
    active_channels: List[ChannelOut]
    selected: ChannelOut


class SmsHealthResponse(BaseModel):
    status: str
    service: str
    details: Dict[str, Any] = Field(default_factory=dict)
