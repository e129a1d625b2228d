"""
FastAPI route: SMS send bridge.

Provides endpoints to:
    POST /api/v1/sms/send       — send one SMS and await its "sent" ack
    POST /api/v1/sms/acks       — gateway webhook delivering ack events
    POST /api/v1/sms/outbox/drain — gateway collects queued submissions
    POST /api/v1/sms/{token}/cancel — stop waiting on a pending send
    GET  /api/v1/sms/channels   — SIM subscriptions and the current pick
    GET  /api/v1/sms/health     — service health

Response mapping for /send:
    Success   → 200 {"success": true}
    TimedOut  → 202 {"success": null, "status": "timed_out"}
    BAD_ARGS  → 400, NO_PERMISSION → 403, SEND_FAIL → 502 (error envelope)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from backend.app.api.schemas import (
    AckKind,
    AckRequest,
    AckResponse,
    ChannelsResponse,
    OutboxResponse,
    SendSmsRequest,
    SendSmsResponse,
    SmsHealthResponse,
)
from backend.app.core.errors import error_for_code
from backend.app.sms.models import OutcomeKind
from backend.app.sms.sms_service import SmsService, get_sms_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sms", tags=["sms"])


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/send",
    response_model=SendSmsResponse,
    summary="Send an SMS",
    description=(
        "Selects a SIM subscription, submits the message (multipart above "
        "160 chars) and waits for the carrier's sent acknowledgment."
    ),
    responses={202: {"description": "Acknowledgment timed out; SMS may have been sent"}},
)
async def send_sms(
    request: SendSmsRequest,
    response: Response,
    service: SmsService = Depends(get_sms_service),
):
    result = await service.send_message(request.phone, request.message)

    if result.error_code is not None:
        details = {"recipient": result.recipient}
        if result.outcome.result_code is not None:
            details["result_code"] = result.outcome.result_code
        raise error_for_code(
            result.error_code.value,
            result.message or "SMS send failed",
            **details,
        )

    if result.outcome.kind == OutcomeKind.TIMED_OUT:
        response.status_code = 202

    return result.to_dict()


@router.post(
    "/acks",
    response_model=AckResponse,
    summary="Report an acknowledgment event",
    description="Webhook for gateways that report submission results out-of-band.",
)
async def report_ack(
    request: AckRequest,
    service: SmsService = Depends(get_sms_service),
):
    delivered = service.registry.deliver(request.token, request.result_code)
    if request.kind == AckKind.DELIVERED:
        logger.info(
            "Delivery receipt for %s (code %d)", request.token, request.result_code,
            extra={"correlation_token": request.token, "result_code": request.result_code},
        )
    elif not delivered:
        logger.warning(
            "Ack for unknown or expired token %s", request.token,
            extra={"correlation_token": request.token},
        )
    return AckResponse(token=request.token, kind=request.kind, delivered=delivered)


@router.post(
    "/outbox/drain",
    response_model=OutboxResponse,
    summary="Collect queued submissions",
    description=(
        "Returns and clears the messages waiting for an external gateway. "
        "The gateway sends each one and reports the result to /acks under "
        "its ack_token."
    ),
)
async def drain_outbox(service: SmsService = Depends(get_sms_service)):
    telephony = service.telephony
    drain = getattr(telephony, "drain", None)
    if drain is None:
        raise HTTPException(
            status_code=409,
            detail=f"Telephony profile '{telephony.name}' has no gateway outbox.",
        )
    return {
        "telephony_profile": telephony.name,
        "submissions": [s.to_dict() for s in drain()],
    }


@router.post(
    "/{token}/cancel",
    summary="Cancel a pending send wait",
)
async def cancel_wait(token: str, service: SmsService = Depends(get_sms_service)):
    if not service.cancel(token):
        raise HTTPException(
            status_code=404,
            detail=f"No pending send for token '{token}'.",
        )
    return {"token": token, "status": "cancelled"}


@router.get(
    "/channels",
    response_model=ChannelsResponse,
    summary="List SIM subscriptions",
)
async def list_channels(service: SmsService = Depends(get_sms_service)):
    telephony = service.telephony
    return {
        "telephony_profile": telephony.name,
        "default_channel_id": telephony.get_default_channel_id(),
        "active_channels": [c.to_dict() for c in telephony.list_active_channels()],
        "selected": service.selector.select().to_dict(),
    }


@router.get(
    "/health",
    response_model=SmsHealthResponse,
    summary="SMS service health check",
)
async def health(service: SmsService = Depends(get_sms_service)):
    return {
        "status": "healthy",
        "service": "sms-bridge",
        "details": service.status(),
    }
