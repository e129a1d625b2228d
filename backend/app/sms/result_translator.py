"""
result_translator.py — Provider result code → Outcome.

The telephony stack reports the fate of a submission as a bare integer
on the "sent" acknowledgment. Codes follow the Android telephony
constants; OEM security layers add their own (MIUI reports 16 when it
silently blocks the send).

    Code   Name              Outcome
    ────   ───────────────   ──────────────────────────────────────
     -1    OK                Success
      1    GENERIC_FAILURE   Failure("Generic failure")
      2    RADIO_OFF         Failure("Radio off ...")
      3    NULL_PDU          Failure("Null PDU ...")
      4    NO_SERVICE        Failure("No service ...")
     16    VENDOR_BLOCKED    Failure(<remediation steps>)
    else   —                 Failure("Unknown error code: <code>")
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Dict, Optional

from backend.app.sms.models import Outcome

logger = logging.getLogger(__name__)


class ResultCode(IntEnum):
    OK              = -1
    GENERIC_FAILURE = 1
    RADIO_OFF       = 2
    NULL_PDU        = 3
    NO_SERVICE      = 4
    VENDOR_BLOCKED  = 16


_FAILURE_REASONS: Dict[int, str] = {
    ResultCode.GENERIC_FAILURE: "Generic failure",
    ResultCode.RADIO_OFF: "Radio off (turn airplane mode off)",
    ResultCode.NULL_PDU: "Null PDU (empty payload)",
    ResultCode.NO_SERVICE: "No service (check cellular signal)",
}

VENDOR_BLOCKED_TEMPLATE = (
    "SMS blocked by the device security layer. "
    "Go to Settings > Apps > {app_name} > Permissions > SMS > Allow. "
    "Also check Settings > Privacy > Special Permissions > Send SMS"
)


class ResultTranslator:
    """Total mapping from result codes to outcomes."""

    def __init__(self, app_name: str = "this app") -> None:
        self._reasons: Dict[int, str] = dict(_FAILURE_REASONS)
        self._reasons[ResultCode.VENDOR_BLOCKED] = VENDOR_BLOCKED_TEMPLATE.format(
            app_name=app_name,
        )

    def translate(self, code: Any) -> Outcome:
        result_code = _coerce(code)

        if result_code == ResultCode.OK:
            logger.debug("SMS sent successfully", extra={"result_code": result_code})
            return Outcome.success(result_code)

        reason = self._reasons.get(result_code) if result_code is not None else None
        if reason is None:
            reason = f"Unknown error code: {code}"

        logger.error(
            "SMS failed: %s (code %s)", reason, code,
            extra={"result_code": result_code},
        )
        return Outcome.failure(reason, result_code)

    def describe(self) -> Dict[str, str]:
        """Known codes and their failure reasons, for diagnostics."""
        table = {str(int(ResultCode.OK)): "OK"}
        table.update({str(int(k)): v for k, v in sorted(self._reasons.items())})
        return table


def _coerce(code: Any) -> Optional[int]:
    try:
        return int(code)
    except (TypeError, ValueError):
        return None
