"""
Health check aggregation — deep health probe for the SMS bridge.

Checks:
    • Telephony profile responds and exposes at least one usable channel
    • Listener registry is not accumulating stuck waits
    • SEND_SMS permission is held

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.config import settings
from backend.app.sms.permissions import Permission
from backend.app.sms.sms_service import SmsService

logger = logging.getLogger(__name__)

# More armed waits than send workers means waits are outliving their sends
_STUCK_WAIT_MARGIN = 2


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


def check_telephony(service: SmsService) -> ComponentHealth:
    comp = ComponentHealth(name="telephony")
    start = time.monotonic()
    try:
        active = service.telephony.list_active_channels()
        selected = service.selector.select()
        comp.details = {
            "profile": service.telephony.name,
            "active_channels": len(active),
            "selected_channel_id": selected.channel_id,
        }
        if not active:
            comp.status = HealthStatus.DEGRADED
            comp.message = "No active subscriptions; using generic default"
        else:
            comp.message = f"{len(active)} subscription(s) available"
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_pending_waits(service: SmsService) -> ComponentHealth:
    comp = ComponentHealth(name="ack_listeners")
    pending = service.waiter.pending_count
    limit = settings.SMS_SEND_WORKERS * _STUCK_WAIT_MARGIN
    comp.details = {"pending_waits": pending, "limit": limit}
    if pending > limit:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Acknowledgment waits are piling up"
    return comp


def check_permissions(service: SmsService) -> ComponentHealth:
    comp = ComponentHealth(name="permissions")
    comp.details = {
        p.value: service.permissions.has(p) for p in Permission
    }
    if not service.permissions.has(Permission.SEND_SMS):
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "SEND_SMS permission not granted"
    elif not service.permissions.has(Permission.READ_PHONE_STATE):
        comp.status = HealthStatus.DEGRADED
        comp.message = "READ_PHONE_STATE not granted; multi-SIM selection limited"
    return comp


async def run_health_check(service: SmsService) -> HealthReport:
    """Run all checks and roll them up into one report."""
    components = [
        check_telephony(service),
        check_pending_waits(service),
        check_permissions(service),
    ]

    statuses = {c.status for c in components}
    if HealthStatus.UNHEALTHY in statuses:
        overall = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    if overall != HealthStatus.HEALTHY:
        logger.warning("Health check: %s", overall.value)

    return HealthReport(
        status=overall,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
        components=components,
    )
