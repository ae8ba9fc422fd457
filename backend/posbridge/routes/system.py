# backend/posbridge/routes/system.py
"""
System health and metrics endpoints.

Health covers the mirror database and the stored upstream credential;
metrics exposes the process-wide webhook delivery counters.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..services import credential_service, webhook_service
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_credential_health() -> dict:
    """
    A missing or expired token degrades the service; the scheduler's
    01:00 refresh is expected to repair it.
    """
    try:
        details = credential_service.status()
    except Exception:
        current_app.logger.exception("Credential health check failed")
        return {"status": "unhealthy", "error": "Credential store error"}

    if not details.get("stored"):
        return {"status": "degraded", "warning": "No upstream credential stored"}
    if details.get("expired"):
        return {"status": "degraded", "warning": "Upstream credential has expired", "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    credential_health = (
        check_credential_health()
        if database_health["status"] == "healthy"
        else {"status": "unknown"}
    )

    checks = [database_health, credential_health]
    if any(check["status"] == "unhealthy" for check in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] in ("degraded", "unknown") for check in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "credential": credential_health,
        },
    }
    return response, http_status


@system_bp.get("/metrics")
def metrics():
    return {"webhooks": webhook_service.counters.snapshot()}, 200
