"""
System health endpoint.

Checks database connectivity and reports whether the deferred tail has
invoices waiting on a replay.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Invoice
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_deferred_tail_health() -> dict:
    """Invoices whose last tail run failed are reported as degraded."""
    try:
        failed = db.session.query(Invoice).filter(Invoice.tail_error.isnot(None)).count()
        tail = current_app.extensions.get("deferred_tail")
        details = {"failed_invoices": failed, "mode": tail.mode if tail else None}
        if failed:
            return {"status": "degraded", "details": details}
        return {"status": "healthy", "details": details}
    except Exception:
        current_app.logger.exception("Deferred tail health check failed")
        return {"status": "unhealthy", "error": "Deferred tail check error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    tail_health = check_deferred_tail_health() if database_health["status"] == "healthy" else {"status": "unknown"}

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif tail_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health, "deferred_tail": tail_health},
    }, http_status
