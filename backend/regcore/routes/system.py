# backend/regcore/routes/system.py
"""
System health endpoint.

Checks database connectivity and the installed collaborators for
deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, InventoryReservation
from ..enums import ReservationStatus
from ..services.collaborators import PAYMENT_PROCESSOR_KEY, NOTIFICATION_SENDER_KEY
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and count open inventory holds.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        held = db.session.query(InventoryReservation).filter_by(status=ReservationStatus.HELD.value).count()
        expired_held = db.session.query(InventoryReservation).filter(
            InventoryReservation.status == ReservationStatus.HELD.value,
            InventoryReservation.expires_at < utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "held_reservations": held,
                "expired_holds_pending_cleanup": expired_held,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_collaborators() -> dict:
    processor = current_app.extensions.get(PAYMENT_PROCESSOR_KEY)
    sender = current_app.extensions.get(NOTIFICATION_SENDER_KEY)
    missing = [
        name for name, value in (("payment_processor", processor), ("notification_sender", sender))
        if value is None
    ]
    return {
        "status": "degraded" if missing else "healthy",
        "details": {
            "payment_processor": type(processor).__name__ if processor else None,
            "notification_sender": type(sender).__name__ if sender else None,
        },
        **({"warning": f"Missing: {', '.join(missing)}"} if missing else {}),
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    collaborator_health = check_collaborators()

    all_checks = [database_health, collaborator_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "collaborators": collaborator_health,
        }
    }
    return response, http_status
