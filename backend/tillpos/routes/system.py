# Overview: Flask API routes for system health and version; reports database and registry state.

"""
System health and version endpoints.

/health is unauthenticated and safe for load balancers: it reports counts
only, never tenant data.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Company, CashRegister, CashRegisterSession
from ..models.registers import SESSION_OPEN
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "companies": db.session.query(Company).count(),
            "cash_registers": db.session.query(CashRegister).count(),
            "open_sessions": db.session.query(CashRegisterSession).filter_by(status=SESSION_OPEN).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_payment_relay_config() -> dict:
    # Degraded, not unhealthy: cash sales work without the relay
    if not current_app.config.get("PAYMENT_WEBHOOK_SECRET"):
        return {"status": "degraded", "warning": "PAYMENT_WEBHOOK_SECRET is not set; webhooks are rejected"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    relay_health = check_payment_relay_config()

    checks = [database_health, relay_health]
    if any(c["status"] == "unhealthy" for c in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "payment_relay": relay_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
