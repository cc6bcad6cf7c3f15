"""Health blueprint — GET /health

Liveness + dependency report for the load balancer and uptime monitors.
503 when the database is unreachable or backups are misconfigured.
"""

import logging
import resource
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from app.extensions import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)

STARTED_AT = time.monotonic()


def _check_database():
    try:
        db.session.execute(text("SELECT 1"))
        return {"connected": True, "error": None}
    except Exception as e:
        db.session.rollback()
        logger.error(f"Health check: database unreachable: {e}")
        return {"connected": False, "error": str(e)}


def _check_pitr():
    enabled = current_app.config.get("PITR_ENABLED", False)
    retention = current_app.config.get("PITR_RETENTION_DAYS", 0)
    error = None
    if enabled and retention <= 0:
        error = "Point-in-time recovery enabled without a retention period"
    return {"enabled": enabled, "retention_period": retention, "error": error}


@health_bp.route("/health")
def health():
    database = _check_database()
    pitr = _check_pitr()
    usage = resource.getrusage(resource.RUSAGE_SELF)

    healthy = database["connected"] and pitr["error"] is None
    body = {
        "status": "ok" if healthy else "error",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "memory": {"max_rss_kb": usage.ru_maxrss},
        "database": database,
        "pitr": pitr,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return jsonify(body), 200 if healthy else 503
