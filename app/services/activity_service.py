"""Activity service — the human-readable mutation trail.

Writes are advisory: log_activity() is called after the business change has
already committed, and a failure here is logged and swallowed so it can
never undo or fail that change.
"""

import logging

from app.extensions import db
from app.models.audit import ActivityLog

logger = logging.getLogger(__name__)

# Known metadata shapes, keyed by (entity_type, action): required keys.
# Anything else is stored as a free-form dict.
METADATA_SCHEMAS = {
    ("invoice", "payment_completed"): ("stripe_session_id",),
    ("invoice", "receipt_sent"): ("email",),
    ("lead", "converted"): ("customer_id",),
}


def validate_metadata(entity_type, action, metadata):
    """Normalize a metadata blob and check it against METADATA_SCHEMAS.

    Returns:
        tuple: (metadata_dict, error_message)
            - error_message is None when the blob conforms or has no schema
    """
    if metadata is None:
        metadata = {}
    elif not isinstance(metadata, dict):
        metadata = {"value": metadata}

    required = METADATA_SCHEMAS.get((entity_type, action))
    if not required:
        return metadata, None

    missing = [key for key in required if not metadata.get(key)]
    if missing:
        return metadata, f"{entity_type}/{action} metadata missing {', '.join(missing)}"
    return metadata, None


def log_activity(user_id, action, entity_type, entity_id,
                 description=None, metadata=None):
    """Append one activity row. Never raises.

    Returns the ActivityLog row, or None when nothing was written.
    """
    if not user_id:
        logger.debug(f"Skipping activity {entity_type}:{action}, no user")
        return None

    metadata, problem = validate_metadata(entity_type, action, metadata)
    if problem:
        # Keep the row; the blob falls back to free-form.
        logger.warning(f"Non-conforming activity metadata: {problem}")

    try:
        entry = ActivityLog(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            description=description,
            metadata_=metadata,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to log activity {entity_type}:{action} for {entity_id}: {e}")
        return None


def recent_activity(user_id, limit=20, entity_type=None):
    """Newest-first activity rows for one user, as dicts."""
    query = ActivityLog.query.filter_by(user_id=user_id)
    if entity_type:
        query = query.filter_by(entity_type=entity_type)
    rows = query.order_by(ActivityLog.created_at.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]
