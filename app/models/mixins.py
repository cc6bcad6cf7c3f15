"""Shared columns and serialization for user-owned CRM entities.

Every business entity (lead, customer, estimate, invoice, job, task) is
owned by exactly one staff user and carries store-assigned id/timestamps.
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import inspect
from sqlalchemy.orm import declared_attr

from app.extensions import db


def utcnow():
    return datetime.now(timezone.utc)


def _serialize(value):
    if isinstance(value, datetime):
        # SQLite returns naive datetimes; Postgres returns aware ones.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class SerializerMixin:
    """Row -> plain dict keyed by column name (the wire shape)."""

    def to_dict(self):
        data = {}
        for attr in inspect(type(self)).column_attrs:
            column = attr.columns[0]
            data[column.name] = _serialize(getattr(self, attr.key))
        return data


class OwnedEntityMixin(SerializerMixin):
    # Columns the store assigns itself; never taken from a client payload.
    PROTECTED_FIELDS = ("id", "user_id", "created_at", "updated_at")

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    @declared_attr
    def user_id(cls):
        return db.Column(
            db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
        )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
