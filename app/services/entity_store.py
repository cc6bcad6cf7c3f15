"""Entity store — CRUD over the named CRM collections.

Every call returns a StoreResponse(data, error) instead of raising, so
callers branch on `response.error` the same way for validation problems,
missing rows and database outages:

    invalid    payload or filter the schema would reject
    not_found  update/delete/select_one matched no row (missing or not owned)
    transient  anything else the database threw; safe to retry

Inserts always stamp user_id from the caller, never from the payload.
Entity mutations write an audit_trail row in the same transaction, and
every committed change is published to the realtime hub.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.extensions import db
from app.models.audit import ActivityLog, AuditTrail
from app.models.billing import Estimate, Invoice
from app.models.customer import Customer
from app.models.job import Job, Task
from app.models.lead import Lead
from app.models.mixins import utcnow

logger = logging.getLogger(__name__)

ENTITY_COLLECTIONS = {
    "leads": Lead,
    "customers": Customer,
    "estimates": Estimate,
    "invoices": Invoice,
    "jobs": Job,
    "tasks": Task,
}

COLLECTIONS = dict(ENTITY_COLLECTIONS, activity_logs=ActivityLog)

OPERATIONS = ("select", "insert", "update", "delete")

# Column name -> model attribute holding its allowed values.
ENUM_COLUMNS = {
    "status": "STATUSES",
    "source": "SOURCES",
    "priority": "PRIORITIES",
    "payment_status": "PAYMENT_STATUSES",
}

PROTECTED_FIELDS = ("id", "user_id", "created_at", "updated_at")

# db.session.info key holding changes queued by an open transaction().
PENDING_KEY = "entity_store_pending"


class StoreError:
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"

    def __init__(self, message, code=TRANSIENT):
        self.message = message
        self.code = code

    @property
    def is_transient(self):
        return self.code == self.TRANSIENT

    def __eq__(self, other):
        return (
            isinstance(other, StoreError)
            and other.message == self.message
            and other.code == self.code
        )

    def __repr__(self):
        return f"<StoreError {self.code}: {self.message}>"


class StoreResponse:
    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def fail(cls, message, code):
        return cls(None, StoreError(message, code))

    def __repr__(self):
        return f"<StoreResponse data={self.data!r} error={self.error!r}>"


class _Invalid(Exception):
    pass


class StoreAborted(Exception):
    """Raised inside EntityStore.transaction() to roll the whole block back."""

    def __init__(self, error):
        super().__init__(error.message)
        self.error = error


def _columns(model):
    return {attr.columns[0].name: attr for attr in inspect(model).column_attrs}


def _coerce(column, value):
    """Turn a JSON value into what the column stores. Raises _Invalid."""
    if value is None or value == "":
        return None
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    try:
        if python_type is datetime and isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        if python_type is date and isinstance(value, str):
            return date.fromisoformat(value[:10])
        if python_type is float and not isinstance(value, bool):
            return float(value)
        if python_type is int and not isinstance(value, bool):
            return int(value)
    except (TypeError, ValueError):
        raise _Invalid(f"Invalid value for {column.name}: {value!r}")
    return value


class EntityStore:
    """Constructed once in create_app() and kept in app.extensions["entity_store"]."""

    def __init__(self, hub=None):
        self.hub = hub

    # ──────────────────────────────────────────────
    # Request dispatch
    # ──────────────────────────────────────────────

    def execute(self, request):
        """Run a {collection, operation, filter, payload} request."""
        operation = request.get("operation")
        if operation not in OPERATIONS:
            return StoreResponse.fail(
                f"Unsupported operation: {operation}", StoreError.INVALID
            )
        collection = request.get("collection")
        filters = request.get("filter") or {}
        payload = request.get("payload") or {}

        if operation == "select":
            return self.select(collection, filters)
        if operation == "insert":
            return self.insert(collection, payload, request.get("user_id"))
        if operation == "update":
            return self.update(collection, filters, payload)
        return self.delete(collection, filters)

    # ──────────────────────────────────────────────
    # Operations
    # ──────────────────────────────────────────────

    def select(self, collection, filters=None, order_by="created_at",
               descending=True, limit=None):
        try:
            model = self._model(collection)
            query = self._filtered(model, filters)
            columns = _columns(model)
            if order_by:
                if order_by not in columns:
                    raise _Invalid(f"Unknown column {order_by} for {collection}")
                column = getattr(model, columns[order_by].key)
                query = query.order_by(column.desc() if descending else column.asc())
            if limit:
                query = query.limit(limit)
            rows = [row.to_dict() for row in query.all()]
        except _Invalid as e:
            return StoreResponse.fail(str(e), StoreError.INVALID)
        except SQLAlchemyError as e:
            return self._failed("select", collection, e)
        return StoreResponse(rows)

    def select_one(self, collection, filters):
        response = self.select(collection, filters, order_by=None, limit=1)
        if response.error:
            return response
        if not response.data:
            return StoreResponse.fail(
                f"No {collection} row matched", StoreError.NOT_FOUND
            )
        return StoreResponse(response.data[0])

    def insert(self, collection, payload, user_id):
        if not user_id:
            return StoreResponse.fail("An owning user is required", StoreError.INVALID)
        try:
            model = self._model(collection)
            values = self._values(model, payload, required=True)
            row = model(user_id=user_id, **values)
            db.session.add(row)
            db.session.flush()
            new = row.to_dict()
            audit = self._audit(collection, user_id, new["id"], "INSERT", None, new)
            self._commit()
        except _Invalid as e:
            self._rollback()
            return StoreResponse.fail(str(e), StoreError.INVALID)
        except SQLAlchemyError as e:
            return self._failed("insert", collection, e)

        self._publish(collection, [("INSERT", None, new, audit)])
        return StoreResponse(new)

    def update(self, collection, filters, payload):
        """Partial update of every row matching filters. Returns the updated rows."""
        if collection not in ENTITY_COLLECTIONS:
            return StoreResponse.fail(
                f"{collection} cannot be updated", StoreError.INVALID
            )
        try:
            model = self._model(collection)
            values = self._values(model, payload, required=False)
            rows = self._filtered(model, filters).all()
            if not rows:
                return StoreResponse.fail(
                    f"No {collection} row matched", StoreError.NOT_FOUND
                )

            events = []
            for row in rows:
                old = row.to_dict()
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = utcnow()
                db.session.flush()
                new = row.to_dict()
                changed = sorted(k for k in new if old.get(k) != new.get(k))
                audit = self._audit(
                    collection, row.user_id, row.id, "UPDATE", old, new, changed
                )
                events.append(("UPDATE", old, new, audit))
            self._commit()
        except _Invalid as e:
            self._rollback()
            return StoreResponse.fail(str(e), StoreError.INVALID)
        except SQLAlchemyError as e:
            return self._failed("update", collection, e)

        self._publish(collection, events)
        return StoreResponse([new for _, _, new, _ in events])

    def delete(self, collection, filters):
        """Hard delete of every row matching filters. Returns the deleted rows."""
        if collection not in ENTITY_COLLECTIONS:
            return StoreResponse.fail(
                f"{collection} cannot be deleted", StoreError.INVALID
            )
        try:
            model = self._model(collection)
            rows = self._filtered(model, filters).all()
            if not rows:
                return StoreResponse.fail(
                    f"No {collection} row matched", StoreError.NOT_FOUND
                )

            events = []
            for row in rows:
                old = row.to_dict()
                audit = self._audit(collection, row.user_id, row.id, "DELETE", old, None)
                db.session.delete(row)
                events.append(("DELETE", old, None, audit))
            self._commit()
        except _Invalid as e:
            self._rollback()
            return StoreResponse.fail(str(e), StoreError.INVALID)
        except SQLAlchemyError as e:
            return self._failed("delete", collection, e)

        self._publish(collection, events)
        return StoreResponse([old for _, old, _, _ in events])

    # ──────────────────────────────────────────────
    # Transactions
    # ──────────────────────────────────────────────

    @contextmanager
    def transaction(self):
        """Run several writes as one commit.

        Writes inside the block flush instead of committing, and their
        changes reach the hub only after the block commits. Raise
        StoreAborted (or anything else) to roll the whole block back.
        A failed commit is raised as StoreAborted with a transient error.
        """
        if PENDING_KEY in db.session.info:
            yield
            return

        pending = db.session.info[PENDING_KEY] = []
        try:
            try:
                yield
            except BaseException:
                db.session.rollback()
                raise
            try:
                db.session.commit()
            except SQLAlchemyError as e:
                raise StoreAborted(self._failed("commit", "transaction", e).error)
        finally:
            db.session.info.pop(PENDING_KEY, None)

        for collection, events in pending:
            self._publish(collection, events)

    def _commit(self):
        if PENDING_KEY in db.session.info:
            db.session.flush()
        else:
            db.session.commit()

    def _rollback(self):
        db.session.rollback()
        # Anything queued so far was rolled back with the session.
        pending = db.session.info.get(PENDING_KEY)
        if pending is not None:
            del pending[:]

    # ──────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────

    def _model(self, collection):
        model = COLLECTIONS.get(collection)
        if model is None:
            raise _Invalid(f"Unknown collection: {collection}")
        return model

    def _filtered(self, model, filters):
        columns = _columns(model)
        query = model.query
        for name, value in (filters or {}).items():
            if name not in columns:
                raise _Invalid(f"Unknown filter column {name} for {model.__tablename__}")
            query = query.filter(getattr(model, columns[name].key) == value)
        return query

    def _values(self, model, payload, required):
        """Validate a client payload against the table. Raises _Invalid."""
        if not isinstance(payload, dict):
            raise _Invalid("Payload must be an object")

        columns = _columns(model)
        values = {}
        for name, value in payload.items():
            if name in PROTECTED_FIELDS:
                continue
            if name not in columns:
                raise _Invalid(f"Unknown field {name} for {model.__tablename__}")
            column = columns[name].columns[0]
            value = _coerce(column, value)

            allowed = getattr(model, ENUM_COLUMNS.get(name, ""), None)
            if allowed and value is not None and value not in allowed:
                raise _Invalid(f"Invalid {name}: {value}")
            if value is None and not column.nullable:
                raise _Invalid(f"{name} is required")
            values[columns[name].key] = value

        if required:
            for name, attr in columns.items():
                column = attr.columns[0]
                if (
                    name not in PROTECTED_FIELDS
                    and not column.nullable
                    and column.default is None
                    and column.server_default is None
                    and values.get(attr.key) is None
                ):
                    raise _Invalid(f"{name} is required")
        return values

    def _audit(self, collection, user_id, record_id, action, old, new, changed=None):
        """Add the compliance row for an entity change. Returns it as a dict."""
        if collection not in ENTITY_COLLECTIONS:
            return None
        trail = AuditTrail(
            user_id=user_id,
            table_name=collection,
            record_id=record_id,
            action=action,
            old_values=old,
            new_values=new,
            changed_fields=changed,
            compliance_level=AuditTrail.compliance_level_for(collection),
        )
        db.session.add(trail)
        db.session.flush()
        return trail.to_dict()

    def _publish(self, collection, events):
        pending = db.session.info.get(PENDING_KEY)
        if pending is not None:
            pending.append((collection, events))
            return
        if self.hub is None:
            return
        for event_type, old, new, audit in events:
            self.hub.publish(collection, event_type, old, new)
            if audit is not None:
                self.hub.publish("audit_trail", "INSERT", None, audit)

    def _failed(self, operation, collection, error):
        self._rollback()
        if isinstance(error, IntegrityError):
            logger.warning(f"{operation} on {collection} violated a constraint: {error.orig}")
            return StoreResponse.fail(
                f"Constraint violation on {collection}", StoreError.INVALID
            )
        logger.error(f"{operation} on {collection} failed: {error}", exc_info=True)
        return StoreResponse.fail(f"Database error during {operation}", StoreError.TRANSIENT)
