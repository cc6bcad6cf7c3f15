"""Entity hooks — per-collection state managers.

A hook keeps an in-memory, newest-first list of one user's rows for one
collection and exposes create/update/delete operations that go through the
EntityStore. After a successful mutation it writes an activity row, updates
its list and reports one notification; after a failed one it leaves the
list untouched and reports one failure.

Realtime pushes come in through apply_change(), the second write path into
the same list. Both paths are reconciled by updated_at: an older row never
replaces a newer one.
"""

import logging
from datetime import datetime, timezone

from app.models.billing import Invoice
from app.services.activity_service import log_activity
from app.services.entity_store import StoreAborted, StoreError

logger = logging.getLogger(__name__)


def _timestamp(row):
    value = (row or {}).get("updated_at")
    if not value:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class EntityHook:
    collection = None  # store collection, e.g. "leads"
    entity_type = None  # activity entity_type, e.g. "lead"

    def __init__(self, store, user_id, notifier):
        self.store = store
        self.user_id = user_id
        self.notifier = notifier
        self.items = []
        self.error = None
        self.error_code = None

    # ──────────────────────────────────────────────
    # Naming
    # ──────────────────────────────────────────────

    @property
    def singular(self):
        return self.entity_type.replace("_", " ")

    @property
    def plural(self):
        return self.collection.replace("_", " ")

    def describe(self, row):
        """Short human label for a row, used in activity descriptions."""
        return row.get("title") or row.get("id")

    # ──────────────────────────────────────────────
    # Cache helpers
    # ──────────────────────────────────────────────

    def get(self, id):
        for row in self.items:
            if row.get("id") == id:
                return row
        return None

    def _index(self, id):
        for i, row in enumerate(self.items):
            if row.get("id") == id:
                return i
        return None

    def _replace(self, row):
        i = self._index(row["id"])
        if i is None:
            self.items.insert(0, row)
        else:
            self.items[i] = row

    def _remove(self, id):
        self.items = [row for row in self.items if row.get("id") != id]

    # ──────────────────────────────────────────────
    # Notifications
    # ──────────────────────────────────────────────

    def _require_login(self, verb):
        if self.user_id:
            return True
        self.error_code = "unauthenticated"
        self.notifier.error(f"You must be logged in to {verb} {self.plural}")
        return False

    def _failure_message(self, verb, error):
        if error.code == StoreError.TRANSIENT:
            return f"Failed to {verb} {self.singular}. Please try again."
        if error.code == StoreError.NOT_FOUND:
            return f"{self.singular.capitalize()} not found"
        return error.message or f"Failed to {verb} {self.singular}"

    def _fail(self, verb, error):
        self.error = error.message
        self.error_code = error.code
        self.notifier.error(self._failure_message(verb, error))

    # ──────────────────────────────────────────────
    # Operations
    # ──────────────────────────────────────────────

    def fetch_all(self):
        """Replace the list with the user's rows, newest first."""
        if not self._require_login("fetch"):
            return False

        response = self.store.select(self.collection, {"user_id": self.user_id})
        if response.error:
            self.error = response.error.message
            self.error_code = response.error.code
            self.notifier.error(f"Failed to fetch {self.plural}")
            return False

        self.items = response.data
        self.error = None
        self.error_code = None
        return True

    def create(self, data):
        """Insert a row owned by the current user. Returns it, or None."""
        if not self._require_login("create"):
            return None

        problem = self.check_create(data)
        if problem:
            self.error = problem
            self.error_code = StoreError.INVALID
            self.notifier.error(problem)
            return None

        response = self.store.insert(self.collection, data, self.user_id)
        if response.error:
            self._fail("create", response.error)
            return None

        row = response.data
        self.items.insert(0, row)
        log_activity(
            self.user_id, "created", self.entity_type, row["id"],
            f"{self.singular.capitalize()} created: {self.describe(row)}",
        )
        self.notifier.success(f"{self.singular.capitalize()} created successfully")
        return row

    def update(self, id, partial):
        """Partial update scoped by id and owner. Returns True on success."""
        if not self._require_login("update"):
            return False

        problem = self.check_update(id, partial)
        if problem:
            self.error = problem
            self.error_code = StoreError.INVALID
            self.notifier.error(problem)
            return False

        row = self._apply_update(id, partial)
        if row is None:
            return False

        log_activity(
            self.user_id, "updated", self.entity_type, id,
            f"{self.singular.capitalize()} updated: {self.describe(row)}",
            {"fields": sorted(partial.keys())},
        )
        self.notifier.success(f"{self.singular.capitalize()} updated successfully")
        return True

    def delete(self, id):
        """Hard delete scoped by id and owner. Returns True on success."""
        if not self._require_login("delete"):
            return False

        response = self.store.delete(
            self.collection, {"id": id, "user_id": self.user_id}
        )
        if response.error:
            self._fail("delete", response.error)
            return False

        old = response.data[0] if response.data else {"id": id}
        self._remove(id)
        log_activity(
            self.user_id, "deleted", self.entity_type, id,
            f"{self.singular.capitalize()} deleted: {self.describe(old)}",
        )
        self.notifier.success(f"{self.singular.capitalize()} deleted successfully")
        return True

    def check_create(self, data):
        """Entity-specific create guard. Returns an error message or None."""
        return None

    def check_update(self, id, partial):
        """Entity-specific update guard. Returns an error message or None."""
        return None

    def _apply_update(self, id, partial):
        """Store update + cache replace, without activity or success notice."""
        response = self.store.update(
            self.collection, {"id": id, "user_id": self.user_id}, partial
        )
        if response.error:
            self._fail("update", response.error)
            return None

        row = response.data[0]
        self._replace(row)
        self.error = None
        self.error_code = None
        return row

    # ──────────────────────────────────────────────
    # Realtime write path
    # ──────────────────────────────────────────────

    def apply_change(self, payload):
        """Fold a realtime {eventType, old, new} push into the list.

        Returns True when the list changed.
        """
        event_type = payload.get("eventType")
        new = payload.get("new") or {}
        old = payload.get("old") or {}

        if event_type == "DELETE":
            if old.get("user_id") not in (None, self.user_id):
                return False
            if self._index(old.get("id")) is None:
                return False
            self._remove(old.get("id"))
            return True

        if event_type not in ("INSERT", "UPDATE") or not new.get("id"):
            return False
        if new.get("user_id") != self.user_id:
            return False

        current = self.get(new["id"])
        if current is not None:
            current_ts, incoming_ts = _timestamp(current), _timestamp(new)
            if current_ts and incoming_ts and incoming_ts < current_ts:
                logger.debug(
                    f"Ignoring stale {self.collection} push for {new['id']}"
                )
                return False
        self._replace(new)
        return True


# ──────────────────────────────────────────────
# Per-entity hooks
# ──────────────────────────────────────────────

def _person(row):
    name = f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()
    return name or row.get("id")


class LeadHook(EntityHook):
    collection = "leads"
    entity_type = "lead"

    # Lead fields carried over onto the customer on conversion.
    CUSTOMER_FIELDS = (
        "first_name", "last_name", "email", "phone",
        "address", "city", "state", "zip_code", "notes",
    )

    def describe(self, row):
        return _person(row)

    def convert_to_customer(self, lead_id):
        """Create a customer from a lead and mark the lead converted.

        Returns the customer row, or None.
        """
        if not self._require_login("convert"):
            return None

        lead = self.get(lead_id)
        if lead is None:
            response = self.store.select_one(
                self.collection, {"id": lead_id, "user_id": self.user_id}
            )
            if response.error:
                self._fail("convert", response.error)
                return None
            lead = response.data

        if lead.get("status") == "converted":
            self.error_code = StoreError.INVALID
            self.notifier.error("Lead has already been converted")
            return None

        payload = {key: lead.get(key) for key in self.CUSTOMER_FIELDS}
        payload["lead_id"] = lead_id
        try:
            with self.store.transaction():
                response = self.store.insert("customers", payload, self.user_id)
                if response.error:
                    raise StoreAborted(response.error)
                customer = response.data

                response = self.store.update(
                    self.collection, {"id": lead_id, "user_id": self.user_id},
                    {"status": "converted"},
                )
                if response.error:
                    raise StoreAborted(response.error)
        except StoreAborted as e:
            self._fail("convert", e.error)
            return None

        self._replace(response.data[0])
        self.error = None
        self.error_code = None

        log_activity(
            self.user_id, "converted", self.entity_type, lead_id,
            f"Lead converted to customer: {_person(lead)}",
            {"customer_id": customer["id"]},
        )
        self.notifier.success("Lead converted to customer successfully")
        return customer


class CustomerHook(EntityHook):
    collection = "customers"
    entity_type = "customer"

    def describe(self, row):
        return row.get("company_name") or _person(row)


class EstimateHook(EntityHook):
    collection = "estimates"
    entity_type = "estimate"

    def describe(self, row):
        return row.get("estimate_number") or row.get("title") or row.get("id")


class InvoiceHook(EntityHook):
    collection = "invoices"
    entity_type = "invoice"

    # Written by checkout and the payment webhook, never by the user.
    PAYMENT_FIELDS = ("paid_at", "stripe_session_id")

    def describe(self, row):
        return row.get("invoice_number") or row.get("title") or row.get("id")

    def _payment_field(self, data):
        for field in self.PAYMENT_FIELDS:
            if field in data:
                return field
        return None

    def check_create(self, data):
        field = self._payment_field(data)
        if field:
            return f"Invoice {field} is set only by payment processing"
        status = data.get("payment_status")
        if status not in (None, "unpaid"):
            return "New invoices start unpaid"
        return None

    def check_update(self, id, partial):
        field = self._payment_field(partial)
        if field:
            return f"Invoice {field} is set only by payment processing"
        if "payment_status" not in partial:
            return None

        current = self.get(id)
        if current is None:
            response = self.store.select_one(
                self.collection, {"id": id, "user_id": self.user_id}
            )
            if response.error:
                # Let the update itself report not-found / transient.
                return None
            current = response.data

        old_status = current.get("payment_status") or "unpaid"
        new_status = partial.get("payment_status")
        if new_status == "paid" and old_status != "paid":
            return "Invoices are marked paid only by payment confirmation"
        if not Invoice.can_transition(old_status, new_status):
            return f"Invalid payment status change from {old_status} to {new_status}"
        return None


class JobHook(EntityHook):
    collection = "jobs"
    entity_type = "job"


class TaskHook(EntityHook):
    collection = "tasks"
    entity_type = "task"


HOOKS = {
    hook.collection: hook
    for hook in (LeadHook, CustomerHook, EstimateHook, InvoiceHook, JobHook, TaskHook)
}


def hook_for(collection, store, user_id, notifier):
    """Build the hook for a collection name. Raises KeyError for unknown names."""
    return HOOKS[collection](store, user_id, notifier)
