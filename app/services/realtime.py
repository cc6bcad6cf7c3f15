"""Realtime change feed.

RealtimeHub is the process-wide channel registry. The entity store
publishes every committed change to it; channels bound to a table, an
event kind and a `column=eq.value` filter receive {eventType, table, old,
new} payloads in the publishing thread.

RealtimeSubscriber owns one session's channels: one per watched table plus
an implicit audit_trail channel that warns about critical-compliance rows.
Channels are released on stop(), on context exit and on resubscribe.
Delivery is at-least-once while subscribed; there is no replay.
"""

import logging
import threading

from app.services.notifier import Notifier

logger = logging.getLogger(__name__)

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
CLOSED = "CLOSED"

EVENT_KINDS = {
    "insert": "INSERT",
    "update": "UPDATE",
    "delete": "DELETE",
    "any": "*",
    "*": "*",
}

DEFAULT_TABLES = (
    "leads", "customers", "estimates", "invoices", "jobs", "tasks",
    "activity_logs", "audit_trail",
)


def normalize_event(event):
    kind = EVENT_KINDS.get(str(event or "*").lower())
    if kind is None:
        raise ValueError(f"Unknown event kind: {event}")
    return kind


def parse_filter(expression):
    """'user_id=eq.42' -> ('user_id', '42'). None/empty -> None."""
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    if not sep or not rest.startswith("eq."):
        raise ValueError(f"Unsupported filter: {expression}")
    return column, rest[len("eq."):]


class Channel:
    def __init__(self, hub, name):
        self.hub = hub
        self.name = name
        self.bindings = []
        self.state = CLOSED

    def on(self, event, table, callback, filter=None):
        self.bindings.append({
            "event": normalize_event(event),
            "table": table,
            "filter": parse_filter(filter),
            "callback": callback,
        })
        return self

    def subscribe(self, status_callback=None):
        self.state = self.hub._attach(self)
        if status_callback is not None:
            status_callback(self.state)
        return self

    def matches(self, binding, table, event_type, record):
        if binding["table"] != table:
            return False
        if binding["event"] not in ("*", event_type):
            return False
        if binding["filter"] is not None:
            column, value = binding["filter"]
            if str(record.get(column)) != value:
                return False
        return True

    def __repr__(self):
        return f"<Channel {self.name} ({self.state})>"


class RealtimeHub:
    """Constructed once in create_app() and kept in app.extensions["realtime_hub"]."""

    def __init__(self, tables=DEFAULT_TABLES):
        self.tables = set(tables)
        # Keyed by channel object: two sessions of one user share channel names.
        self._channels = {}
        self._lock = threading.Lock()

    def channel(self, name):
        return Channel(self, name)

    def _attach(self, channel):
        unknown = [b["table"] for b in channel.bindings if b["table"] not in self.tables]
        if unknown:
            logger.warning(f"Channel {channel.name} references unknown table(s) {unknown}")
            return CHANNEL_ERROR
        with self._lock:
            self._channels[id(channel)] = channel
        return SUBSCRIBED

    def remove_channel(self, channel):
        with self._lock:
            self._channels.pop(id(channel), None)
        channel.state = CLOSED

    def channel_names(self):
        with self._lock:
            return sorted(c.name for c in self._channels.values())

    def publish(self, table, event_type, old=None, new=None):
        """Deliver a committed change to every matching channel."""
        payload = {"eventType": event_type, "table": table, "old": old, "new": new}
        record = new or old or {}

        with self._lock:
            channels = list(self._channels.values())

        delivered = 0
        for channel in channels:
            for binding in channel.bindings:
                if not channel.matches(binding, table, event_type, record):
                    continue
                try:
                    binding["callback"](payload)
                    delivered += 1
                except Exception as e:
                    logger.error(
                        f"Realtime callback on {channel.name} failed: {e}", exc_info=True
                    )
        return delivered


class RealtimeSubscriber:
    """One session's set of channels.

    configs: list of dicts with table, event (insert/update/delete/any),
    callback and an optional filter (defaults to the user's own rows).
    """

    def __init__(self, hub, notifier=None):
        self.hub = hub
        self.notifier = notifier or Notifier()
        self.channels = []
        self.user_id = None
        self._signature = None

    @staticmethod
    def _signature_of(user_id, configs):
        return (user_id, tuple(
            (c["table"], c.get("event", "*"), c.get("filter"), id(c["callback"]))
            for c in configs
        ))

    def start(self, user_id, configs):
        if self.channels:
            self.stop()
        if not user_id:
            return []

        for index, config in enumerate(configs):
            table = config["table"]
            event = config.get("event", "*")
            channel = self.hub.channel(f"{table}_{event}_{user_id}_{index}")
            channel.on(
                event, table, config["callback"],
                filter=config.get("filter") or f"user_id=eq.{user_id}",
            )
            channel.subscribe(self._status_handler(table))
            self.channels.append(channel)

        audit = self.hub.channel(f"audit_trail_INSERT_{user_id}")
        audit.on("insert", "audit_trail", self._on_audit, filter=f"user_id=eq.{user_id}")
        audit.subscribe(self._status_handler("audit_trail"))
        self.channels.append(audit)

        self.user_id = user_id
        self._signature = self._signature_of(user_id, configs)
        logger.info(f"Realtime: {len(self.channels)} channel(s) open for user {user_id}")
        return self.channels

    def stop(self):
        for channel in self.channels:
            self.hub.remove_channel(channel)
        if self.channels:
            logger.info(f"Realtime: closed {len(self.channels)} channel(s) for user {self.user_id}")
        self.channels = []
        self.user_id = None
        self._signature = None

    def sync(self, user_id, configs):
        """Resubscribe only if the user or the config list changed."""
        if self.channels and self._signature == self._signature_of(user_id, configs):
            return False
        self.stop()
        self.start(user_id, configs)
        return True

    @property
    def active(self):
        return bool(self.channels)

    def _status_handler(self, table):
        def handle(status):
            if status == CHANNEL_ERROR:
                self.notifier.error(f"Failed to connect to real-time updates for {table}")
        return handle

    def _on_audit(self, payload):
        record = payload.get("new") or {}
        if record.get("compliance_level") == "critical":
            self.notifier.warning(
                f"Critical action logged: {record.get('action')} on {record.get('table_name')}"
            )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
