"""Realtime blueprint — GET /api/realtime/stream?tables=leads,invoices

Server-Sent Events feed of the caller's committed changes. One subscriber
per stream; its channels are released when the client disconnects.

Events:
- ready         {channels}                       once, after subscribing
- change        {eventType, table, old, new}     per committed row change
- notification  {category, message}              channel errors, critical audit rows
- comment line  ": heartbeat"                    every REALTIME_HEARTBEAT_SECONDS
"""

import json
import logging
import queue

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user, login_required

from app.extensions import get_hub
from app.services.notifier import Notifier
from app.services.realtime import RealtimeSubscriber

logger = logging.getLogger(__name__)

realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")

STREAMABLE_TABLES = ("leads", "customers", "estimates", "invoices", "jobs", "tasks")


class QueueNotifier(Notifier):
    """Notifier that also forwards each message onto a stream's queue."""

    def __init__(self, events):
        super().__init__()
        self.events = events

    def _push(self, category, message):
        super()._push(category, message)
        self.events.put(("notification", {"category": category, "message": message}))


def _sse(event, data):
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


@realtime_bp.route("/stream")
@login_required
def stream():
    requested = request.args.get("tables") or ",".join(STREAMABLE_TABLES)
    tables = [t.strip() for t in requested.split(",") if t.strip()]
    unknown = [t for t in tables if t not in STREAMABLE_TABLES]
    if unknown:
        return jsonify({"error": f"Unknown table(s): {', '.join(unknown)}"}), 400

    hub = get_hub()
    user_id = current_user.id
    heartbeat = current_app.config.get("REALTIME_HEARTBEAT_SECONDS", 15)

    def generate():
        events = queue.Queue()
        subscriber = RealtimeSubscriber(hub, QueueNotifier(events))

        def forward(payload):
            events.put(("change", payload))

        configs = [{"table": t, "event": "any", "callback": forward} for t in tables]
        with subscriber:
            channels = subscriber.start(user_id, configs)
            yield _sse("ready", {"channels": [c.name for c in channels]})
            while True:
                try:
                    event, data = events.get(timeout=heartbeat)
                except queue.Empty:
                    yield ": heartbeat\n\n"
                    continue
                yield _sse(event, data)

    response = Response(generate(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response
