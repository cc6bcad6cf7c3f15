"""User-facing notifications collected during one request.

Hooks and the realtime subscriber report success, failure and warnings here;
blueprints return them to the client alongside the response body.
"""

import logging

logger = logging.getLogger(__name__)


class Notifier:
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"

    def __init__(self):
        self.messages = []

    def _push(self, category, message):
        self.messages.append({"category": category, "message": message})
        level = logging.WARNING if category != self.SUCCESS else logging.INFO
        logger.log(level, f"[{category}] {message}")

    def success(self, message):
        self._push(self.SUCCESS, message)

    def error(self, message):
        self._push(self.ERROR, message)

    def warning(self, message):
        self._push(self.WARNING, message)

    @property
    def last(self):
        return self.messages[-1] if self.messages else None

    def drain(self):
        """Return and clear everything collected so far."""
        messages, self.messages = self.messages, []
        return messages

    def __len__(self):
        return len(self.messages)
