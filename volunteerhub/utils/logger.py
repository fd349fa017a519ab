"""
Structured logging for messaging events.

Send and read-receipt failures are written as one JSON document per record
so they can be filtered by user, partner or error code.
"""

import json
import logging
import sys
from datetime import datetime


class StructuredLogger:
    """Wraps a stdlib logger and serializes keyword context into the message."""

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Handlers are attached once per logger name
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(handler)

    def _log(self, level: int, event: str, **context):
        if not self.logger.isEnabledFor(level):
            return
        record = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
            "service": self.logger.name,
            **context,
        }
        self.logger.log(level, json.dumps(record, default=str))

    def warning(self, event: str, **context):
        self._log(logging.WARNING, event, **context)

    def error(self, event: str, **context):
        self._log(logging.ERROR, event, **context)


messaging_logger = StructuredLogger("volunteerhub.messaging")
