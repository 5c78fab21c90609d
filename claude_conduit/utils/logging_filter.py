"""Logging filter for automatic secret redaction."""

import logging

from .redaction import redact_secrets


class RedactionFilter(logging.Filter):
    """Redact secrets from log messages and their string arguments."""

    MAX_REDACTION_SIZE = 8 * 1024  # skip regex work on very large messages

    def filter(self, record: logging.LogRecord) -> bool:
        """Always lets the record through, after redaction."""
        if len(str(record.msg)) > self.MAX_REDACTION_SIZE:
            return True

        record.msg = redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact(v) for k, v in record.args.items()}
            else:
                record.args = tuple(self._redact(arg) for arg in record.args)

        return True

    def _redact(self, value):
        if isinstance(value, str) and len(value) <= self.MAX_REDACTION_SIZE:
            return redact_secrets(value)
        return value
