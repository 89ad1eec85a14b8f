"""
Logging configuration with secret redaction.

Credentials typed into login forms or carried in cookies never reach
the log output.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict

from crawlguard.utils.config import SECRET_PATTERNS


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive information from log records."""

    REDACTION_PATTERNS = [
        re.compile(pattern, re.IGNORECASE) for pattern in SECRET_PATTERNS
    ]

    VALUE_PATTERNS = [
        re.compile(r"Bearer\s+[A-Za-z0-9\-_\.]+", re.IGNORECASE),
        re.compile(r"Basic\s+[A-Za-z0-9\+/=]+", re.IGNORECASE),
        re.compile(r"eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+"),  # JWTs
    ]

    REDACTED = "[REDACTED]"

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_string(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_string(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    self._redact_string(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        return True

    def _redact_string(self, text: str) -> str:
        result = text
        for pattern in self.VALUE_PATTERNS:
            result = pattern.sub(self.REDACTED, result)

        # key=value or key: value
        for pattern in self.REDACTION_PATTERNS:
            result = re.sub(
                rf'({pattern.pattern})\s*[=:]\s*["\']?([^"\'\s,}}]+)["\']?',
                rf"\1={self.REDACTED}",
                result,
                flags=re.IGNORECASE,
            )
        return result


_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self):
        super().__init__()
        self.redacting_filter = RedactingFilter()

    def format(self, record: logging.LogRecord) -> str:
        self.redacting_filter.filter(record)

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text"):
    """Configure the root logger once per process."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    if fmt.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    handler.addFilter(RedactingFilter())
    root_logger.addHandler(handler)

    # Playwright's transport and the web server are noisy at INFO.
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def redact_dict(data: Dict[str, Any], keys_to_redact: list = None) -> Dict[str, Any]:
    """Redact sensitive keys from a dictionary, recursing into dicts and lists."""
    if keys_to_redact is None:
        keys_to_redact = SECRET_PATTERNS

    redacted = {}
    for key, value in data.items():
        if any(re.search(pattern, key, re.IGNORECASE) for pattern in keys_to_redact):
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_dict(value, keys_to_redact)
        elif isinstance(value, list):
            redacted[key] = [
                redact_dict(item, keys_to_redact) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value
    return redacted
