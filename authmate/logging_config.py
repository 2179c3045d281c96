"""
Logging setup for AuthMate.

On Cloud Run (K_SERVICE set) records go through google-cloud-logging so
request traces are correlated. Everywhere else they are written to stdout
as one JSON object per line, shaped like Cloud Logging's jsonPayload.
"""

import json
import logging
import os
from datetime import UTC, datetime


# Attributes every LogRecord has; anything else came in through extra={...}
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

# extra={...} keys that are masked
SENSITIVE_KEYS = frozenset(
    {"access_token", "refresh_token", "id_token", "session_token", "client_secret", "code"}
)

REDACTED = "[redacted]"

# Client libraries whose INFO output repeats request URLs
_NOISY_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """
    One-line JSON formatter.

    Fields passed via extra={...} become top-level keys. Credential keys
    (SENSITIVE_KEYS) are replaced with REDACTED so a stray extra never leaks a
    token into the log stream.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "severity": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            payload[key] = REDACTED if key.lower() in SENSITIVE_KEYS else value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def _setup_cloud_logging(level: str) -> None:
    try:
        import google.cloud.logging

        google.cloud.logging.Client().setup_logging(log_level=logging.getLevelName(level))
    except Exception as e:
        # Credentials or metadata server unavailable
        logging.basicConfig(level=level)
        logging.warning(f"Cloud Logging unavailable, logging to stderr: {e}")
        return
    logging.info("Cloud Logging initialized")


def _setup_json_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


def configure_logging() -> None:
    """
    Configure the root logger once at startup.

    LOG_LEVEL sets the level (default INFO). httpx and httpcore are held at
    WARNING unless LOG_LEVEL is DEBUG.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()

    if os.getenv("K_SERVICE") is not None:
        _setup_cloud_logging(level)
    else:
        _setup_json_logging(level)

    if level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
