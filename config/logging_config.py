"""
Logging setup for the FinSight data service.

LOG_LEVEL picks the root level (default INFO); LOG_JSON=1 switches to one
JSON object per line. Every handler carries CredentialRedactor, so an
`apikey=` query fragment never reaches the output even if some library
logs a full upstream URL.
"""
import json
import logging
import os
import re
import sys
from typing import Any, Dict

_APIKEY_RE = re.compile(r"(apikey=)[^&\s\"']+", re.IGNORECASE)
REDACTED = "***"

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def redact(text: str) -> str:
    return _APIKEY_RE.sub(r"\g<1>" + REDACTED, text)


class CredentialRedactor(logging.Filter):
    """Rewrites the rendered message with any apikey value masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        clean = redact(msg)
        if clean != msg:
            record.msg, record.args = clean, None
        return True


class JsonFormatter(logging.Formatter):
    """Single-line JSON: ts, level, logger, message (+ exception, + context)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            payload.update({k: v for k, v in context.items() if k not in payload and v is not None})
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    as_json = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CredentialRedactor())
    handler.setFormatter(
        JsonFormatter() if as_json else logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(level)
    # reconfiguring (e.g. uvicorn --reload) must not stack handlers
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
