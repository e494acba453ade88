"""Logging utilities for secret scrubbing and setup.

Cluster keepalive: periodic liveness operations against a MongoDB cluster.
"""

import logging
import re
from typing import Optional, Union


# Secret scrubbing regex
SECRET_URI_RE = re.compile(r"(mongodb\+srv://|mongodb://)([^:@/]+):([^@/]+)@")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Loggers from the driver that are too chatty at INFO
NOISY_LOGGERS = ("pymongo",)


def scrub_secrets(msg: str) -> str:
    """Scrub secrets (MongoDB connection strings, etc.) from log messages.

    Args:
        msg: Log message that may contain secrets

    Returns:
        Message with secrets redacted
    """
    if not msg:
        return msg
    return SECRET_URI_RE.sub(r"\1***:***@", msg)


class SecretScrubFilter(logging.Filter):
    """Filter that rewrites log records so credentials in URIs never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        scrubbed = scrub_secrets(msg)
        if scrubbed != msg:
            # Freeze the formatted message so handlers don't re-render the args
            record.msg = scrubbed
            record.args = ()
        return True


# Singleton instance for reuse
_secret_scrub_filter = SecretScrubFilter()


def parse_log_level(level: Union[str, int, None], default: int = logging.INFO) -> int:
    """Resolve a level name ("debug", "INFO") or number to a logging level.

    Unknown names resolve to ``default``.
    """
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    value = str(level).strip()
    if value.isdigit():
        return int(value)
    resolved = logging.getLevelName(value.upper())
    return resolved if isinstance(resolved, int) else default


def configure_logging(level: Union[str, int, None] = None,
                      handler: Optional[logging.Handler] = None) -> logging.Logger:
    """
    Configure the root logger for the keepalive process.

    Installs the standard format, attaches the secret scrubbing filter to every
    root handler and quiets the driver loggers.

    Args:
        level: Log level name or number (default: INFO)
        handler: Optional handler to install instead of the default stream handler

    Returns:
        The configured root logger
    """
    resolved = parse_log_level(level)
    handlers = [handler] if handler is not None else None
    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=handlers, force=True)

    root = logging.getLogger()
    for h in root.handlers:
        if _secret_scrub_filter not in h.filters:
            h.addFilter(_secret_scrub_filter)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    return root
