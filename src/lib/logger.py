"""
Logging setup and PII masking.

Modules log through logging.getLogger(__name__). Anything that identifies a
user (emails, user IDs) goes through mask_email / mask_user_id first, and
context dicts through sanitize_data.
"""

import logging
import sys
from typing import Any, Optional

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

SENSITIVE_FIELDS = ("email", "password", "token", "secret", "key")


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    if any(getattr(h, "_spoqen_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._spoqen_handler = True
    root.addHandler(handler)

    # httpx logs every request at INFO, including query strings with API keys
    logging.getLogger("httpx").setLevel(logging.WARNING)


def mask_email(email: Optional[str]) -> str:
    """john.doe@example.com -> jo***@example.com"""
    if not email:
        return "no-email"
    local, _, domain = email.partition("@")
    if not domain:
        return "***@unknown"
    return f"{local[:2]}***@{domain}"


def mask_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        return "no-id"
    return f"{str(user_id)[:8]}..."


def sanitize_data(data: Any) -> Any:
    """Recursively mask sensitive fields in dicts and lists."""
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]

    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        lowered = str(key).lower()
        if any(field in lowered for field in SENSITIVE_FIELDS):
            if "email" in lowered:
                sanitized[key] = mask_email(value)
            else:
                sanitized[key] = "***"
        else:
            sanitized[key] = sanitize_data(value)
    return sanitized
