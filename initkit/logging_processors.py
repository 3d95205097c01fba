"""Custom structlog processors for initialization runs"""

from typing import Any, Dict

from structlog.contextvars import get_contextvars
from structlog.types import EventDict, WrappedLogger


def add_service_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level context to logs"""
    from initkit.config import settings

    event_dict["service"] = settings.app_name
    event_dict["environment"] = settings.environment
    return event_dict


def add_run_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add initialization run context from contextvars"""
    context = get_contextvars()

    for key in ("run_id", "project_root", "plugin", "hook"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


def sanitize_sensitive_data(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask secrets that plugins pass through environment overrides"""
    sensitive_keys = {
        "password", "token", "secret", "api_key", "authorization",
        "private_key", "access_token", "credential",
    }

    def sanitize_dict(d: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        for key, value in d.items():
            lower_key = str(key).lower()

            if any(sensitive in lower_key for sensitive in sensitive_keys):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    sanitize_dict(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    return sanitize_dict(event_dict)
