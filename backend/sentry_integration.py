"""
Ledger API - Sentry Integration

Error tracking with Sentry. Every helper is a no-op until init_sentry()
has succeeded, so callers never need to check whether a DSN is configured.
"""

import os
import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = (
    "password", "token", "secret", "api_key", "authorization",
    "jwt", "cookie",
)

_sentry_enabled = False


def init_sentry(
    dsn: Optional[str] = None,
    environment: str = "development",
    release: Optional[str] = None,
    sample_rate: float = 1.0,
    traces_sample_rate: float = 0.1,
) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        dsn: Sentry DSN (from environment if not provided)
        environment: Environment name (production, staging, development)
        release: Release version
        sample_rate: Error sampling rate (0.0 to 1.0)
        traces_sample_rate: Performance tracing sample rate

    Returns:
        True if Sentry was initialized, False otherwise
    """
    global _sentry_enabled

    dsn = dsn or os.environ.get("SENTRY_DSN", "")
    if not dsn:
        logger.info("Sentry DSN not configured. Error tracking disabled.")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release or os.environ.get("GIT_SHA", "unknown"),
            sample_rate=sample_rate,
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            send_default_pii=False,
            before_send=filter_sensitive_data,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    _sentry_enabled = True
    logger.info(f"Sentry initialized for environment: {environment}")
    return True


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: "[REDACTED]" if any(s in str(key).lower() for s in SENSITIVE_KEYS) else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Redact credentials from request headers, bodies and extras."""
    request = event.get("request")
    if isinstance(request, dict):
        for key in ("headers", "data"):
            if key in request:
                request[key] = _redact(request[key])

    if "extra" in event:
        event["extra"] = _redact(event["extra"])

    return event


def capture_exception(exception: Exception, **kwargs) -> Optional[str]:
    """
    Capture an exception to Sentry.

    Args:
        exception: The exception to capture
        **kwargs: Additional context attached as extras

    Returns:
        Event ID if captured, None otherwise
    """
    if not _sentry_enabled:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in kwargs.items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)


def set_user(user_id: int, username: Optional[str] = None, role: Optional[str] = None):
    """Set user context for Sentry."""
    if not _sentry_enabled:
        return

    sentry_sdk.set_user({
        "id": str(user_id),
        "username": username,
        "role": role,
    })
