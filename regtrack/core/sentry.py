"""Sentry initialisation for the deadline worker."""

import sentry_sdk
import structlog
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = structlog.get_logger()

_SENSITIVE_KEYS = {"authorization", "cookie", "x-api-key", "email"}


def _scrub_sensitive_data(event: dict, hint: dict) -> dict:
    """Redact auth headers and user e-mail addresses before sending to Sentry."""
    headers = event.get("request", {}).get("headers", {})
    for header in list(headers):
        if header.lower() in _SENSITIVE_KEYS:
            headers[header] = "[REDACTED]"
    user = event.get("user")
    if isinstance(user, dict) and "email" in user:
        user["email"] = "[REDACTED]"
    return event


def init_sentry(
    dsn: str | None,
    environment: str = "development",
    release: str | None = None,
) -> bool:
    """Initialise Sentry with the SQLAlchemy and Celery integrations.

    Call before the Celery app is created. Returns ``False`` without doing
    anything when ``dsn`` is empty.
    """
    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return False

    is_prod = environment == "production"

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=0.1 if is_prod else 1.0,
        integrations=[
            SqlalchemyIntegration(),
            CeleryIntegration(monitor_beat_tasks=True),
        ],
        send_default_pii=False,
        before_send=_scrub_sensitive_data,
    )
    logger.info("sentry_initialized", environment=environment)
    return True
