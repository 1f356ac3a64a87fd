"""
Sentry Error Tracking
=====================

Centralized error tracking for the webhook ingestion service.

Related files:
- orderhub/main.py: Initializes Sentry in create_app()
- orderhub/errors.py: Catch-all handler reports unexpected failures here
- orderhub/services/notification_service.py: Background task failures reported here

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Release identifier (set via CI/CD)
"""

from __future__ import annotations

import os
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def get_sentry_dsn() -> Optional[str]:
    """Get Sentry DSN from environment variable."""
    return os.environ.get("SENTRY_DSN")


def init_sentry() -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Should be called once during application startup, before routes are served.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.

    Side effects:
        - Configures global Sentry SDK
        - Sets up integrations for FastAPI, SQLAlchemy and logging
    """
    global _initialized

    dsn = get_sentry_dsn()
    if not dsn:
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,         # Capture INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            # Webhook payloads carry buyer PII (emails, phones, addresses)
            send_default_pii=False,
            release=os.environ.get("RELEASE_VERSION"),
        )
        _initialized = True
        logger.debug(f"[SENTRY] Initialized for {environment} environment")
        return True

    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Report a handled exception to Sentry.

    Use this for failures that are caught and turned into a response (the 500
    handler) or swallowed on purpose (notification tasks) but should still be
    visible in monitoring.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event
    """
    if not _initialized:
        return

    try:
        with sentry_sdk.push_scope() as scope:
            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture exception: {e}")
