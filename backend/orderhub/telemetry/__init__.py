"""
Telemetry Module
================

Observability for the ingestion service. Logging is plain stdlib `logging`
configured in orderhub/main.py; this package only wraps Sentry.

Environment Variables:
- SENTRY_DSN: Sentry project DSN

Usage:
    from orderhub.telemetry import init_sentry, capture_exception
"""

from orderhub.telemetry.sentry import (
    init_sentry,
    capture_exception,
)


__all__ = [
    "init_sentry",
    "capture_exception",
]
