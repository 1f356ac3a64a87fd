"""Integration lookups and webhook secret provisioning.

WHAT:
    Resolves the integration an inbound webhook belongs to (by storefront
    domain or by bearer secret) and generates/rotates webhook secrets.

WHY:
    Both webhook routers authenticate through the integration row; keeping
    the queries here means the routers never build filters themselves.

REFERENCES:
    - orderhub/models.py (Integration: domain and webhook_secret are unique)
"""

import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from orderhub.models import Integration

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_PREFIX = "wh_"
MAX_SECRET_ATTEMPTS = 5


def get_integration_by_domain(db: Session, domain: str) -> Optional[Integration]:
    """Integration registered for a storefront domain (active or not)."""
    return db.query(Integration).filter(Integration.domain == domain.strip()).first()


def get_integration_by_secret(db: Session, secret: str) -> Optional[Integration]:
    """Integration whose webhook_secret matches exactly.

    NOTE: bearer-secret authentication used by the generic customer webhook.
    The secret travels in clear on every request and cannot be scoped, so
    integrations using it should rotate regularly (rotate_webhook_secret).
    """
    if not secret:
        return None
    return db.query(Integration).filter(Integration.webhook_secret == secret).first()


def generate_webhook_secret() -> str:
    """Return a new secret: 'wh_' + 40 hex characters."""
    return WEBHOOK_SECRET_PREFIX + secrets.token_hex(20)


def generate_unique_webhook_secret(db: Session) -> str:
    """Generate a secret not used by any integration.

    Raises:
        RuntimeError: If every attempt collided with an existing secret
    """
    for attempt in range(1, MAX_SECRET_ATTEMPTS + 1):
        candidate = generate_webhook_secret()
        exists = (
            db.query(Integration.id)
            .filter(Integration.webhook_secret == candidate)
            .first()
        )
        if not exists:
            return candidate
        logger.warning(f"[INTEGRATIONS] Webhook secret collision (attempt {attempt}/{MAX_SECRET_ATTEMPTS})")

    raise RuntimeError("Failed to generate unique webhook secret after maximum retries")


def rotate_webhook_secret(db: Session, integration: Integration) -> str:
    """Replace an integration's webhook secret and commit.

    The old secret stops working immediately; storefront webhook settings must
    be updated with the returned value.
    """
    new_secret = generate_unique_webhook_secret(db)
    integration.webhook_secret = new_secret
    db.commit()
    db.refresh(integration)
    logger.info(f"[INTEGRATIONS] Rotated webhook secret for integration {integration.id}")
    return new_secret
