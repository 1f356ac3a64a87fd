"""Generic customer webhook: authentication, validation and insert.

WHAT:
    Lets any external system (form builders, landing pages, Zapier) create a
    customer for a tenant by POSTing JSON with the integration's webhook
    secret in a header.

WHY:
    Checks run in a fixed order so callers always get the same error for the
    same mistake:

        secret header ─► integration lookup ─► name/email ─► allow-list
        ─► email format ─► phone format ─► address ─► order_id
        ─► duplicate (409) ─► insert

    Unlike the order webhook there is no body signature: the secret itself is
    the credential. See get_integration_by_secret().

REFERENCES:
    - orderhub/routers/customer_webhooks.py (HTTP layer: content type, JSON)
    - orderhub/services/integration_service.py
"""

import json
import logging
import re
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from orderhub.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    PayloadValidationError,
    WebhookError,
)
from orderhub.models import Customer, Integration
from orderhub.services.integration_service import get_integration_by_secret
from orderhub.services.signature import mask_secret

logger = logging.getLogger(__name__)

SECRET_HEADERS = ("x-webhook-secret", "webhook-secret")
ALLOWED_FIELDS = ("name", "email", "phone", "address", "source", "order_id")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-+()]{7,20}$")


def extract_webhook_secret(headers: Mapping[str, str]) -> Optional[str]:
    """Secret from x-webhook-secret, falling back to webhook-secret."""
    for header in SECRET_HEADERS:
        value = headers.get(header)
        if value:
            return value
    return None


def authenticate(db: Session, secret: Optional[str]) -> Integration:
    """Resolve the integration owning a bearer webhook secret.

    Raises:
        AuthenticationError: Secret missing or unknown
        AuthorizationError: Integration disabled
    """
    if not secret:
        raise AuthenticationError(
            "x-webhook-secret header is required", error="Missing webhook secret"
        )

    integration = get_integration_by_secret(db, secret)
    if integration is None:
        logger.warning(f"[CUSTOMER_WEBHOOK] Unknown webhook secret {mask_secret(secret)}")
        raise AuthenticationError(
            "The provided webhook secret is not valid or does not exist",
            error="Invalid webhook secret",
        )

    if not integration.is_active:
        raise AuthorizationError(
            f"Integration '{integration.name}' is not active", error="Integration inactive"
        )

    return integration


def _require_string(body: Mapping[str, Any], field: str) -> str:
    value = body.get(field)
    if not isinstance(value, str) or not value.strip():
        raise PayloadValidationError(
            f"{field} is required and must be a non-empty string",
            error="Missing required field",
        )
    return value


def _parse_address(value: Any) -> Optional[dict]:
    if not value:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise PayloadValidationError(
                "Address must be a valid JSON object", error="Invalid address format"
            )
    if not isinstance(value, dict):
        raise PayloadValidationError(
            "Address must be a JSON object or string", error="Invalid address format"
        )
    return value


def _parse_order_id(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    # bool is an int subclass; true/false is not an order number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadValidationError("order_id must be a number", error="Invalid order_id format")
    if isinstance(value, float):
        if not value.is_integer():
            raise PayloadValidationError(
                "order_id must be a whole number", error="Invalid order_id format"
            )
        value = int(value)
    return value or None


class CustomerWebhookService:
    """Creates customers from generic webhook payloads for one integration."""

    def __init__(self, db: Session):
        self.db = db

    def find_customer(self, integration: Integration, email: str) -> Optional[Customer]:
        return (
            self.db.query(Customer)
            .filter(Customer.user_id == integration.user_id, Customer.email == email)
            .first()
        )

    def create_customer(self, integration: Integration, body: Any) -> Customer:
        """Validate the payload and insert a new customer.

        Raises:
            PayloadValidationError: Field missing, disallowed or malformed
            ConflictError: A customer with this email already exists for the tenant
            WebhookError: Database failure (500)
        """
        if not isinstance(body, dict):
            body = {}

        name = _require_string(body, "name")
        email = _require_string(body, "email")

        invalid_fields = [key for key in body if key not in ALLOWED_FIELDS]
        if invalid_fields:
            raise PayloadValidationError(
                f"Invalid fields: {', '.join(invalid_fields)}. "
                f"Allowed fields: {', '.join(ALLOWED_FIELDS)}",
                error="Invalid fields",
            )

        normalized_email = email.strip().lower()
        if not EMAIL_RE.match(normalized_email):
            raise PayloadValidationError(
                "Please provide a valid email address", error="Invalid email format"
            )

        phone = body.get("phone")
        if phone:
            if not isinstance(phone, str) or not PHONE_RE.match(phone.strip()):
                raise PayloadValidationError(
                    "Please provide a valid phone number "
                    "(7-20 digits, spaces, dashes, parentheses, and + allowed)",
                    error="Invalid phone format",
                )

        address = _parse_address(body.get("address"))
        order_id = _parse_order_id(body.get("order_id"))

        source = body.get("source")
        if source is not None and not isinstance(source, str):
            raise PayloadValidationError("source must be a string", error="Invalid source format")

        existing = self.find_customer(integration, normalized_email)
        if existing is not None:
            raise ConflictError(
                "A customer with this email already exists for your account",
                error="Customer already exists",
                data={"id": str(existing.id), "email": normalized_email},
            )

        platform = getattr(integration.type, "value", integration.type)
        customer = Customer(
            user_id=integration.user_id,
            name=name.strip(),
            email=normalized_email,
            phone=phone.strip() if phone else None,
            address=address,
            source=source or f"{platform}_webhook",
            order_id=order_id,
            total_orders=0,
        )

        try:
            self.db.add(customer)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(
                "A customer with this email already exists", error="Duplicate customer"
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"[CUSTOMER_WEBHOOK] Insert failed: {e}")
            raise WebhookError("Failed to create customer in database", error="Database error")

        self.db.refresh(customer)
        logger.info(
            f"[CUSTOMER_WEBHOOK] Created customer {customer.id} for integration {integration.id}",
            extra={"source": customer.source},
        )
        return customer
