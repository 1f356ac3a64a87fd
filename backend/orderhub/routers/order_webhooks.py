"""Storefront order webhooks (Shopify, WooCommerce).

WHAT:
    POST /webhook/orders?domain=<store domain>
    Receives orders/create + orders/updated deliveries, verifies the HMAC
    signature with the integration's webhook secret, normalizes the payload
    and upserts customer/order/items (+ CRM lead for new orders).

WHY:
    - Domain in the query string lets one endpoint serve every tenant; the
      integration row decides the platform, the secret and the tenant
    - Signature is verified on the raw body BEFORE any parsing
    - Idempotent: redelivery returns 200 with the same identifiers

CHECK ORDER (first failure wins):
    400 missing domain ─► 404 unknown domain ─► 403 inactive
    ─► 400 missing signature header ─► 401 bad signature
    ─► 400 invalid JSON ─► 400 unsupported platform / schema errors
    ─► 200 {success, message, orderId, customerId, crmLeadId}

REFERENCES:
    - orderhub/services/signature.py
    - orderhub/services/normalizer.py
    - orderhub/services/order_ingestion_service.py
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from orderhub.database import get_db
from orderhub.deps import get_notifier
from orderhub.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    PayloadValidationError,
    UnsupportedPlatformError,
    WebhookError,
)
from orderhub.schemas import OrderWebhookResponse
from orderhub.services.integration_service import get_integration_by_domain
from orderhub.services.normalizer import normalize
from orderhub.services.notification_service import (
    Notifier,
    build_order_notification,
    spawn_background,
)
from orderhub.services.order_ingestion_service import OrderIngestionService
from orderhub.services.signature import mask_secret, signature_header_for, verify_signature
from orderhub.telemetry import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Order Webhooks"])


def _notify_new_order(notifier: Notifier, integration, result, external_order_id: str) -> None:
    """Spawn the tenant notification for a stored order.

    The order is already committed, so a failure here is logged and reported
    but never changes the response.
    """
    try:
        notification = build_order_notification(
            result.order, result.customer, integration, crm_lead_id=result.crm_lead_id
        )
        spawn_background(
            notifier.notify(integration.user_id, notification),
            label=f"order:{external_order_id}",
        )
    except Exception as e:
        logger.exception(f"[ORDER_WEBHOOK] Could not schedule notification for order {external_order_id}: {e}")
        capture_exception(e, extra={"external_order_id": external_order_id})


@router.post("/webhook/orders", response_model=OrderWebhookResponse)
async def handle_order_webhook(
    request: Request,
    domain: Optional[str] = None,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Ingest one order webhook delivery.

    The response never waits on the tenant notification; it is spawned as a
    background task only when the delivery created a new order.
    """
    if not domain or not domain.strip():
        raise PayloadValidationError(
            "The 'domain' query parameter is required", error="Missing domain parameter"
        )

    integration = get_integration_by_domain(db, domain)
    if integration is None:
        logger.warning(f"[ORDER_WEBHOOK] No integration for domain '{domain}'")
        raise NotFoundError(
            f"No integration found for domain '{domain}'", error="Integration not found"
        )

    if not integration.is_active:
        raise AuthorizationError(
            f"Integration '{integration.name}' is not active", error="Integration inactive"
        )

    body = await request.body()

    header = signature_header_for(integration.type)
    if header is None:
        raise UnsupportedPlatformError(getattr(integration.type, "value", integration.type))

    signature = request.headers.get(header)
    if not signature:
        raise PayloadValidationError(
            f"{header} header is required", error="Missing webhook signature"
        )

    if not verify_signature(body, signature, integration.webhook_secret):
        logger.warning(
            f"[ORDER_WEBHOOK] Invalid signature for domain '{domain}'",
            extra={"signature": mask_secret(signature)},
        )
        raise AuthenticationError(
            "The webhook signature does not match the request body",
            error="Invalid webhook signature",
        )

    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.error(f"[ORDER_WEBHOOK] Failed to parse JSON: {e}")
        raise PayloadValidationError("Request body must be valid JSON", error="Invalid JSON")

    canonical_order = normalize(integration.type, payload)

    try:
        result = OrderIngestionService(db).ingest(integration, canonical_order)
    except WebhookError:
        raise
    except Exception as e:
        logger.exception(
            f"[ORDER_WEBHOOK] Failed to ingest order {canonical_order.external_order_id} "
            f"for domain '{domain}': {e}"
        )
        capture_exception(e, extra={"domain": domain, "external_order_id": canonical_order.external_order_id})
        raise WebhookError("An unexpected error occurred while processing the webhook")

    if result.is_new_order:
        _notify_new_order(notifier, integration, result, canonical_order.external_order_id)

    return OrderWebhookResponse(
        orderId=result.order_id,
        customerId=result.customer_id,
        crmLeadId=result.crm_lead_id,
    )
