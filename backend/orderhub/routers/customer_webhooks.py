"""Generic customer webhook.

WHAT:
    POST /webhooks/customer creates a customer for the tenant whose
    integration owns the secret sent in `x-webhook-secret` (or
    `webhook-secret`). Body: {name, email, phone?, address?, source?, order_id?}.

WHY:
    Lead sources without a native integration (forms, landing pages,
    automation tools) still need to land customers in the CRM.

REFERENCES:
    - orderhub/services/customer_webhook_service.py (checks and insert)
"""

import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from orderhub.database import get_db
from orderhub.deps import get_notifier
from orderhub.errors import PayloadValidationError
from orderhub.schemas import CreatedCustomer, CustomerWebhookResponse, IntegrationSummary
from orderhub.services.customer_webhook_service import (
    CustomerWebhookService,
    authenticate,
    extract_webhook_secret,
)
from orderhub.services.notification_service import (
    Notifier,
    build_customer_notification,
    spawn_background,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Customer Webhooks"])


@router.post(
    "/customer",
    status_code=status.HTTP_201_CREATED,
    response_model=CustomerWebhookResponse,
)
async def handle_customer_webhook(
    request: Request,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    content_type = request.headers.get("content-type") or ""
    if "application/json" not in content_type:
        raise PayloadValidationError(
            "Content-Type must be application/json", error="Invalid content type"
        )

    try:
        body = json.loads(await request.body())
    except ValueError:
        raise PayloadValidationError("Request body must be valid JSON", error="Invalid JSON")

    integration = authenticate(db, extract_webhook_secret(request.headers))

    customer = CustomerWebhookService(db).create_customer(integration, body)

    spawn_background(
        notifier.notify(integration.user_id, build_customer_notification(customer, integration)),
        label=f"customer:{customer.id}",
    )

    return CustomerWebhookResponse(
        integration=IntegrationSummary(
            id=integration.id,
            name=integration.name,
            type=getattr(integration.type, "value", integration.type),
        ),
        data=CreatedCustomer(
            id=customer.id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
            source=customer.source,
            order_id=customer.order_id,
            created_at=customer.created_at,
        ),
    )


@router.api_route("/customer", methods=["GET", "PUT", "DELETE", "PATCH"], include_in_schema=False)
async def customer_webhook_method_not_allowed():
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={
            "error": "Method not allowed",
            "message": "Only POST method is supported for this webhook endpoint",
        },
    )
