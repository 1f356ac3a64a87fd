"""Order payload normalizer.

WHAT:
    Validates a storefront order webhook against its platform schema and maps
    it into the platform-agnostic CanonicalOrder.

WHY:
    Everything downstream (upsert, CRM fan-out, notifications) works on one
    shape. Adding a platform means adding an OrderPlatform member plus one
    (schema, mapper) entry; the module refuses to import if the two disagree.

FLOW:
    raw JSON ──► pydantic schema ──► mapper ──► CanonicalOrder
                      │
                      └─ ValidationError ──► PayloadValidationError(details)

REFERENCES:
    - orderhub/schemas.py (payload and canonical models)
    - orderhub/routers/order_webhooks.py (caller)
"""

import enum
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from orderhub.errors import PayloadValidationError, UnsupportedPlatformError
from orderhub.schemas import (
    CanonicalCustomer,
    CanonicalOrder,
    CanonicalOrderItem,
    ShopifyOrderPayload,
    WooCommerceOrderPayload,
)

logger = logging.getLogger(__name__)


class OrderPlatform(str, enum.Enum):
    """Storefront platforms whose order webhooks we can normalize."""
    shopify = "shopify"
    woocommerce = "woocommerce"


DEFAULT_ORDER_STATUS = "pending"


# =============================================================================
# HELPERS
# =============================================================================

def _join(*parts: Optional[str]) -> str:
    """Join optional strings with a space and trim the result."""
    return " ".join(part or "" for part in parts).strip()


def _to_naive_utc(value: Optional[datetime]) -> datetime:
    """Timestamps are stored as naive UTC; missing ones become receipt time."""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _require_email(email: Optional[str], field: str) -> str:
    """Customers are keyed by the trimmed, lowercased email on every webhook."""
    email = (email or "").strip().lower()
    if not email:
        raise PayloadValidationError(
            "Order payload does not identify the customer",
            details=[{"field": field, "message": "Customer email is required"}],
        )
    return email


def _validation_details(exc: ValidationError) -> list[dict[str, str]]:
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "body"
        details.append({"field": field, "message": error["msg"]})
    return details


# =============================================================================
# PLATFORM MAPPERS
# =============================================================================

def _map_shopify(payload: ShopifyOrderPayload) -> CanonicalOrder:
    customer = payload.customer

    email = (customer.email if customer else None) or payload.email
    email = _require_email(email, "customer.email")

    address = None
    if customer and customer.default_address:
        default_address = customer.default_address
        address = {
            "street": _join(default_address.address1, default_address.address2),
            "city": default_address.city or "",
            "state": default_address.province or "",
            "zip": default_address.zip or "",
            "country": default_address.country or "",
        }

    return CanonicalOrder(
        external_order_id=str(payload.id),
        status=payload.financial_status or DEFAULT_ORDER_STATUS,
        total_amount=Decimal(payload.total_price),
        currency=payload.currency,
        order_created_at=_to_naive_utc(payload.created_at),
        customer=CanonicalCustomer(
            email=email,
            name=_join(customer.first_name, customer.last_name) if customer else "",
            phone=(customer.phone if customer else None) or "",
            address=address,
        ),
        items=[
            CanonicalOrderItem(
                product_sku=item.sku or "",
                product_name=item.title,
                quantity=item.quantity,
                price_per_unit=Decimal(item.price),
            )
            for item in payload.line_items
        ],
    )


def _woocommerce_address_block(block) -> dict[str, str]:
    return {
        "street": _join(block.address_1, block.address_2),
        "city": block.city or "",
        "state": block.state or "",
        "zip": block.postcode or "",
        "country": block.country or "",
    }


def _map_woocommerce(payload: WooCommerceOrderPayload) -> CanonicalOrder:
    billing = payload.billing
    email = _require_email(billing.email, "billing.email")

    address: dict[str, Any] = _woocommerce_address_block(billing)
    if payload.shipping is not None:
        # Keep both blocks when the store ships somewhere else
        address["billing"] = _woocommerce_address_block(billing)
        address["shipping"] = _woocommerce_address_block(payload.shipping)

    return CanonicalOrder(
        external_order_id=str(payload.id),
        status=payload.status,
        total_amount=Decimal(payload.total),
        currency=payload.currency,
        order_created_at=_to_naive_utc(payload.date_created),
        customer=CanonicalCustomer(
            email=email,
            name=_join(billing.first_name, billing.last_name),
            phone=billing.phone or "",
            address=address,
        ),
        items=[
            CanonicalOrderItem(
                product_sku=item.sku or "",
                product_name=item.name,
                quantity=item.quantity,
                # str() first so 19.99 stays 19.99 instead of its binary expansion
                price_per_unit=Decimal(str(item.price)),
            )
            for item in payload.line_items
        ],
    )


# =============================================================================
# DISPATCH
# =============================================================================

_NORMALIZERS: dict[OrderPlatform, tuple[type[BaseModel], Callable[[Any], CanonicalOrder]]] = {
    OrderPlatform.shopify: (ShopifyOrderPayload, _map_shopify),
    OrderPlatform.woocommerce: (WooCommerceOrderPayload, _map_woocommerce),
}

_missing = set(OrderPlatform) - set(_NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer registered for: {sorted(p.value for p in _missing)}")


def resolve_platform(platform: Any) -> OrderPlatform:
    """Map an integration type (enum or string) to an OrderPlatform.

    Raises:
        UnsupportedPlatformError: If the type has no order normalizer
    """
    value = getattr(platform, "value", platform)
    try:
        return OrderPlatform(value)
    except ValueError:
        raise UnsupportedPlatformError(value)


def normalize(platform: Any, raw_json: Any) -> CanonicalOrder:
    """Validate a parsed webhook body and map it to a CanonicalOrder.

    Args:
        platform: Integration type (IntegrationTypeEnum, OrderPlatform or str)
        raw_json: Parsed JSON body

    Returns:
        CanonicalOrder

    Raises:
        UnsupportedPlatformError: Platform has no normalizer
        PayloadValidationError: Body does not match the platform schema
    """
    order_platform = resolve_platform(platform)
    schema, mapper = _NORMALIZERS[order_platform]

    try:
        payload = schema.model_validate(raw_json)
        return mapper(payload)
    except ValidationError as exc:
        details = _validation_details(exc)
        logger.info(
            f"[NORMALIZER] {order_platform.value} payload rejected ({len(details)} field errors)"
        )
        raise PayloadValidationError(
            f"Invalid {order_platform.value} order payload", details=details
        )
