"""Pydantic schemas for webhook payloads, the canonical order and responses.

Platform payload models describe only what the pipeline reads. Unknown keys
are ignored (platforms add fields all the time); nested objects are optional
because platforms routinely omit them. Numeric identifiers and quantities are
strict: a string "42" where Shopify documents a number is a schema error.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictFloat, StrictInt, field_validator

# Money columns are Numeric(18, 4): at most 14 integer digits
MAX_MONEY_AMOUNT = Decimal(10) ** 14


def _parse_decimal_string(value: str) -> str:
    """Reject money strings that are not a finite, non-negative decimal
    small enough for the money columns."""
    try:
        parsed = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError("must be a numeric string")
    if not parsed.is_finite():
        raise ValueError("must be a numeric string")
    if parsed < 0:
        raise ValueError("must not be negative")
    if parsed >= MAX_MONEY_AMOUNT:
        raise ValueError("exceeds the maximum supported amount")
    return value


# =============================================================================
# SHOPIFY ORDER PAYLOAD
# =============================================================================

class ShopifyAddress(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None


class ShopifyCustomer(BaseModel):
    id: StrictInt
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    default_address: Optional[ShopifyAddress] = None


class ShopifyLineItem(BaseModel):
    id: StrictInt
    product_id: Optional[StrictInt] = None
    variant_id: Optional[StrictInt] = None
    title: str
    name: Optional[str] = None
    sku: Optional[str] = None
    quantity: StrictInt = Field(ge=1)
    price: str  # Shopify sends money as strings ("10.00")

    @field_validator("price")
    @classmethod
    def check_price(cls, value: str) -> str:
        return _parse_decimal_string(value)


class ShopifyOrderPayload(BaseModel):
    """orders/create & orders/updated webhook body (REST Admin API shape)."""

    id: StrictInt
    email: Optional[EmailStr] = None
    created_at: Optional[datetime] = None  # Receipt time is used when absent
    updated_at: Optional[datetime] = None
    total_price: str
    currency: str
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    line_items: list[ShopifyLineItem]

    @field_validator("total_price")
    @classmethod
    def check_total_price(cls, value: str) -> str:
        return _parse_decimal_string(value)


# =============================================================================
# WOOCOMMERCE ORDER PAYLOAD
# =============================================================================

class WooCommerceBilling(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address_1: Optional[str] = None
    address_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None


class WooCommerceShipping(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address_1: Optional[str] = None
    address_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None


class WooCommerceLineItem(BaseModel):
    id: StrictInt
    name: str
    product_id: StrictInt
    sku: Optional[str] = None
    quantity: StrictInt = Field(ge=1)
    price: StrictFloat = Field(ge=0, lt=float(MAX_MONEY_AMOUNT))  # Already numeric, unlike Shopify
    total: str


class WooCommerceOrderPayload(BaseModel):
    """order.created / order.updated webhook body (WC REST API v3 shape)."""

    id: StrictInt
    date_created: Optional[datetime] = None
    date_modified: Optional[datetime] = None
    total: str
    currency: str
    status: str
    billing: WooCommerceBilling
    shipping: Optional[WooCommerceShipping] = None
    line_items: list[WooCommerceLineItem]

    @field_validator("total")
    @classmethod
    def check_total(cls, value: str) -> str:
        return _parse_decimal_string(value)


# =============================================================================
# CANONICAL ORDER
# =============================================================================

class CanonicalCustomer(BaseModel):
    email: str
    name: str = ""
    phone: str = ""
    address: Optional[dict[str, Any]] = None


class CanonicalOrderItem(BaseModel):
    product_sku: str = ""
    product_name: str
    quantity: int = Field(ge=1)
    price_per_unit: Decimal = Field(ge=0)


class CanonicalOrder(BaseModel):
    """Platform-agnostic order every payload is mapped into before storage."""

    model_config = ConfigDict(frozen=True)

    external_order_id: str
    status: str
    total_amount: Decimal
    currency: Optional[str] = None
    order_created_at: datetime
    customer: CanonicalCustomer
    items: list[CanonicalOrderItem]


# =============================================================================
# RESPONSES
# =============================================================================

class OrderWebhookResponse(BaseModel):
    """200 body of POST /webhook/orders (camelCase keys are part of the contract)."""

    success: bool = True
    message: str = "Order processed successfully"
    orderId: UUID
    customerId: UUID
    crmLeadId: Optional[UUID] = None


class IntegrationSummary(BaseModel):
    id: UUID
    name: str
    type: str


class CreatedCustomer(BaseModel):
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    source: Optional[str] = None
    order_id: Optional[int] = None
    created_at: Optional[datetime] = None


class CustomerWebhookResponse(BaseModel):
    """201 body of POST /webhooks/customer."""

    success: bool = True
    message: str = "Customer created successfully"
    integration: IntegrationSummary
    data: CreatedCustomer


class HealthResponse(BaseModel):
    status: str = Field(description="Service status", examples=["ok"])
