"""SQLAlchemy ORM models and enums.

This module defines the ingestion schema using UUID primary keys and explicit
relationships. Idempotency of webhook deliveries is enforced here, by unique
constraints, not only by the find-then-create logic in the services:

    - integrations.domain and integrations.webhook_secret are globally unique
    - customers are unique per (user_id, email)
    - orders are unique per (integration_id, external_order_id)
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Enum,
    Integer,
    BigInteger,
    ForeignKey,
    Numeric,
    JSON,
    Boolean,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class IntegrationTypeEnum(str, enum.Enum):
    shopify = "shopify"
    woocommerce = "woocommerce"
    wordpress = "wordpress"
    custom = "custom"


class LogisticStatusEnum(str, enum.Enum):
    pending = "pending"
    shipped = "shipped"
    delivered = "delivered"
    returned = "returned"


class CodStatusEnum(str, enum.Enum):
    """Cash-on-delivery confirmation state of a lead (not payment status)."""
    waiting = "waiting"
    confirmed = "confirmed"
    rejected = "rejected"


class KpiStatusEnum(str, enum.Enum):
    new_lead = "new_lead"
    contacted = "contacted"
    converted = "converted"
    lost = "lost"


class LeadEventTypeEnum(str, enum.Enum):
    lead_created = "lead_created"


# Tenant & integrations ------------------------------------------

class User(Base):
    """User is the tenant that owns integrations, customers and leads.

    Authentication lives outside this service; only the fields the ingestion
    pipeline reads are modelled here.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)

    # Notification settings
    # WHAT: Where (and whether) to push Telegram messages for this tenant
    telegram_chat_id = Column(String, nullable=True)
    telegram_notifications_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    integrations = relationship("Integration", back_populates="user")

    def __str__(self):
        return f"{self.name} ({self.email})"


class Integration(Base):
    """A tenant's connected storefront.

    WHAT: Shopify/WooCommerce/etc. store that pushes webhooks to us
    WHY: Owns the credentials used to authenticate inbound webhooks:
         - domain: resolves order webhooks (?domain=...)
         - webhook_secret: HMAC key for order webhooks AND bearer secret
           for the generic customer webhook
    """
    __tablename__ = "integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    type = Column(
        Enum(IntegrationTypeEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
    )
    domain = Column(String, unique=True, nullable=False)
    webhook_secret = Column(String, unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    base_url = Column(String, nullable=True)
    access_token = Column(String, nullable=True)  # Platform API token (optional)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="integrations")
    orders = relationship("Order", back_populates="integration")

    def __str__(self):
        return f"{self.name} ({self.type.value if self.type else 'unknown'}) - {self.domain}"


# Commerce -------------------------------------------------------

class Customer(Base):
    """End buyer, scoped to a tenant.

    WHAT: Created on the first webhook that mentions an email for a tenant
    WHY: Later deliveries enrich the record but never blank out a field
    """
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("user_id", "email", name="uq_customer_tenant_email"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    address = Column(JSON, nullable=True)  # {street, city, ...} and/or {billing: {...}, shipping: {...}}
    source = Column(String, nullable=True)  # e.g. "shopify", "custom_webhook"

    # External order reference sent by the generic customer webhook
    order_id = Column(BigInteger, nullable=True)

    # Incremented once per newly ingested order
    total_orders = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="customer")

    def __str__(self):
        return f"{self.name} ({self.email})"


class Order(Base):
    """Order ingested from a storefront webhook.

    WHAT: One row per (integration, platform order id)
    WHY: Redelivery of the same webhook must update, never duplicate
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("integration_id", "external_order_id", name="uq_order_integration_external"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id = Column(UUID(as_uuid=True), ForeignKey("integrations.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    external_order_id = Column(String, nullable=False)  # Platform-native id, stringified
    status = Column(String, nullable=False)
    total_amount = Column(Numeric(18, 4), nullable=False)
    currency = Column(String, nullable=True)

    order_created_at = Column(DateTime, nullable=False)  # When the order was placed on the platform
    created_at = Column(DateTime, default=datetime.utcnow)  # When ingested
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    integration = relationship("Integration", back_populates="orders")
    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    crm_lead = relationship("CrmLead", back_populates="order", uselist=False)

    def __str__(self):
        return f"Order {self.external_order_id} - {self.total_amount}"


class OrderItem(Base):
    """Line item of an order. Written once, when the order is first ingested."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
        CheckConstraint("price_per_unit >= 0", name="ck_order_item_price_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)

    product_sku = Column(String, nullable=False, default="")
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_per_unit = Column(Numeric(18, 4), nullable=False)

    order = relationship("Order", back_populates="items")

    def __str__(self):
        return f"{self.product_name} x{self.quantity} @ {self.price_per_unit}"


# CRM ------------------------------------------------------------

class CrmLead(Base):
    """Sales-pipeline record created once per newly ingested order.

    WHAT: Carries logistics / COD / KPI state for the sales team
    WHY: order_id is a weak back-reference; a lead may also exist without
         an order (manual leads)
    """
    __tablename__ = "crm_leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    source = Column(String, nullable=True)  # e.g. "Shopify (My Store)"

    logistic_status = Column(String, nullable=False, default=LogisticStatusEnum.pending.value)
    cod_status = Column(String, nullable=False, default=CodStatusEnum.waiting.value)
    kpi_status = Column(String, nullable=False, default=KpiStatusEnum.new_lead.value)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order = relationship("Order", back_populates="crm_lead")
    events = relationship("CrmLeadEvent", back_populates="lead", order_by="CrmLeadEvent.created_at")

    def __str__(self):
        return f"Lead {self.name} ({self.source or 'unknown source'})"


class CrmLeadEvent(Base):
    """Immutable audit record attached to a lead (append-only)."""
    __tablename__ = "crm_lead_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("crm_leads.id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    type = Column(String, nullable=False)
    details = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)

    lead = relationship("CrmLead", back_populates="events")

    def __str__(self):
        return f"{self.type} @ {self.created_at}"
