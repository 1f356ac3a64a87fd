"""
Order Ingestion Service
=======================

Idempotent upsert of a CanonicalOrder plus the CRM fan-out for new orders.

WHY THIS FILE EXISTS
--------------------
Storefronts redeliver webhooks on timeouts and fire orders/updated right
after orders/create, so the same order routinely arrives several times,
sometimes concurrently. This service guarantees:

- One customer per (tenant, email), enriched but never blanked by later orders
- One order per (integration, external order id); redelivery updates it
- Items, lead and lead event are written exactly once, with the order

FLOW (one transaction)
----------------------
    customer find-or-create ─► order find ──found──► update status/total ─► commit
                                   │
                                   └─missing─► create order + items
                                               bump customer.total_orders
                                               create CrmLead + lead_created event
                                               commit

Unique constraints back the find-then-create fast path. If a concurrent
delivery wins the race the flush raises IntegrityError; the transaction is
rolled back and the unit of work re-run once, now taking the update path.

RELATED FILES
-------------
- orderhub/services/normalizer.py: Produces the CanonicalOrder
- orderhub/models.py: Customer/Order/OrderItem/CrmLead/CrmLeadEvent + constraints
- orderhub/routers/order_webhooks.py: Caller
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderhub.models import (
    CodStatusEnum,
    CrmLead,
    CrmLeadEvent,
    Customer,
    Integration,
    KpiStatusEnum,
    LeadEventTypeEnum,
    LogisticStatusEnum,
    Order,
    OrderItem,
)
from orderhub.schemas import CanonicalOrder

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Unknown Customer"
MAX_ATTEMPTS = 2


@dataclass
class IngestionResult:
    """
    Outcome of ingesting one webhook delivery.

    Attributes:
        order_id: Stored order
        customer_id: Resolved customer
        crm_lead_id: Lead created with the order (None if the order predates leads)
        is_new_order: True only when this delivery created the order
    """

    order_id: UUID
    customer_id: UUID
    crm_lead_id: Optional[UUID]
    is_new_order: bool
    order: Optional[Order] = field(default=None, repr=False, compare=False)
    customer: Optional[Customer] = field(default=None, repr=False, compare=False)


def lead_source_label(integration: Integration) -> str:
    """'Shopify (My Store)' style provenance string for leads."""
    platform = getattr(integration.type, "value", integration.type) or ""
    return f"{platform[:1].upper()}{platform[1:]} ({integration.name})"


def cod_status_for(order_status: str) -> str:
    """COD confirmation starts as waiting only for unpaid (pending) orders."""
    if order_status == "pending":
        return CodStatusEnum.waiting.value
    return CodStatusEnum.confirmed.value


class OrderIngestionService:
    """Writes canonical orders for one integration using the given session."""

    def __init__(self, db: Session):
        self.db = db

    def ingest(self, integration: Integration, canonical_order: CanonicalOrder) -> IngestionResult:
        """Upsert customer, order, items and (for new orders) lead + event.

        Commits on success, rolls back everything on failure.

        Raises:
            IntegrityError: If the constraint conflict persists after the retry
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                result = self._apply(integration, canonical_order)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempt == MAX_ATTEMPTS:
                    logger.error(
                        f"[INGESTION] Constraint conflict persisted for order "
                        f"{canonical_order.external_order_id} (integration {integration.id})"
                    )
                    raise
                logger.warning(
                    f"[INGESTION] Concurrent delivery won the race for order "
                    f"{canonical_order.external_order_id}; retrying as update"
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            logger.info(
                f"[INGESTION] {'Created' if result.is_new_order else 'Updated'} order "
                f"{canonical_order.external_order_id} for integration {integration.id}",
                extra={
                    "order_id": str(result.order_id),
                    "customer_id": str(result.customer_id),
                    "crm_lead_id": str(result.crm_lead_id) if result.crm_lead_id else None,
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def _apply(self, integration: Integration, canonical_order: CanonicalOrder) -> IngestionResult:
        customer = self._upsert_customer(integration, canonical_order)

        order = self._find_order(integration, canonical_order.external_order_id)
        if order is not None:
            order.status = canonical_order.status
            order.total_amount = canonical_order.total_amount
            order.order_created_at = canonical_order.order_created_at
            if canonical_order.currency:
                order.currency = canonical_order.currency
            self.db.flush()

            lead = order.crm_lead
            return IngestionResult(
                order_id=order.id,
                customer_id=customer.id,
                crm_lead_id=lead.id if lead else None,
                is_new_order=False,
                order=order,
                customer=customer,
            )

        order = Order(
            integration_id=integration.id,
            customer_id=customer.id,
            external_order_id=canonical_order.external_order_id,
            status=canonical_order.status,
            total_amount=canonical_order.total_amount,
            currency=canonical_order.currency,
            order_created_at=canonical_order.order_created_at,
        )
        self.db.add(order)
        self.db.flush()

        for item in canonical_order.items:
            order.items.append(
                OrderItem(
                    product_sku=item.product_sku,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price_per_unit=item.price_per_unit,
                )
            )
        customer.total_orders = (customer.total_orders or 0) + 1
        self.db.flush()

        lead = self.create_lead_and_event(order, customer, integration, canonical_order)

        return IngestionResult(
            order_id=order.id,
            customer_id=customer.id,
            crm_lead_id=lead.id,
            is_new_order=True,
            order=order,
            customer=customer,
        )

    def _upsert_customer(self, integration: Integration, canonical_order: CanonicalOrder) -> Customer:
        incoming = canonical_order.customer
        customer = (
            self.db.query(Customer)
            .filter(Customer.user_id == integration.user_id, Customer.email == incoming.email)
            .first()
        )

        if customer is None:
            customer = Customer(
                user_id=integration.user_id,
                email=incoming.email,
                name=incoming.name or DEFAULT_CUSTOMER_NAME,
                phone=incoming.phone or None,
                address=incoming.address or None,
                source=getattr(integration.type, "value", integration.type),
                total_orders=0,
            )
            self.db.add(customer)
            self.db.flush()
            return customer

        # Blank incoming fields never overwrite stored values
        if incoming.name:
            customer.name = incoming.name
        if incoming.phone:
            customer.phone = incoming.phone
        if incoming.address:
            customer.address = incoming.address
        self.db.flush()
        return customer

    def _find_order(self, integration: Integration, external_order_id: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(
                Order.integration_id == integration.id,
                Order.external_order_id == external_order_id,
            )
            .first()
        )

    # -------------------------------------------------------------------------
    # CRM fan-out
    # -------------------------------------------------------------------------

    def create_lead_and_event(
        self,
        order: Order,
        customer: Customer,
        integration: Integration,
        canonical_order: CanonicalOrder,
    ) -> CrmLead:
        """Create the CrmLead for a new order and its lead_created event.

        Flushes but does not commit; runs inside ingest()'s transaction.
        """
        source = lead_source_label(integration)

        lead = CrmLead(
            order_id=order.id,
            user_id=integration.user_id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            source=source,
            logistic_status=LogisticStatusEnum.pending.value,
            cod_status=cod_status_for(canonical_order.status),
            kpi_status=KpiStatusEnum.new_lead.value,
        )
        self.db.add(lead)
        self.db.flush()

        event = CrmLeadEvent(
            lead_id=lead.id,
            user_id=integration.user_id,
            type=LeadEventTypeEnum.lead_created.value,
            details=self._lead_event_details(source, order, canonical_order),
        )
        self.db.add(event)
        self.db.flush()
        return lead

    @staticmethod
    def _lead_event_details(source: str, order: Order, canonical_order: CanonicalOrder) -> Dict[str, Any]:
        primary = canonical_order.items[0] if canonical_order.items else None
        return {
            "source": source,
            "order_id": str(order.id),
            "external_order_id": canonical_order.external_order_id,
            "order_total": float(canonical_order.total_amount),
            "primary_product": primary.product_name if primary else None,
            "primary_sku": primary.product_sku if primary else None,
            "item_count": len(canonical_order.items),
        }
