"""Tests for the idempotent order upsert and CRM fan-out."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from orderhub.models import CrmLead, CrmLeadEvent, Customer, Order, OrderItem
from orderhub.schemas import CanonicalCustomer, CanonicalOrder, CanonicalOrderItem
from orderhub.services.normalizer import normalize
from orderhub.services.order_ingestion_service import (
    OrderIngestionService,
    cod_status_for,
    lead_source_label,
)


def make_order(
    external_order_id="1001",
    status="pending",
    total="42.50",
    email="a@x.com",
    name="Ann Example",
    phone="555",
    address=None,
    items=None,
):
    if items is None:
        items = [
            CanonicalOrderItem(product_sku="W-1", product_name="Widget", quantity=2, price_per_unit=Decimal("10.00")),
            CanonicalOrderItem(product_sku="G-9", product_name="Gadget", quantity=1, price_per_unit=Decimal("22.50")),
        ]
    return CanonicalOrder(
        external_order_id=external_order_id,
        status=status,
        total_amount=Decimal(total),
        currency="EUR",
        order_created_at=datetime(2026, 3, 1, 9, 15),
        customer=CanonicalCustomer(email=email, name=name, phone=phone, address=address),
        items=items,
    )


@pytest.fixture
def service(test_db_session):
    return OrderIngestionService(test_db_session)


class TestCreatePath:
    def test_new_order_creates_customer_order_items_lead_and_event(
        self, service, test_db_session, shopify_integration
    ):
        result = service.ingest(shopify_integration, make_order())

        assert result.is_new_order is True
        assert result.crm_lead_id is not None

        customer = test_db_session.get(Customer, result.customer_id)
        assert customer.user_id == shopify_integration.user_id
        assert customer.email == "a@x.com"
        assert customer.source == "shopify"
        assert customer.total_orders == 1

        order = test_db_session.get(Order, result.order_id)
        assert order.external_order_id == "1001"
        assert order.customer_id == customer.id
        assert order.total_amount == Decimal("42.50")
        assert order.currency == "EUR"
        assert sorted((i.product_sku, i.quantity) for i in order.items) == [("G-9", 1), ("W-1", 2)]

        lead = test_db_session.get(CrmLead, result.crm_lead_id)
        assert lead.order_id == order.id
        assert lead.user_id == shopify_integration.user_id
        assert lead.name == "Ann Example"
        assert lead.source == "Shopify (My Store)"
        assert lead.logistic_status == "pending"
        assert lead.kpi_status == "new_lead"

        events = test_db_session.query(CrmLeadEvent).filter_by(lead_id=lead.id).all()
        assert len(events) == 1
        assert events[0].type == "lead_created"
        assert events[0].details == {
            "source": "Shopify (My Store)",
            "order_id": str(order.id),
            "external_order_id": "1001",
            "order_total": 42.5,
            "primary_product": "Widget",
            "primary_sku": "W-1",
            "item_count": 2,
        }

    def test_blank_name_defaults_to_unknown_customer(self, service, test_db_session, shopify_integration):
        result = service.ingest(shopify_integration, make_order(name=""))
        assert test_db_session.get(Customer, result.customer_id).name == "Unknown Customer"

    def test_order_without_items_has_null_primary_fields(self, service, test_db_session, shopify_integration):
        result = service.ingest(shopify_integration, make_order(items=[]))

        event = test_db_session.query(CrmLeadEvent).one()
        assert event.details["primary_product"] is None
        assert event.details["primary_sku"] is None
        assert event.details["item_count"] == 0
        assert test_db_session.query(OrderItem).count() == 0
        assert result.is_new_order is True

    def test_woocommerce_lead_source(self, service, test_db_session, woocommerce_integration):
        result = service.ingest(woocommerce_integration, make_order())
        lead = test_db_session.get(CrmLead, result.crm_lead_id)
        assert lead.source == "Woocommerce (Woo Shop)"


class TestCodStatus:
    def test_pending_order_waits_for_confirmation(self, service, test_db_session, shopify_integration):
        result = service.ingest(shopify_integration, make_order(status="pending"))
        assert test_db_session.get(CrmLead, result.crm_lead_id).cod_status == "waiting"

    def test_paid_order_is_confirmed(self, service, test_db_session, shopify_integration):
        result = service.ingest(shopify_integration, make_order(status="paid"))
        assert test_db_session.get(CrmLead, result.crm_lead_id).cod_status == "confirmed"

    @pytest.mark.parametrize(
        "status,expected",
        [("pending", "waiting"), ("paid", "confirmed"), ("processing", "confirmed"), ("on-hold", "confirmed")],
    )
    def test_cod_status_for(self, status, expected):
        assert cod_status_for(status) == expected


class TestIdempotency:
    def test_redelivery_updates_instead_of_duplicating(self, service, test_db_session, shopify_integration):
        first = service.ingest(shopify_integration, make_order(status="pending", total="42.50"))
        second = service.ingest(shopify_integration, make_order(status="paid", total="45.00"))

        assert second.is_new_order is False
        assert second.order_id == first.order_id
        assert second.customer_id == first.customer_id
        assert second.crm_lead_id == first.crm_lead_id

        assert test_db_session.query(Order).count() == 1
        assert test_db_session.query(CrmLead).count() == 1
        assert test_db_session.query(CrmLeadEvent).count() == 1
        assert test_db_session.query(OrderItem).count() == 2

        order = test_db_session.get(Order, first.order_id)
        assert order.status == "paid"
        assert order.total_amount == Decimal("45.00")

        # Lead keeps the COD state decided at creation
        assert test_db_session.get(CrmLead, first.crm_lead_id).cod_status == "waiting"
        assert test_db_session.get(Customer, first.customer_id).total_orders == 1

    def test_same_external_id_on_other_integration_is_a_new_order(
        self, service, test_db_session, shopify_integration, woocommerce_integration
    ):
        first = service.ingest(shopify_integration, make_order())
        second = service.ingest(woocommerce_integration, make_order())

        assert second.is_new_order is True
        assert second.order_id != first.order_id
        # Same tenant, same email: one customer
        assert second.customer_id == first.customer_id
        assert test_db_session.get(Customer, first.customer_id).total_orders == 2

    def test_customers_are_scoped_per_tenant(self, service, test_db_session, shopify_integration, test_user_b):
        from orderhub.models import Integration, IntegrationTypeEnum

        other = Integration(
            user_id=test_user_b.id,
            name="Other Store",
            type=IntegrationTypeEnum.shopify,
            domain="other.myshopify.com",
            webhook_secret="wh_other",
        )
        test_db_session.add(other)
        test_db_session.commit()

        first = service.ingest(shopify_integration, make_order())
        second = service.ingest(other, make_order())

        assert first.customer_id != second.customer_id
        assert test_db_session.query(Customer).filter_by(email="a@x.com").count() == 2


class TestCustomerEnrichment:
    def test_absent_phone_preserves_stored_phone(self, service, test_db_session, shopify_integration):
        first = service.ingest(shopify_integration, make_order(external_order_id="1", phone="555"))
        service.ingest(shopify_integration, make_order(external_order_id="2", phone=""))

        customer = test_db_session.get(Customer, first.customer_id)
        assert customer.phone == "555"
        assert customer.total_orders == 2

    def test_present_fields_overwrite(self, service, test_db_session, shopify_integration):
        first = service.ingest(shopify_integration, make_order(external_order_id="1", name="Ann"))
        service.ingest(
            shopify_integration,
            make_order(external_order_id="2", name="Ann Smith", phone="777", address={"city": "Roma"}),
        )

        customer = test_db_session.get(Customer, first.customer_id)
        assert customer.name == "Ann Smith"
        assert customer.phone == "777"
        assert customer.address == {"city": "Roma"}

    def test_blank_name_and_address_preserved(self, service, test_db_session, shopify_integration):
        first = service.ingest(
            shopify_integration,
            make_order(external_order_id="1", name="Ann", address={"city": "Milano"}),
        )
        service.ingest(shopify_integration, make_order(external_order_id="2", name="", address=None))

        customer = test_db_session.get(Customer, first.customer_id)
        assert customer.name == "Ann"
        assert customer.address == {"city": "Milano"}


class TestConcurrentDelivery:
    def test_lost_race_falls_back_to_update(self, service, test_db_session, shopify_integration, monkeypatch):
        """Another delivery committed the order between our lookup and our insert."""
        winner = service.ingest(shopify_integration, make_order(status="pending"))

        original_find = OrderIngestionService._find_order
        calls = []

        def stale_find(self, integration, external_order_id):
            calls.append(external_order_id)
            if len(calls) == 1:
                return None  # lookup raced with the other delivery
            return original_find(self, integration, external_order_id)

        monkeypatch.setattr(OrderIngestionService, "_find_order", stale_find)

        result = service.ingest(shopify_integration, make_order(status="paid"))

        assert len(calls) == 2
        assert result.is_new_order is False
        assert result.order_id == winner.order_id
        assert result.crm_lead_id == winner.crm_lead_id
        assert test_db_session.query(Order).count() == 1
        assert test_db_session.query(CrmLead).count() == 1
        assert test_db_session.get(Order, winner.order_id).status == "paid"

    def test_persistent_conflict_propagates(self, service, test_db_session, shopify_integration, monkeypatch):
        service.ingest(shopify_integration, make_order())
        monkeypatch.setattr(OrderIngestionService, "_find_order", lambda self, integration, external_order_id: None)

        with pytest.raises(IntegrityError):
            service.ingest(shopify_integration, make_order(status="paid"))

        # Rolled back: nothing half-written
        assert test_db_session.query(Order).count() == 1
        assert test_db_session.query(CrmLead).count() == 1
        assert test_db_session.query(Order).one().status == "pending"


class TestAtomicity:
    def test_fan_out_failure_rolls_back_order(self, service, test_db_session, shopify_integration, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("crm unavailable")

        monkeypatch.setattr(OrderIngestionService, "create_lead_and_event", boom)

        with pytest.raises(RuntimeError):
            service.ingest(shopify_integration, make_order())

        assert test_db_session.query(Order).count() == 0
        assert test_db_session.query(OrderItem).count() == 0
        assert test_db_session.query(Customer).count() == 0


class TestExampleScenario:
    def test_shopify_example_end_to_end(self, service, test_db_session, shopify_integration):
        payload = {
            "id": 9001,
            "financial_status": None,
            "total_price": "42.50",
            "currency": "EUR",
            "customer": {"id": 1, "email": "j@x.com", "first_name": "Jane", "last_name": "Doe"},
            "line_items": [{"id": 1, "title": "Widget", "sku": "W-1", "quantity": 2, "price": "10.00"}],
        }

        result = service.ingest(shopify_integration, normalize("shopify", payload))

        assert result.is_new_order is True
        customer = test_db_session.get(Customer, result.customer_id)
        assert (customer.email, customer.name) == ("j@x.com", "Jane Doe")
        order = test_db_session.get(Order, result.order_id)
        assert order.status == "pending"
        assert len(order.items) == 1
        assert order.items[0].price_per_unit == Decimal("10.00")
        assert test_db_session.get(CrmLead, result.crm_lead_id).cod_status == "waiting"


def test_lead_source_label(shopify_integration, woocommerce_integration):
    assert lead_source_label(shopify_integration) == "Shopify (My Store)"
    assert lead_source_label(woocommerce_integration) == "Woocommerce (Woo Shop)"
