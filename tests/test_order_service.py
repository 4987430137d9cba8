"""Tests de transiciones de estado y expiración de órdenes PENDING"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from shared.database.models import EventResource
from app.core.config import settings
from shared.utils.exceptions import InsufficientInventoryError, InvalidStatusTransitionError, OrderNotFoundError
from services.orders.services.order_service import OrderService, serialize_order
from services.purchase.models.checkout import CheckoutRequest
from services.purchase.services.checkout_service import CheckoutService
from services.purchase.services.inventory_service import InventoryService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _committed(db, resource_id):
    resource = await db.get(EventResource, uuid.UUID(resource_id), populate_existing=True)
    return resource.quantity_committed


@pytest.fixture
def place_order(catalog, run_db):
    def _place(resource_id, resource_type, quantity=1, payment_method="paypal"):
        request = CheckoutRequest(
            company_id=catalog.company_id,
            payment_method=payment_method,
            accept_terms=True,
            accept_policies=True,
            cart_items=[{"resource_id": resource_id, "resource_type": resource_type, "quantity": quantity}],
        )
        order, _ = run_db(lambda db: CheckoutService.checkout(db, catalog.event_id, request, now=lambda: NOW))
        return str(order.id)
    return _place


class TestTransitions:
    def test_pending_to_completed_keeps_stock_and_sets_paid_at(self, catalog, run_db, place_order):
        order_id = place_order(catalog.silver_id, "SPONSOR", 2)

        order = run_db(lambda db: OrderService.transition_status(
            db, order_id, "COMPLETED", payment_reference="PAY-1", now=NOW
        ))
        assert order.status == "COMPLETED"
        assert order.payment_reference == "PAY-1"
        assert order.paid_at is not None
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 2

    def test_failed_releases_stock(self, catalog, run_db, place_order, no_cache):
        order_id = place_order(catalog.silver_id, "SPONSOR", 2)
        no_cache.delete.reset_mock()

        run_db(lambda db: OrderService.transition_status(db, order_id, "FAILED"))
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 0
        no_cache.delete.assert_awaited_once()

    def test_refund_releases_stock_of_every_item(self, catalog, run_db, place_order):
        order_id = place_order(catalog.hotel_id, "HOTEL")  # sin sub-selección
        run_db(lambda db: OrderService.transition_status(db, order_id, "COMPLETED"))
        run_db(lambda db: OrderService.transition_status(db, order_id, "REFUNDED"))
        assert run_db(lambda db: _committed(db, catalog.hotel_id)) == 0

    def test_invalid_transition_is_rejected(self, catalog, run_db, place_order):
        order_id = place_order(catalog.ticket_id, "TICKET")
        run_db(lambda db: OrderService.transition_status(db, order_id, "FAILED"))

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            run_db(lambda db: OrderService.transition_status(db, order_id, "COMPLETED"))
        assert exc_info.value.current == "FAILED"

    def test_unknown_order(self, catalog, run_db):
        with pytest.raises(OrderNotFoundError):
            run_db(lambda db: OrderService.get_order(db, str(uuid.uuid4())))
        with pytest.raises(OrderNotFoundError):
            run_db(lambda db: OrderService.get_order(db, "not-a-uuid"))


class TestCompletedOnlyCounting:
    """Con INVENTORY_COUNTED_STATUSES=[COMPLETED] las reservas PENDING no retienen stock"""

    @pytest.fixture(autouse=True)
    def completed_only(self, monkeypatch):
        monkeypatch.setattr(settings, "INVENTORY_COUNTED_STATUSES", ["COMPLETED"])

    def test_lifecycle_follows_counted_set(self, catalog, run_db, place_order):
        order_id = place_order(catalog.silver_id, "SPONSOR", 2)
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 0

        run_db(lambda db: OrderService.transition_status(db, order_id, "COMPLETED"))
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 2
        assert run_db(lambda db: InventoryService.reconcile(db, catalog.event_id)) == {}

        run_db(lambda db: OrderService.transition_status(db, order_id, "REFUNDED"))
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 0
        assert run_db(lambda db: InventoryService.reconcile(db, catalog.event_id)) == {}

    def test_failing_a_pending_order_leaves_counter_untouched(self, catalog, run_db, place_order):
        held = place_order(catalog.silver_id, "SPONSOR", 1)
        run_db(lambda db: OrderService.transition_status(db, held, "COMPLETED"))
        pending = place_order(catalog.silver_id, "SPONSOR", 2)

        run_db(lambda db: OrderService.transition_status(db, pending, "FAILED"))

        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 1
        assert run_db(lambda db: InventoryService.reconcile(db, catalog.event_id)) == {}

    def test_completing_without_stock_is_rejected_and_rolled_back(self, catalog, run_db, place_order, no_cache):
        first = place_order(catalog.gold_id, "SPONSOR")
        second = place_order(catalog.gold_id, "SPONSOR")
        run_db(lambda db: OrderService.transition_status(db, first, "COMPLETED"))
        no_cache.delete.reset_mock()

        with pytest.raises(InsufficientInventoryError) as exc_info:
            run_db(lambda db: OrderService.transition_status(db, second, "COMPLETED"))

        line = exc_info.value.lines[0]
        assert line.resource_id == catalog.gold_id
        assert line.name == "Gold"
        assert line.remaining == 0
        assert run_db(lambda db: OrderService.get_order(db, second)).status == "PENDING"
        assert run_db(lambda db: _committed(db, catalog.gold_id)) == 1
        no_cache.delete.assert_not_awaited()

    def test_expiry_of_uncounted_reservations_releases_nothing(self, catalog, run_db, place_order):
        paid = place_order(catalog.silver_id, "SPONSOR", 1)
        run_db(lambda db: OrderService.transition_status(db, paid, "COMPLETED"))
        stale = place_order(catalog.silver_id, "SPONSOR", 1)

        expired = run_db(lambda db: OrderService.expire_stale_pending_orders(db, now=NOW + timedelta(hours=1)))

        assert expired == [stale]
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 1


class TestListingAndSerialization:
    def test_lists_by_company_and_event_status(self, catalog, run_db, place_order):
        first = place_order(catalog.ticket_id, "TICKET")
        second = place_order(catalog.ticket_id, "TICKET")
        run_db(lambda db: OrderService.transition_status(db, second, "COMPLETED"))

        company_orders = run_db(lambda db: OrderService.list_company_orders(db, catalog.company_id))
        pending = run_db(lambda db: OrderService.list_event_orders(db, catalog.event_id, status="PENDING"))

        assert {str(o.id) for o in company_orders} == {first, second}
        assert [str(o.id) for o in pending] == [first]

    def test_serialize_order_includes_billing_and_items(self, catalog, run_db, place_order):
        order_id = place_order(catalog.booth_id, "BOOTH", 2)
        data = run_db(lambda db: OrderService.get_order(db, order_id))
        serialized = serialize_order(data)

        assert serialized["billing"]["name"] == "Acme Ltda"
        assert serialized["total_amount"] == 400.0
        assert serialized["items"][0]["quantity"] == 2


class TestExpiry:
    def test_only_stale_online_orders_expire(self, catalog, run_db, place_order):
        online = place_order(catalog.silver_id, "SPONSOR", 1)
        offline = place_order(catalog.silver_id, "SPONSOR", 1, payment_method="bank_transfer")

        expired = run_db(lambda db: OrderService.expire_stale_pending_orders(db, now=NOW + timedelta(hours=1)))

        assert expired == [online]
        assert run_db(lambda db: OrderService.get_order(db, offline)).status == "PENDING"
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 1

    def test_offline_orders_expire_after_their_longer_ttl(self, catalog, run_db, place_order):
        offline = place_order(catalog.silver_id, "SPONSOR", 1, payment_method="bank_transfer")
        expired = run_db(lambda db: OrderService.expire_stale_pending_orders(db, now=NOW + timedelta(days=4)))
        assert expired == [offline]
        assert run_db(lambda db: _committed(db, catalog.silver_id)) == 0

    def test_recent_and_completed_orders_are_untouched(self, catalog, run_db, place_order):
        place_order(catalog.ticket_id, "TICKET")
        paid = place_order(catalog.ticket_id, "TICKET")
        run_db(lambda db: OrderService.transition_status(db, paid, "COMPLETED"))

        assert run_db(lambda db: OrderService.expire_stale_pending_orders(db, now=NOW + timedelta(minutes=5))) == []
        expired = run_db(lambda db: OrderService.expire_stale_pending_orders(db, now=NOW + timedelta(hours=2)))
        assert len(expired) == 1
        assert paid not in expired
