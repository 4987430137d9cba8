"""Tests del inventario por (evento, recurso, sub-selección)."""
import uuid

from shared.database.models import EventResource, OrderItem, PurchaseOrder
from services.purchase.services.inventory_service import InventoryService


async def _committed(db, resource_id):
    resource = await db.get(EventResource, uuid.UUID(resource_id), populate_existing=True)
    return resource.quantity_committed


class TestCheckAvailability:
    def test_limited_resource_reports_remaining(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(db, catalog.event_id, catalog.silver_id, None, 2))
        assert result.ok
        assert result.remaining == 3

    def test_request_above_remaining_fails(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(db, catalog.event_id, catalog.gold_id, None, 2))
        assert not result.ok
        assert result.remaining == 1
        assert result.reason == "insufficient"

    def test_unlimited_container_with_limited_room_type_uses_room_limit(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(
            db, catalog.event_id, catalog.hotel_id, catalog.room_id, 10
        ))
        assert result.ok
        assert result.remaining == 10

    def test_booth_with_sub_type_uses_minimum_of_both_keys(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(
            db, catalog.event_id, catalog.booth_id, catalog.booth_corner_id, 3
        ))
        assert not result.ok
        assert result.remaining == 2

    def test_unlimited_resource_is_always_available(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(db, catalog.event_id, catalog.hotel_id, None, 10_000))
        assert result.ok
        assert result.remaining is None

    def test_unknown_resource(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(db, catalog.event_id, str(uuid.uuid4()), None, 1))
        assert not result.ok
        assert result.reason == "not_found"

    def test_resource_of_another_event_is_not_found(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(db, catalog.other_event_id, catalog.ticket_id, None, 1))
        assert result.reason == "not_found"

    def test_sub_selection_must_belong_to_resource(self, catalog, run_db):
        result = run_db(lambda db: InventoryService.check_availability(
            db, catalog.event_id, catalog.booth_id, catalog.room_id, 1
        ))
        assert not result.ok
        assert result.reason == "invalid_sub_selection"


class TestCommitAndRelease:
    def test_commit_increments_every_key(self, catalog, run_db):
        async def scenario(db):
            ok = await InventoryService.commit(db, catalog.event_id, catalog.booth_id, catalog.booth_corner_id, 2)
            await db.commit()
            return ok, await _committed(db, catalog.booth_id), await _committed(db, catalog.booth_corner_id)

        assert run_db(scenario) == (True, 2, 2)

    def test_commit_never_exceeds_total(self, catalog, run_db):
        async def scenario(db):
            first = await InventoryService.commit(db, catalog.event_id, catalog.gold_id, None, 1)
            await db.commit()
            second = await InventoryService.commit(db, catalog.event_id, catalog.gold_id, None, 1)
            await db.rollback()
            return first, second, await _committed(db, catalog.gold_id)

        assert run_db(scenario) == (True, False, 1)

    def test_commit_on_unlimited_resource(self, catalog, run_db):
        async def scenario(db):
            ok = await InventoryService.commit(db, catalog.event_id, catalog.hotel_id, None, 500)
            await db.commit()
            return ok

        assert run_db(scenario) is True

    def test_release_never_goes_below_zero(self, catalog, run_db):
        async def scenario(db):
            await InventoryService.commit(db, catalog.event_id, catalog.silver_id, None, 2)
            await InventoryService.release(db, catalog.event_id, catalog.silver_id, None, 1)
            await db.commit()
            after_partial = await _committed(db, catalog.silver_id)
            await InventoryService.release(db, catalog.event_id, catalog.silver_id, None, 5)
            await db.commit()
            return after_partial, await _committed(db, catalog.silver_id)

        assert run_db(scenario) == (1, 0)


def _order(catalog, status, items):
    return PurchaseOrder(
        company_id=uuid.UUID(catalog.company_id),
        event_id=uuid.UUID(catalog.event_id),
        status=status,
        payment_method="paypal",
        billing_name="Acme", billing_email="a@acme.test",
        billing_phone="1", billing_address_line1="Calle 1",
        items=[
            OrderItem(
                product_id=uuid.UUID(product_id),
                product_type=product_type,
                sub_selection_id=uuid.UUID(sub_id) if sub_id else None,
                name="item", quantity=quantity, unit_price=0, line_total=0, discount_amount=0,
            )
            for product_id, product_type, sub_id, quantity in items
        ],
    )


class TestDerivedCountsAndReconcile:
    def test_committed_quantity_counts_only_counted_statuses(self, catalog, run_db):
        async def scenario(db):
            db.add_all([
                _order(catalog, "PENDING", [(catalog.silver_id, "SPONSOR", None, 1)]),
                _order(catalog, "COMPLETED", [(catalog.silver_id, "SPONSOR", None, 1)]),
                _order(catalog, "FAILED", [(catalog.silver_id, "SPONSOR", None, 1)]),
            ])
            await db.commit()
            return await InventoryService.committed_quantity(db, catalog.event_id, catalog.silver_id)

        assert run_db(scenario) == 2

    def test_reconcile_rebuilds_counters_from_orders(self, catalog, run_db):
        async def scenario(db):
            db.add(_order(catalog, "COMPLETED", [
                (catalog.hotel_id, "HOTEL", catalog.room_id, 3),
                (catalog.ticket_id, "TICKET", None, 4),
            ]))
            db.add(_order(catalog, "REFUNDED", [(catalog.ticket_id, "TICKET", None, 10)]))
            gold = await db.get(EventResource, uuid.UUID(catalog.gold_id))
            gold.quantity_committed = 1  # deriva sin orden que lo respalde
            await db.commit()

            changes = await InventoryService.reconcile(db, catalog.event_id)
            counters = {
                name: await _committed(db, rid)
                for name, rid in [("room", catalog.room_id), ("hotel", catalog.hotel_id),
                                  ("ticket", catalog.ticket_id), ("gold", catalog.gold_id)]
            }
            return changes, counters

        changes, counters = run_db(scenario)
        assert counters == {"room": 3, "hotel": 3, "ticket": 4, "gold": 0}
        assert changes[catalog.gold_id] == {"before": 1, "after": 0}
        assert catalog.silver_id not in changes
