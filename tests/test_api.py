"""Tests de las rutas HTTP con TestClient y base SQLite temporal"""
import uuid

import pytest
from fastapi.testclient import TestClient

from main import app
from shared.auth.jwt_handler import create_access_token
from shared.database.session import get_db
from shared.utils.rate_limiter import limiter


@pytest.fixture
def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    # Sin lifespan: la app no abre conexiones reales a Postgres ni Redis
    yield TestClient(app)
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token({"sub": "admin-1", "email": "admin@test", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def company_headers(catalog):
    token = create_access_token({
        "sub": "buyer-1", "email": "compras@acme.test", "role": "user", "company_id": catalog.company_id,
    })
    return {"Authorization": f"Bearer {token}"}


def _checkout_body(catalog, items, **extra):
    body = {
        "company_id": catalog.company_id,
        "payment_method": "paypal",
        "accept_terms": True,
        "accept_policies": True,
        "cart_items": items,
    }
    body.update(extra)
    return body


class TestCatalog:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_lists_resources_with_remaining(self, client, catalog):
        resp = client.get(f"/api/v1/events/{catalog.event_id}/resources")
        assert resp.status_code == 200
        resources = {r["id"]: r for r in resp.json()["resources"]}
        assert resources[catalog.gold_id]["remaining"] == 1
        assert resources[catalog.hotel_id]["remaining"] is None
        assert resources[catalog.room_id]["parent_id"] == catalog.hotel_id

    def test_unknown_event_is_404(self, client, catalog):
        resp = client.get(f"/api/v1/events/{uuid.uuid4()}/resources")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "event_not_found"

    def test_availability(self, client, catalog):
        resp = client.get(
            f"/api/v1/events/{catalog.event_id}/resources/{catalog.booth_id}/availability",
            params={"sub_selection_id": catalog.booth_corner_id, "quantity": 3},
        )
        assert resp.status_code == 200
        assert resp.json()["ok"] is False
        assert resp.json()["remaining"] == 2


class TestPromotions:
    def test_apply_coupon(self, client, catalog, add_coupon):
        add_coupon("SUMMER25", "PERCENTAGE", 25)
        resp = client.post(f"/api/v1/events/{catalog.event_id}/apply-coupon", json={"code": "summer25"})
        assert resp.status_code == 200
        assert resp.json()["code"] == "SUMMER25"

    def test_unknown_coupon_is_404(self, client, catalog):
        resp = client.post(f"/api/v1/events/{catalog.event_id}/apply-coupon", json={"code": "NOPE"})
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "invalid_coupon"

    def test_discount_preview_uses_best_offer(self, client, catalog, add_offer):
        add_offer("Hoteles", 10, "HOTELS")
        add_offer("Tickets", 30, "TICKETS")
        resp = client.post(
            f"/api/v1/events/{catalog.event_id}/discount-preview",
            json={"cart_items": [
                {"resource_id": catalog.hotel_id, "resource_type": "HOTEL", "sub_selection_id": catalog.room_id},
                {"resource_id": catalog.ticket_id, "resource_type": "TICKET"},
            ]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["subtotal"] == 150.0
        assert data["discount_amount"] == 15.0
        assert data["offer_name"] == "Tickets"
        assert data["discount_source"] == "offer"

    def test_admin_coupon_crud(self, client, admin_headers):
        created = client.post(
            "/api/v1/admin/coupons",
            json={"code": "vip", "discount_type": "FIXED", "discount_value": 20},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["code"] == "VIP"

        duplicate = client.post(
            "/api/v1/admin/coupons",
            json={"code": "VIP", "discount_type": "FIXED", "discount_value": 5},
            headers=admin_headers,
        )
        assert duplicate.status_code == 409

        too_big = client.post(
            "/api/v1/admin/coupons",
            json={"code": "HUGE", "discount_type": "PERCENTAGE", "discount_value": 150},
            headers=admin_headers,
        )
        assert too_big.status_code == 400

        coupon_id = created.json()["id"]
        updated = client.put(
            f"/api/v1/admin/coupons/{coupon_id}", json={"is_active": False}, headers=admin_headers,
        )
        assert updated.json()["is_active"] is False

        deleted = client.delete(f"/api/v1/admin/coupons/{coupon_id}", headers=admin_headers)
        assert deleted.json()["result"] == "deleted"

    def test_admin_routes_require_admin(self, client, company_headers):
        assert client.get("/api/v1/admin/coupons", headers=company_headers).status_code == 403

    def test_admin_offer_validation(self, client, admin_headers):
        resp = client.post(
            "/api/v1/admin/offers", json={"name": "Mala", "percentage": 0}, headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/v1/admin/offers",
            json={"name": "Sponsors", "percentage": 15, "scope": "SPONSORS"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        listed = client.get("/api/v1/admin/offers", headers=admin_headers).json()
        assert [o["name"] for o in listed] == ["Sponsors"]


class TestCheckout:
    def test_checkout_created_then_idempotent_replay(self, client, catalog):
        body = _checkout_body(
            catalog, [{"resource_id": catalog.silver_id, "resource_type": "SPONSOR"}], idempotency_key="k-1",
        )
        first = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body)
        second = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body)

        assert first.status_code == 201
        assert first.json()["status"] == "PENDING"
        assert first.json()["total_amount"] == 500.0
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]

    def test_insufficient_inventory_is_409_with_all_lines(self, client, catalog):
        body = _checkout_body(catalog, [
            {"resource_id": catalog.gold_id, "resource_type": "SPONSOR", "quantity": 2},
            {"resource_id": catalog.silver_id, "resource_type": "SPONSOR", "quantity": 4},
        ])
        resp = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body)
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["error"] == "insufficient_inventory"
        assert {line["resource_id"] for line in detail["lines"]} == {catalog.gold_id, catalog.silver_id}

    def test_empty_cart_and_invalid_coupon_are_400(self, client, catalog):
        empty = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=_checkout_body(catalog, []))
        assert empty.status_code == 400

        body = _checkout_body(
            catalog, [{"resource_id": catalog.ticket_id, "resource_type": "TICKET"}], coupon={"code": "NOPE"},
        )
        coupon = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body)
        assert coupon.status_code == 400
        assert coupon.json()["detail"]["error"] == "invalid_coupon"

    def test_terms_not_accepted_is_422(self, client, catalog):
        body = _checkout_body(
            catalog, [{"resource_id": catalog.ticket_id, "resource_type": "TICKET"}], accept_terms=False,
        )
        resp = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body)
        assert resp.status_code == 422
        assert resp.json()["detail"]["fields"] == ["accept_terms"]

    def test_cannot_buy_for_another_company(self, client, catalog, company_headers):
        body = _checkout_body(catalog, [{"resource_id": catalog.ticket_id, "resource_type": "TICKET"}])
        body["company_id"] = str(uuid.uuid4())
        resp = client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body, headers=company_headers)
        assert resp.status_code == 403

    def test_account_prefill(self, client, catalog, company_headers):
        resp = client.get(
            f"/api/v1/events/{catalog.event_id}/checkout/account",
            params={"company_id": catalog.company_id},
            headers=company_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["address1"] == "Av. Siempre Viva 742"

    def test_account_prefill_requires_token(self, client, catalog):
        resp = client.get(
            f"/api/v1/events/{catalog.event_id}/checkout/account", params={"company_id": catalog.company_id},
        )
        assert resp.status_code in (401, 403)

    def test_account_prefill_hidden_from_other_companies(self, client, catalog, admin_headers):
        stranger = create_access_token({"sub": "x", "role": "user", "company_id": str(uuid.uuid4())})
        url = f"/api/v1/events/{catalog.event_id}/checkout/account"
        params = {"company_id": catalog.company_id}

        resp = client.get(url, params=params, headers={"Authorization": f"Bearer {stranger}"})
        assert resp.status_code == 403
        assert "address1" not in resp.text

        assert client.get(url, params=params, headers=admin_headers).status_code == 200


class TestOrders:
    def _place(self, client, catalog, resource_id, resource_type, quantity=1):
        body = _checkout_body(
            catalog, [{"resource_id": resource_id, "resource_type": resource_type, "quantity": quantity}],
        )
        return client.post(f"/api/v1/events/{catalog.event_id}/checkout", json=body).json()["id"]

    def test_company_reads_own_order_only(self, client, catalog, company_headers):
        order_id = self._place(client, catalog, catalog.ticket_id, "TICKET")
        assert client.get(f"/api/v1/orders/{order_id}", headers=company_headers).status_code == 200

        stranger = create_access_token({"sub": "x", "role": "user", "company_id": str(uuid.uuid4())})
        resp = client.get(f"/api/v1/orders/{order_id}", headers={"Authorization": f"Bearer {stranger}"})
        assert resp.status_code == 403

        listed = client.get(f"/api/v1/companies/{catalog.company_id}/orders", headers=company_headers)
        assert [o["id"] for o in listed.json()] == [order_id]

    def test_orders_require_token(self, client, catalog):
        assert client.get(f"/api/v1/orders/{uuid.uuid4()}").status_code in (401, 403)

    def test_admin_marks_failed_and_stock_is_released(self, client, catalog, admin_headers):
        order_id = self._place(client, catalog, catalog.gold_id, "SPONSOR")

        resp = client.patch(
            f"/api/v1/admin/orders/{order_id}/status", json={"status": "FAILED"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "FAILED"

        again = client.patch(
            f"/api/v1/admin/orders/{order_id}/status", json={"status": "COMPLETED"}, headers=admin_headers,
        )
        assert again.status_code == 409

        resources = client.get(f"/api/v1/events/{catalog.event_id}/resources").json()["resources"]
        gold = next(r for r in resources if r["id"] == catalog.gold_id)
        assert gold["remaining"] == 1

    def test_admin_lists_event_orders_and_reconciles(self, client, catalog, admin_headers):
        self._place(client, catalog, catalog.ticket_id, "TICKET", quantity=2)

        listed = client.get(
            f"/api/v1/admin/events/{catalog.event_id}/orders", params={"status": "PENDING"}, headers=admin_headers,
        )
        assert len(listed.json()) == 1

        resp = client.post(f"/api/v1/admin/events/{catalog.event_id}/inventory/reconcile", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["corrected"] == {}

    def test_admin_inventory_audit_compares_counter_with_orders(self, client, catalog, admin_headers):
        self._place(client, catalog, catalog.booth_id, "BOOTH", quantity=3)

        resp = client.get(
            f"/api/v1/admin/events/{catalog.event_id}/inventory/{catalog.booth_id}", headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["quantity_total"] == 5
        assert body["quantity_committed"] == 3
        assert body["derived_committed"] == 3
        assert body["drift"] == 0

        missing = client.get(
            f"/api/v1/admin/events/{catalog.event_id}/inventory/{uuid.uuid4()}", headers=admin_headers,
        )
        assert missing.status_code == 404
