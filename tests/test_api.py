"""HTTP API: status codes, error bodies and role handling."""
import uuid
from datetime import timedelta

from orderflow.core.permissions import Actor
from orderflow.core.security import create_access_token
from tests.conftest import auth_headers


ORDER_JSON = {
    "customer_name": "Muster Maschinenbau GmbH",
    "article_number": "GH-4711",
    "article_description": "Gear housing, cast aluminium",
    "total_quantity": 100,
    "location_distribution": {"North": 60, "South": 40},
    "earliest_delivery": "2030-03-01",
    "latest_delivery": "2030-03-31",
}


async def create_order(client, actor, **overrides):
    response = await client.post("/api/v1/orders", json={**ORDER_JSON, **overrides}, headers=auth_headers(actor))
    assert response.status_code == 201, response.text
    return response.json()


async def move(client, order_id, status, actor, reason=None):
    body = {"status": status}
    if reason is not None:
        body["reason"] = reason
    return await client.post(
        f"/api/v1/orders/{order_id}/transitions", json=body, headers=auth_headers(actor)
    )


async def to_planning_review(client, sales, supply_chain):
    order = await create_order(client, sales)
    await move(client, order["id"], "SALES_REVIEW", sales)
    await move(client, order["id"], "SUPPLY_CHAIN_REVIEW", sales)
    response = await move(client, order["id"], "PLANNING_REVIEW", supply_chain)
    assert response.status_code == 200, response.text
    return response.json()


class TestAuth:
    async def test_invalid_token(self, client):
        response = await client.get("/api/v1/orders", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_expired_token(self, client, sales):
        token = create_access_token(sales.id, sales.name, sales.role, expires_delta=timedelta(minutes=-1))
        response = await client.get("/api/v1/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_unknown_role(self, client):
        token = create_access_token(uuid.uuid4(), "Eve", "janitor")
        response = await client.get("/api/v1/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_system_role_is_not_accepted(self, client):
        system = Actor(id=uuid.uuid4(), name="Intruder", role="system")
        response = await client.get("/api/v1/orders", headers=auth_headers(system))
        assert response.status_code == 403


class TestOrders:
    async def test_create_and_get(self, client, sales, notifier):
        order = await create_order(client, sales)

        assert order["status"] == "DRAFT"
        assert order["status_label"] == "Draft"
        assert order["order_number"] == 1
        assert order["created_by_id"] == str(sales.id)
        assert notifier.events() == ["Created"]

        response = await client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers(sales))
        assert response.status_code == 200
        assert response.json()["location_distribution"] == {"North": 60, "South": 40}

    async def test_validation_errors_are_422(self, client, sales):
        response = await client.post(
            "/api/v1/orders",
            json={**ORDER_JSON, "location_distribution": {"North": 200}},
            headers=auth_headers(sales),
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

        response = await client.post(
            "/api/v1/orders",
            json={**ORDER_JSON, "status": "APPROVED"},
            headers=auth_headers(sales),
        )
        assert response.status_code == 422

        response = await client.post(
            "/api/v1/orders",
            json={**ORDER_JSON, "earliest_delivery": "2030-04-01"},
            headers=auth_headers(sales),
        )
        assert response.status_code == 422

    async def test_supply_chain_cannot_create(self, client, supply_chain):
        response = await client.post("/api/v1/orders", json=ORDER_JSON, headers=auth_headers(supply_chain))
        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    async def test_unknown_order_is_404(self, client, sales):
        response = await client.get(f"/api/v1/orders/{uuid.uuid4()}", headers=auth_headers(sales))
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    async def test_patch_order(self, client, sales):
        order = await create_order(client, sales)
        response = await client.patch(
            f"/api/v1/orders/{order['id']}",
            json={"description": "Rush order"},
            headers=auth_headers(sales),
        )
        assert response.status_code == 200
        assert response.json()["description"] == "Rush order"

    async def test_list_respects_visibility(self, client, sales, other_sales):
        await create_order(client, sales)
        response = await client.get("/api/v1/orders", headers=auth_headers(other_sales))
        assert response.status_code == 200
        assert response.json()["items"] == []


class TestTransitions:
    async def test_forbidden_is_403(self, client, sales, other_sales):
        order = await create_order(client, sales)
        response = await move(client, order["id"], "SALES_REVIEW", other_sales)
        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    async def test_invalid_is_409(self, client, sales):
        order = await create_order(client, sales)
        response = await move(client, order["id"], "APPROVED", sales)
        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "INVALID_TRANSITION"
        assert body["details"]["allowed"] == ["SALES_REVIEW"]

    async def test_missing_reason_is_422(self, client, sales, supply_chain):
        order = await create_order(client, sales)
        await move(client, order["id"], "SALES_REVIEW", sales)
        await move(client, order["id"], "SUPPLY_CHAIN_REVIEW", sales)

        response = await move(client, order["id"], "REJECTED", supply_chain)
        assert response.status_code == 422
        assert response.json()["error_code"] == "REASON_REQUIRED"

        response = await move(client, order["id"], "REJECTED", supply_chain, reason="Not feasible")
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Not feasible"

    async def test_unknown_status_value_is_422(self, client, sales):
        order = await create_order(client, sales)
        response = await move(client, order["id"], "SHIPPED", sales)
        assert response.status_code == 422


class TestPlanning:
    async def test_approve_all_locations(self, client, sales, supply_chain, planning_north, planning_south, notifier):
        order = await to_planning_review(client, sales, supply_chain)

        response = await client.get("/api/v1/orders", headers=auth_headers(planning_north))
        assert [item["id"] for item in response.json()["items"]] == [order["id"]]

        response = await client.post(
            f"/api/v1/orders/{order['id']}/locations/South/approve", headers=auth_headers(planning_north)
        )
        assert response.status_code == 403

        response = await client.post(
            f"/api/v1/orders/{order['id']}/locations/North/approve", headers=auth_headers(planning_north)
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PLANNING_REVIEW"

        response = await client.post(
            f"/api/v1/orders/{order['id']}/locations/South/approve", headers=auth_headers(planning_south)
        )
        assert response.json()["status"] == "APPROVED"
        assert notifier.events("Approved") == ["Approved"]

        response = await client.get(f"/api/v1/orders/{order['id']}/approvals", headers=auth_headers(supply_chain))
        assert [(row["location"], row["approved"]) for row in response.json()] == [("North", True), ("South", True)]

    async def test_planning_correction_endpoint(self, client, sales, supply_chain, planning_north):
        order = await to_planning_review(client, sales, supply_chain)
        response = await client.post(
            f"/api/v1/orders/{order['id']}/planning-correction",
            json={"reason": "Kapazität fehlt", "total_quantity": 60, "location_distribution": {"North": 60}},
            headers=auth_headers(planning_north),
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "SUPPLY_CHAIN_REVIEW"
        assert body["total_quantity"] == 60

        response = await client.get(f"/api/v1/orders/{order['id']}/history", headers=auth_headers(supply_chain))
        assert response.json()[-1]["action"] == "Planning Correction"

    async def test_archive_endpoint(self, client, sales, supply_chain, planning_all):
        order = await to_planning_review(client, sales, supply_chain)
        response = await client.post(f"/api/v1/orders/{order['id']}/archive", headers=auth_headers(supply_chain))
        assert response.status_code == 409

        for location in ("North", "South"):
            await client.post(
                f"/api/v1/orders/{order['id']}/locations/{location}/approve", headers=auth_headers(planning_all)
            )
        response = await client.post(f"/api/v1/orders/{order['id']}/archive", headers=auth_headers(supply_chain))
        assert response.status_code == 200
        assert response.json()["archived"] is True


class TestAdmin:
    async def test_anonymize_requires_admin(self, client, sales):
        response = await client.post(f"/api/v1/admin/actors/{sales.id}/anonymize", headers=auth_headers(sales))
        assert response.status_code == 403

    async def test_anonymize(self, client, sales, admin):
        order = await create_order(client, sales)
        response = await client.post(f"/api/v1/admin/actors/{sales.id}/anonymize", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["cleared"]["orders"] == 1

        response = await client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers(admin))
        assert response.json()["created_by_id"] is None
        assert response.json()["created_by_name"] == sales.name

    async def test_job_status_and_manual_sweep(self, client, admin, supply_chain):
        response = await client.get("/api/v1/jobs", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["status"] == "stopped"

        response = await client.post("/api/v1/jobs/auto-complete", headers=auth_headers(supply_chain))
        assert response.status_code == 403

        response = await client.post("/api/v1/jobs/auto-complete", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["completed"] == 0
