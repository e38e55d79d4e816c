"""
Integration tests for the order service API.

The app runs against SQLite and an in-memory queue; the queue object is
kept by the test so pushed payloads can be inspected.
"""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.main import NOTIFICATION_STATUS_HEADER, create_app
from models.schemas import NotificationEnvelope, NotificationType
from tests.conftest import FlakyQueue

ORDER_BODY = {"userId": 7, "productId": 3, "quantity": 2, "totalAmount": 19.98}


@pytest.fixture
def queue():
    return FlakyQueue()


@pytest.fixture
def client(settings, queue):
    with TestClient(create_app(settings, queue=queue)) as c:
        yield c


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["service"] == "order-service"
        assert "timestamp" in body


class TestCreateOrder:
    def test_create_enqueues_notification(self, client, queue):
        resp = client.post("/api/orders", json=ORDER_BODY)

        assert resp.status_code == 201
        assert resp.headers[NOTIFICATION_STATUS_HEADER] == "queued"
        order = resp.json()
        assert order["user_id"] == 7
        assert order["status"] == "pending"

        assert len(queue.pushed) == 1
        name, payload = queue.pushed[0]
        assert name == "email-queue"
        env = NotificationEnvelope.decode(payload)
        assert env.type is NotificationType.ORDER_CREATED
        assert env.order_id == order["id"]
        assert (env.user_id, env.product_id, env.quantity) == (7, 3, 2)
        assert env.total_amount == Decimal("19.98")

    def test_enqueue_failure_still_returns_created(self, client, queue):
        queue.failing_pushes = 1

        resp = client.post("/api/orders", json=ORDER_BODY)

        assert resp.status_code == 201
        assert resp.headers[NOTIFICATION_STATUS_HEADER] == "failed"
        order_id = resp.json()["id"]
        # The order stays committed
        assert client.get(f"/api/orders/{order_id}").status_code == 200
        assert queue.pushed == []

    @pytest.mark.parametrize("missing", ["userId", "productId", "quantity", "totalAmount"])
    def test_missing_field_is_400(self, client, queue, missing):
        body = {k: v for k, v in ORDER_BODY.items() if k != missing}
        resp = client.post("/api/orders", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "All fields are required"}
        assert queue.pushed == []

    @pytest.mark.parametrize("field,value", [
        ("quantity", -2), ("userId", -5), ("productId", -1), ("totalAmount", -3),
        ("totalAmount", 1.234), ("totalAmount", 123456789.5),
    ])
    def test_out_of_range_field_is_400_before_insert(self, client, queue, field, value):
        resp = client.post("/api/orders", json={**ORDER_BODY, field: value})

        assert resp.status_code == 400
        assert resp.json() == {"error": f"Invalid fields: {field}"}
        assert client.get("/api/orders").json() == []
        assert queue.pushed == []

    def test_rapid_creates_enqueue_in_order(self, client, queue):
        ids = [client.post("/api/orders", json=ORDER_BODY).json()["id"] for _ in range(2)]
        pushed_ids = [NotificationEnvelope.decode(p).order_id for _, p in queue.pushed]
        assert pushed_ids == ids


class TestOrderCrud:
    def test_get_missing_is_404(self, client):
        resp = client.get("/api/orders/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Order not found"}

    def test_list_update_delete(self, client):
        order_id = client.post("/api/orders", json=ORDER_BODY).json()["id"]

        assert [o["id"] for o in client.get("/api/orders").json()] == [order_id]

        updated = client.put(f"/api/orders/{order_id}", json={"status": "shipped"}).json()
        assert updated["status"] == "shipped"
        assert updated["quantity"] == 2

        resp = client.delete(f"/api/orders/{order_id}")
        assert resp.json() == {"message": "Order deleted successfully"}
        assert client.delete(f"/api/orders/{order_id}").status_code == 404

    def test_update_rejects_non_positive_quantity(self, client):
        order_id = client.post("/api/orders", json=ORDER_BODY).json()["id"]
        resp = client.put(f"/api/orders/{order_id}", json={"quantity": 0})
        assert resp.status_code == 400
        assert client.get(f"/api/orders/{order_id}").json()["quantity"] == 2

    def test_update_missing_is_404(self, client):
        assert client.put("/api/orders/999", json={"quantity": 3}).status_code == 404


class TestQueueStats:
    def test_depth_counts_pending_notifications(self, client):
        client.post("/api/orders", json=ORDER_BODY)
        client.post("/api/orders", json=ORDER_BODY)
        assert client.get("/api/queue/stats").json() == {"queue": "email-queue", "depth": 2}
