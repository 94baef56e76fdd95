from datetime import timedelta

from django.utils import timezone

from modules.orders.constants import OrderStatus


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_cache_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_overdue_unpaid_orders(self, client, make_order):
        long_ago = timezone.now() - timedelta(hours=2)
        make_order(status=OrderStatus.PENDING_PAYMENT, created_at=long_ago)
        make_order(status=OrderStatus.PAYMENT_FAILED, created_at=long_ago)
        make_order(status=OrderStatus.PAID, created_at=long_ago)
        make_order(status=OrderStatus.PENDING_PAYMENT)

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["services"]["payment_sweep"] == {
            "status": "up",
            "overdue_orders": 2,
        }
