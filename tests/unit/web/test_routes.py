# === MODULE PURPOSE ===
# Unit tests for the JSON API routes.

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from papertrade.web.app import DEMO_PRICES, create_app, create_demo_service
from papertrade.web.routes import status_for

from tests.conftest import CLOSED_TIME, USER


@pytest.fixture
def client(service):
    app = create_app(service=service)
    with TestClient(app) as test_client:
        test_client.post(f"/api/users/{USER}/account")
        yield test_client


def buy(client, quantity=10, price=2400.50, symbol="RELIANCE", side="BUY", **extra):
    return client.post(
        f"/api/users/{USER}/trades",
        json={"symbol": symbol, "side": side, "quantity": quantity, "price": price, **extra},
    )


class TestStatusAndAccounts:
    def test_status(self, client):
        response = client.get("/api/status")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "market_open": True}

    def test_open_account_idempotent(self, client):
        response = client.post(f"/api/users/{USER}/account")

        assert response.status_code == 200
        assert response.json()["balance"] == 100000.0

    def test_unknown_account(self, client):
        response = client.get("/api/users/nobody/balance")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "account_not_found"


class TestTrades:
    def test_buy(self, client):
        response = buy(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["new_balance"] == 75975.0
        assert body["brokerage"] == 20.0
        assert client.get(f"/api/users/{USER}/balance").json()["balance"] == 75975.0

    def test_brokerage_flag(self, client):
        response = buy(client, brokerage_enabled=False)
        assert response.json()["new_balance"] == 75995.0

    def test_invalid_quantity(self, client):
        response = buy(client, quantity=0)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_quantity"

    def test_invalid_side(self, client):
        response = buy(client, side="HOLD")

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_side"

    def test_market_closed(self, client, feed):
        feed.set_clock(lambda: CLOSED_TIME)

        response = buy(client)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "market_closed"

    def test_insufficient_holdings(self, client):
        response = buy(client, side="SELL")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "insufficient_holdings"

    def test_store_unavailable(self, client, store):
        with patch.object(store, "get_position", AsyncMock(side_effect=OSError("down"))):
            response = buy(client)

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["error"] == "store_unavailable"
        assert detail["retryable"] is True

    def test_malformed_body(self, client):
        response = client.post(f"/api/users/{USER}/trades", json={"symbol": "TCS"})
        assert response.status_code == 422

    def test_history(self, client):
        buy(client)
        buy(client, symbol="TCS", quantity=1, price=3245.80)

        response = client.get(f"/api/users/{USER}/trades", params={"limit": 1})

        body = response.json()
        assert body["count"] == 1
        assert body["trades"][0]["symbol"] == "TCS"


class TestPortfolio:
    def test_positions(self, client):
        buy(client)

        body = client.get(f"/api/users/{USER}/positions").json()

        assert body["count"] == 1
        position = body["positions"][0]
        assert position["symbol"] == "RELIANCE"
        assert position["quantity"] == 10
        assert position["pnl"] == 562.5

    def test_summary(self, client):
        buy(client)

        body = client.get(f"/api/users/{USER}/portfolio").json()

        assert body["balance"] == 75975.0
        assert body["summary"]["total_invested"] == 24005.0
        assert body["summary"]["total_brokerage"] == 20.0

    def test_square_off(self, client):
        buy(client)

        response = client.post(f"/api/users/{USER}/positions/RELIANCE/square-off")

        assert response.status_code == 200
        body = response.json()
        assert body["realized_pnl"] == 562.5
        assert body["message"] == "Position squared off successfully. P&L: ₹562.50"
        assert client.get(f"/api/users/{USER}/positions").json()["count"] == 0

    def test_square_off_without_position(self, client):
        response = client.post(f"/api/users/{USER}/positions/TCS/square-off")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "position_not_found"


class TestSettings:
    def test_get_default(self, client):
        body = client.get(f"/api/users/{USER}/settings").json()
        assert body == {"user_id": USER, "brokerage_simulation": True}

    def test_update(self, client):
        response = client.put(
            f"/api/users/{USER}/settings", json={"brokerage_simulation": False}
        )

        assert response.status_code == 200
        assert response.json()["brokerage_simulation"] is False
        assert buy(client).json()["brokerage"] == 0.0


class TestApp:
    def test_status_codes(self):
        assert status_for("invalid_price") == 400
        assert status_for("insufficient_balance") == 409
        assert status_for("store_unavailable") == 503
        assert status_for(None) == 400

    def test_demo_service(self):
        service = create_demo_service()
        assert service.feed.symbols == sorted(DEMO_PRICES)
