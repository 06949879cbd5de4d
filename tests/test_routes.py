"""
HTTP tests for the API routes against the in-memory engine.
"""

from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routes.base import router

SELLER = {"X-User-Id": "seller"}
ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
ADMIN = {"X-User-Id": "ops", "X-User-Role": "admin"}


@pytest.fixture
def client(engine):
    app = FastAPI()
    app.include_router(router)
    app.state.engine = engine
    return TestClient(app)


def _create_auction(client, starting_price="100.00", minutes=10):
    resp = client.post(
        "/api/products/",
        json={"name": "Vintage lamp", "starting_price": starting_price, "auction_duration_minutes": minutes},
        headers=SELLER,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["auction"]["id"]


def _bid(client, auction_id, headers, amount):
    return client.post(f"/api/auctions/{auction_id}/bids", json={"amount": amount}, headers=headers)


class TestProductRoutes:
    """Test product creation"""

    def test_create_opens_auction(self, client):
        resp = client.post(
            "/api/products/",
            json={"name": "Vintage lamp", "starting_price": "100.00", "auction_duration_minutes": 10},
            headers=SELLER,
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["owner_id"] == "seller"
        assert body["auction"]["status"] == "active"
        assert body["auction"]["extension_count"] == 0

    def test_caller_identity_required(self, client):
        resp = client.post(
            "/api/products/",
            json={"name": "Vintage lamp", "starting_price": "100.00", "auction_duration_minutes": 10},
        )
        assert resp.status_code == 401

    def test_invalid_price_rejected(self, client):
        resp = client.post(
            "/api/products/",
            json={"name": "Vintage lamp", "starting_price": "-1", "auction_duration_minutes": 10},
            headers=SELLER,
        )
        assert resp.status_code == 422


class TestBidRoutes:
    """Test bid placement and rejection reasons"""

    def test_place_bid(self, client):
        auction_id = _create_auction(client)
        resp = _bid(client, auction_id, ALICE, "150.00")
        assert resp.status_code == 201
        assert Decimal(resp.json()["amount"]) == Decimal("150.00")

        detail = client.get(f"/api/auctions/{auction_id}").json()
        assert detail["highest_bid_id"] == resp.json()["id"]
        assert detail["product_name"] == "Vintage lamp"

    def test_rejection_reasons_verbatim(self, client):
        auction_id = _create_auction(client)
        own = _bid(client, auction_id, SELLER, "150.00")
        assert own.status_code == 400
        assert own.json()["detail"] == "Cannot bid on your own product"

        low = _bid(client, auction_id, ALICE, "90.00")
        assert low.status_code == 400
        assert low.json()["detail"] == "Bid amount must be greater than current highest bid of 100.00"

    def test_unknown_auction(self, client):
        resp = _bid(client, "missing", ALICE, "150.00")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Auction not found"

    def test_expired_auction(self, client, clock):
        auction_id = _create_auction(client, minutes=1)
        clock.advance(minutes=2)
        resp = _bid(client, auction_id, ALICE, "150.00")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Auction has already expired"

    def test_bid_history_highest_first(self, client):
        auction_id = _create_auction(client)
        _bid(client, auction_id, ALICE, "150.00")
        _bid(client, auction_id, BOB, "175.00")

        bids = client.get(f"/api/auctions/{auction_id}/bids").json()
        assert [b["bidder_id"] for b in bids] == ["bob", "alice"]

    def test_list_by_status(self, client):
        auction_id = _create_auction(client)
        active = client.get("/api/auctions/", params={"status": "active"}).json()
        assert [a["id"] for a in active] == [auction_id]
        assert client.get("/api/auctions/", params={"status": "completed"}).json() == []


class TestFinalizeRoute:
    """Test administrative finalization"""

    def test_admin_required(self, client):
        auction_id = _create_auction(client)
        resp = client.post(f"/api/auctions/{auction_id}/finalize", headers=ALICE)
        assert resp.status_code == 403

    def test_finalize_with_bids(self, client):
        auction_id = _create_auction(client)
        _bid(client, auction_id, ALICE, "150.00")
        resp = client.post(f"/api/auctions/{auction_id}/finalize", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["status"] == "pending_payment"

        again = client.post(f"/api/auctions/{auction_id}/finalize", headers=ADMIN)
        assert again.status_code == 400


class TestPaymentRoutes:
    """Test payment confirmation over HTTP"""

    def _closed(self, client):
        auction_id = _create_auction(client)
        _bid(client, auction_id, BOB, "150.00")
        _bid(client, auction_id, ALICE, "200.00")
        client.post(f"/api/auctions/{auction_id}/finalize", headers=ADMIN)
        return auction_id

    def test_pending_attempt_visible(self, client):
        auction_id = self._closed(client)
        resp = client.get(f"/api/payments/auction/{auction_id}", headers=ALICE)
        assert resp.status_code == 200
        body = resp.json()
        assert body["bidder_id"] == "alice"
        assert body["attempt_number"] == 1
        assert body["status"] == "pending"

    def test_confirm_completes_auction(self, client):
        auction_id = self._closed(client)
        payment_id = client.get(f"/api/payments/auction/{auction_id}", headers=ALICE).json()["id"]

        resp = client.post(f"/api/payments/{payment_id}/confirm", json={"amount": "200.00"}, headers=ALICE)
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"
        assert client.get(f"/api/auctions/{auction_id}").json()["status"] == "completed"

    def test_wrong_bidder_forbidden(self, client):
        auction_id = self._closed(client)
        resp = client.post("/api/payments/confirm", json={"auction_id": auction_id, "amount": "200.00"}, headers=BOB)
        assert resp.status_code == 403

    def test_mismatch_cascades(self, client):
        auction_id = self._closed(client)
        resp = client.post(
            "/api/payments/confirm", json={"auction_id": auction_id, "amount": "199.00"}, headers=ALICE
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "failed"
        assert "amount_due" not in resp.json()

        history = client.get(f"/api/payments/auction/{auction_id}/history", headers=ALICE).json()
        assert [(a["attempt_number"], a["bidder_id"], a["status"]) for a in history] == [
            (1, "alice", "failed"),
            (2, "bob", "pending"),
        ]

    def test_amount_owed_hidden_from_confirmation(self, client):
        auction_id = self._closed(client)
        payment_id = client.get(f"/api/payments/auction/{auction_id}", headers=ALICE).json()["id"]

        resp = client.post(f"/api/payments/{payment_id}/confirm", json={"amount": "1.00"}, headers=ALICE)
        assert resp.status_code == 200
        assert resp.json()["status"] == "failed"
        assert "amount_due" not in resp.json()

    def test_amount_owed_shown_only_to_designated_bidder(self, client):
        auction_id = self._closed(client)
        own = client.get(f"/api/payments/auction/{auction_id}", headers=ALICE).json()
        other = client.get(f"/api/payments/auction/{auction_id}", headers=BOB).json()

        assert Decimal(own["amount_due"]) == Decimal("200.00")
        assert "amount_due" not in other
        history = client.get(f"/api/payments/auction/{auction_id}/history", headers=BOB).json()
        assert all("amount_due" not in a for a in history)

    def test_expired_window(self, client, clock):
        auction_id = self._closed(client)
        clock.advance(minutes=2)
        resp = client.post(
            "/api/payments/confirm", json={"auction_id": auction_id, "amount": "200.00"}, headers=ALICE
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Payment window has expired"

    def test_no_pending_attempt(self, client):
        auction_id = _create_auction(client)
        resp = client.get(f"/api/payments/auction/{auction_id}", headers=ALICE)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "No pending payment attempt found for this auction"


class TestReportingRoutes:
    """Test transactions and dashboard"""

    def test_transactions_and_dashboard(self, client):
        auction_id = _create_auction(client)
        _bid(client, auction_id, ALICE, "200.00")
        client.post(f"/api/auctions/{auction_id}/finalize", headers=ADMIN)
        client.post("/api/payments/confirm", json={"auction_id": auction_id, "amount": "200.00"}, headers=ALICE)
        _create_auction(client)

        transactions = client.get("/api/transactions/", headers=ADMIN).json()
        assert [t["status"] for t in transactions] == ["success"]

        dashboard = client.get("/api/dashboard/", headers=ADMIN).json()
        assert dashboard["active_count"] == 1
        assert dashboard["completed_count"] == 1
        assert dashboard["pending_payment"] == 0
        assert dashboard["top_winners"][0]["user_id"] == "alice"
        assert Decimal(dashboard["top_winners"][0]["total_amount_spent"]) == Decimal("200.00")

    def test_dashboard_admin_only(self, client):
        assert client.get("/api/dashboard/", headers=ALICE).status_code == 403
