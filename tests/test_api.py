"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import ASSET, build_vault
from yieldpool.api.app import create_app

ADMIN_KEY = "s3cret"
ADMIN = {"X-API-Key": ADMIN_KEY, "X-Caller": "ops"}
ALICE = {"X-Caller": "alice"}


def _metrics(identity: str, apy: int) -> dict:
    return {
        "identity": identity,
        "current_apy_bps": apy,
        "liquidity_depth_usd": 5_000_000,
        "market_cap_usd": 50_000_000,
    }


@pytest.fixture
def client(operator, adapters) -> TestClient:
    app = create_app(build_vault(operator, adapters), admin_key=ADMIN_KEY)
    return TestClient(app)


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["assets"] == [ASSET]
    assert "X-Request-ID" in response.headers


def test_deposit_and_position(client: TestClient) -> None:
    response = client.post("/vault/deposit", json={"asset": ASSET, "amount": 100}, headers=ALICE)
    assert response.status_code == 200
    assert response.json()["shares_minted"] == 100

    position = client.get(f"/vault/positions/alice/{ASSET}").json()
    assert position == {"asset": ASSET, "shares": 100, "value": 100, "apy_bps": 0}

    portfolio = client.get("/vault/positions/alice").json()
    assert [p["asset"] for p in portfolio] == [ASSET]


def test_withdraw(client: TestClient) -> None:
    client.post("/vault/deposit", json={"asset": ASSET, "amount": 1_000}, headers=ALICE)
    response = client.post(
        "/vault/withdraw", json={"asset": ASSET, "shares": 400, "min_amount": 400}, headers=ALICE
    )
    assert response.status_code == 200
    assert response.json()["net_amount"] == 400


def test_previews(client: TestClient) -> None:
    client.post("/vault/deposit", json={"asset": ASSET, "amount": 1_000}, headers=ALICE)
    assert client.get("/vault/preview/deposit", params={"asset": ASSET, "amount": 500}).json()[
        "shares"
    ] == 500
    assert client.get("/vault/preview/withdraw", params={"asset": ASSET, "shares": 500}).json()[
        "net_amount"
    ] == 500

    negative = client.get("/vault/preview/withdraw", params={"asset": ASSET, "shares": -5})
    assert negative.status_code == 400
    assert negative.json()["error"] == "InvalidAmount"
    too_many = client.get("/vault/preview/withdraw", params={"asset": ASSET, "shares": 1_001})
    assert too_many.status_code == 409


def test_missing_caller_rejected(client: TestClient) -> None:
    response = client.post("/vault/deposit", json={"asset": ASSET, "amount": 100})
    assert response.status_code == 401


def test_domain_errors_map_to_status(client: TestClient) -> None:
    dust = client.post("/vault/deposit", json={"asset": ASSET, "amount": 5}, headers=ALICE)
    assert dust.status_code == 400
    assert dust.json()["error"] == "BelowMinimumShares"
    assert dust.json()["category"] == "policy"

    overdraw = client.post("/vault/withdraw", json={"asset": ASSET, "shares": 10}, headers=ALICE)
    assert overdraw.status_code == 409
    assert overdraw.json()["category"] == "integrity"


class TestAdmin:
    def test_requires_key(self, client: TestClient) -> None:
        assert client.post("/admin/assets", json={"asset": "DAI"}, headers=ALICE).status_code == 401
        wrong = {"X-API-Key": "nope", "X-Caller": "ops"}
        assert client.post("/admin/assets", json={"asset": "DAI"}, headers=wrong).status_code == 401

    def test_disabled_without_configured_key(self, operator) -> None:
        client = TestClient(create_app(build_vault(operator), admin_key=""))
        response = client.post("/admin/assets", json={"asset": "DAI"}, headers=ADMIN)
        assert response.status_code == 403

    def test_asset_lifecycle(self, client: TestClient) -> None:
        created = client.post("/admin/assets", json={"asset": "DAI", "symbol": "Dai"}, headers=ADMIN)
        assert created.status_code == 201
        assert created.json()["symbol"] == "Dai"

        limits = client.put(
            "/admin/assets/DAI/limits", json={"min_deposit": 10, "max_deposit": 0}, headers=ADMIN
        )
        assert limits.status_code == 200

        client.post("/vault/deposit", json={"asset": "DAI", "amount": 100}, headers=ALICE)
        blocked = client.delete("/admin/assets/DAI", headers=ADMIN)
        assert blocked.status_code == 409

        client.post("/vault/withdraw", json={"asset": "DAI", "shares": 100}, headers=ALICE)
        assert client.delete("/admin/assets/DAI", headers=ADMIN).status_code == 200

    def test_fees(self, client: TestClient) -> None:
        assert client.put("/admin/fees/deposit", json={"rate_bps": 100}, headers=ADMIN).status_code == 200
        too_high = client.put("/admin/fees/withdrawal", json={"rate_bps": 501}, headers=ADMIN)
        assert too_high.status_code == 400
        assert too_high.json()["error"] == "FeeRateTooHigh"

        recipient = client.put("/admin/fee-recipient", json={"recipient": "dao"}, headers=ADMIN)
        assert recipient.json() == {"recipient": "dao"}

        receipt = client.post("/vault/deposit", json={"asset": ASSET, "amount": 100}, headers=ALICE)
        assert receipt.json()["fee_amount"] == 1

    def test_pause_blocks_depositors(self, client: TestClient) -> None:
        client.post("/admin/pause", headers=ADMIN)
        paused = client.post("/vault/deposit", json={"asset": ASSET, "amount": 100}, headers=ALICE)
        assert paused.status_code == 423

        client.post("/admin/resume", headers=ADMIN)
        resumed = client.post("/vault/deposit", json={"asset": ASSET, "amount": 100}, headers=ALICE)
        assert resumed.status_code == 200


class TestAllocation:
    def test_compute(self, client: TestClient) -> None:
        response = client.post(
            "/allocation/compute",
            json={"metrics": [_metrics("aave", 300), _metrics("compound", 600), _metrics("curve", 900)]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["allocation"]["weights_bps"] == [1_666, 3_333, 5_001]
        assert body["allocation"]["blended_apy_bps"] == 698
        assert body["valid"] is True

    def test_rebalance_is_idempotent_by_nonce(self, client: TestClient) -> None:
        client.post("/vault/deposit", json={"asset": ASSET, "amount": 10_000}, headers=ALICE)
        payload = {
            "asset": ASSET,
            "metrics": [_metrics("aave", 300), _metrics("compound", 600), _metrics("curve", 900)],
            "nonce": "fixed",
            "deadline": 9_999_999_999.0,
        }

        first = client.post("/allocation/rebalance", json=payload, headers=ADMIN)
        assert first.status_code == 200
        assert first.json()["deposited"] == {"aave": 1_666, "compound": 3_333, "curve": 5_001}

        again = client.post("/allocation/rebalance", json=payload, headers=ADMIN)
        assert again.status_code == 409
        assert again.json()["category"] == "idempotence"

    def test_rebalance_requires_admin(self, client: TestClient) -> None:
        payload = {"asset": ASSET, "metrics": [_metrics("aave", 300)]}
        assert client.post("/allocation/rebalance", json=payload, headers=ALICE).status_code == 401
