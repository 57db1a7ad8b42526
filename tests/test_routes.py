"""
Tests for the HTTP API.
"""

from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from app.auth import hash_password
from app.config import settings
from app.main import app
from app.processor import CatalogUnavailableError, ExecuteResult, PreviewResult
from app.shopify import ShopifyAuthError
from app.routes import auth as auth_routes
from app.routes import connection as connection_routes
from app.routes import sync as sync_routes


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_path", str(tmp_path / "app.db"))
    monkeypatch.setattr(settings, "admin_password_hash", hash_password("letmein"))
    monkeypatch.setattr(settings, "shopify_store_domain", "test-shop.myshopify.com")
    monkeypatch.setattr(settings, "shopify_access_token", "shpat_test")
    monkeypatch.setattr(settings, "cj_api_token", "cj-token")
    auth_routes.failed_attempts.clear()

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in(client):
    response = client.post("/login", json={"password": "letmein"})
    assert response.status_code == 200
    return client


class TestAuth:
    def test_health_needs_no_session(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_api_requires_session(self, client):
        assert client.get("/api/sync-prices/config").status_code == 401

    def test_wrong_password(self, client):
        response = client.post("/login", json={"password": "nope"})

        assert response.status_code == 401
        assert client.get("/api/sync-prices/config").status_code == 401

    def test_login_logout(self, logged_in):
        assert logged_in.get("/session").json() == {"authenticated": True}

        logged_in.post("/logout")

        assert logged_in.get("/api/sync-prices/config").status_code == 401


class TestConfigRoutes:
    def test_get_defaults(self, logged_in):
        policy = logged_in.get("/api/sync-prices/config").json()

        assert policy["markup_multiplier"] == 2.0
        assert policy["min_price"] == 19.99
        assert policy["version"] == 1

    def test_update(self, logged_in):
        logged_in.get("/api/sync-prices/config")

        response = logged_in.post(
            "/api/sync-prices/config",
            json={"markup_multiplier": 2.5, "min_price": 9.99, "round_to": 0.99},
        )

        assert response.status_code == 200
        assert response.json()["version"] == 2
        assert logged_in.get("/api/sync-prices/config").json()["round_to"] == 0.99

    def test_invalid_policy_rejected(self, logged_in):
        response = logged_in.post(
            "/api/sync-prices/config", json={"min_price": 50, "max_price": 10}
        )

        assert response.status_code == 422


class TestSyncRoutes:
    def test_missing_credentials(self, logged_in, monkeypatch):
        monkeypatch.setattr(settings, "cj_api_token", "")

        response = logged_in.post("/api/sync-prices/preview")

        assert response.status_code == 400

    def test_preview_passes_options(self, logged_in, monkeypatch):
        seen = {}

        async def fake_preview(db, rate_state, credentials, overrides):
            seen["overrides"] = overrides
            seen["shop"] = credentials.shop_domain
            return PreviewResult(success=True, total_products=3)

        monkeypatch.setattr(sync_routes, "run_preview", fake_preview)

        response = logged_in.post(
            "/api/sync-prices/preview",
            json={"options": {"markup_multiplier": 3}, "shopify_store": "other.myshopify.com"},
        )

        assert response.status_code == 200
        assert response.json()["total_products"] == 3
        assert seen["overrides"].markup_multiplier == 3
        assert seen["shop"] == "other.myshopify.com"

    def test_execute_catalog_unavailable(self, logged_in, monkeypatch):
        async def fake_execute(*args, **kwargs):
            raise CatalogUnavailableError("Shopify API error: HTTP 503")

        monkeypatch.setattr(sync_routes, "run_execute", fake_execute)

        response = logged_in.post("/api/sync-prices", json={"product_ids": ["1"]})

        assert response.status_code == 502

    def test_execute_result(self, logged_in, monkeypatch):
        async def fake_execute(db, rate_state, registry, credentials, overrides=None,
                               product_ids=None, trigger=None):
            return ExecuteResult(total=2, updated=1, skipped=1)

        monkeypatch.setattr(sync_routes, "run_execute", fake_execute)

        body = logged_in.post("/api/sync-prices").json()

        assert body["updated"] == 1
        assert body["skipped"] == 1

    def test_cancel_without_runs(self, logged_in):
        assert logged_in.post("/api/sync-prices/cancel").json() == {"success": True, "cancelled": 0}

    def test_status_idle(self, logged_in):
        assert logged_in.get("/api/sync-prices/status").json() == {
            "running_syncs": 0,
            "rate_limited": False,
        }


class TestHistoryRoutes:
    def test_empty_history(self, logged_in):
        assert logged_in.get("/api/sync-prices/history").json() == {"days": [], "latest": None}

    def test_bad_day(self, logged_in):
        assert logged_in.get("/api/sync-prices/history/yesterday").status_code == 400

    def test_missing_day(self, logged_in):
        assert logged_in.get("/api/sync-prices/history/2020-01-01").status_code == 404


class TestLinkRoutes:
    def test_import_csv(self, logged_in):
        content = b"Handle,Title,Variant SKU\nmug,Coffee Mug,MUG-1\nmug,,MUG-2\n"

        response = logged_in.post(
            "/api/import-csv", files={"file": ("products_export.csv", content, "text/csv")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["unique_products"] == 1
        assert body["products"][0]["sku"] == "MUG-1"

    def test_import_rejects_other_files(self, logged_in):
        response = logged_in.post(
            "/api/import-csv", files={"file": ("products.xlsx", b"data", "application/octet-stream")}
        )

        assert response.status_code == 400

    def test_set_metafield_requires_ids(self, logged_in):
        response = logged_in.post(
            "/api/set-cj-metafield", json={"product_id": "1", "cj_product_id": ""}
        )

        assert response.status_code == 400


def fake_open_catalog(shop=None, error=None, seen=None):
    class ShopOnlyCatalog:
        async def get_shop(self):
            if error is not None:
                raise error
            return shop

    @asynccontextmanager
    async def open_catalog(credentials):
        if seen is not None:
            seen.append(credentials.shop_domain)
        yield ShopOnlyCatalog()

    return open_catalog


class TestConnectionRoute:
    def test_connected(self, logged_in, monkeypatch):
        seen = []
        shop = {"name": "Test Shop", "myshopifyDomain": "other.myshopify.com", "currencyCode": "EUR"}
        monkeypatch.setattr(connection_routes, "open_catalog", fake_open_catalog(shop, seen=seen))

        response = logged_in.post(
            "/api/test-connection",
            json={"shopify_store": "https://other.myshopify.com/", "shopify_token": "shpat_other"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "shop": shop}
        assert seen == ["https://other.myshopify.com/"]

    def test_rejected_token(self, logged_in, monkeypatch):
        error = ShopifyAuthError("Access token rejected by test-shop.myshopify.com (HTTP 401)")
        monkeypatch.setattr(connection_routes, "open_catalog", fake_open_catalog(error=error))

        response = logged_in.post("/api/test-connection")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "HTTP 401" in body["error"]

    def test_missing_credentials(self, logged_in, monkeypatch):
        monkeypatch.setattr(settings, "shopify_access_token", "")

        response = logged_in.post("/api/test-connection")

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_requires_session(self, client):
        assert client.post("/api/test-connection").status_code == 401
