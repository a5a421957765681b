"""
Tests for the HTTP API using Flask's test client.

Stores and the extraction provider are swapped for in-memory fakes through
the module-level globals in server.py.

Run with: pytest tests/test_server.py -v
"""

import pytest

import server
from fabrix.errors import PersistenceError, ProviderError

from conftest import FakeProfileStore, FakeProvider, InMemoryProductStore, make_user

COTTON_POLY = {
    "fibers": [{"name": "cotton", "percentage": 60}, {"name": "recycled polyester", "percentage": 40}],
    "lining": None,
    "trim": None,
    "composition_grade": "Natural",
}

AUTH = {"Authorization": "Bearer good-token"}


@pytest.fixture
def profiles():
    return FakeProfileStore(
        {
            "good-token": make_user(),
            "empty-token": make_user(id="user-2", scans_remaining=0),
            "busy-token": make_user(id="user-3", scans_used_today=25),
            "flagged-token": make_user(id="user-4", is_flagged=True, flagged_reason="Abuse"),
        }
    )


@pytest.fixture
def provider():
    return FakeProvider(response=COTTON_POLY)


@pytest.fixture
def products():
    return InMemoryProductStore()


@pytest.fixture
def client(monkeypatch, profiles, provider, products):
    monkeypatch.setattr(server, "profile_store", profiles)
    monkeypatch.setattr(server, "product_store", products)
    monkeypatch.setattr(server, "ai_client", provider)
    return server.app.test_client()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.post("/analyze", json={"text": "100% cotton"})
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}

    def test_bad_token(self, client):
        response = client.post(
            "/analyze", json={"text": "100% cotton"}, headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_flagged_account(self, client, provider):
        response = client.post(
            "/analyze",
            json={"text": "100% cotton"},
            headers={"Authorization": "Bearer flagged-token"},
        )
        assert response.status_code == 403
        assert response.get_json() == {"error": "Account suspended", "reason": "Abuse"}
        assert provider.calls == []

    def test_auth_me(self, client):
        response = client.get("/auth/me", headers=AUTH)
        assert response.status_code == 200
        user = response.get_json()["user"]
        assert user["email"] == "shopper@example.com"
        assert user["scans_remaining"] == 10


class TestAnalyze:
    def test_success(self, client, provider, profiles):
        response = client.post(
            "/analyze", json={"text": "Content: 60% cotton, 40% recycled polyester"}, headers=AUTH
        )
        assert response.status_code == 200
        body = response.get_json()
        assert body["composition_grade"] == "Mixed"
        assert body["fibers"][1] == {"name": "polyester (Recycled)", "percentage": 40}
        assert body["lining"] is None
        assert body["scans_remaining"] == 9
        assert body["subscription_tier"] == "free"
        assert profiles.consumed == ["user-1"]
        assert len(provider.calls) == 1

    @pytest.mark.parametrize(
        "body,message",
        [
            ({}, "Text must be a non-empty string"),
            ({"text": 12}, "Text must be a non-empty string"),
            ({"text": "   "}, "Text cannot be empty"),
            ({"text": "a" * 20001}, "Text too long (max 20,000 characters)"),
        ],
    )
    def test_invalid_text(self, client, profiles, provider, body, message):
        response = client.post("/analyze", json=body, headers=AUTH)
        assert response.status_code == 400
        assert response.get_json() == {"error": message}
        assert profiles.consumed == []
        assert provider.calls == []

    def test_non_object_body(self, client):
        response = client.post("/analyze", json=["text"], headers=AUTH)
        assert response.status_code == 400

    def test_no_scans_remaining(self, client, provider):
        response = client.post(
            "/analyze",
            json={"text": "100% cotton"},
            headers={"Authorization": "Bearer empty-token"},
        )
        assert response.status_code == 403
        body = response.get_json()
        assert body["error"] == "No scans remaining"
        assert body["scans_remaining"] == 0
        assert provider.calls == []

    def test_daily_limit_flags_account(self, client, profiles):
        response = client.post(
            "/analyze",
            json={"text": "100% cotton"},
            headers={"Authorization": "Bearer busy-token"},
        )
        assert response.status_code == 429
        assert response.get_json()["error"] == "Daily scan limit exceeded"
        assert profiles.flagged[0][0] == "user-3"

    def test_malformed_model_output(self, client, provider):
        provider.response = "I think this is cotton."
        response = client.post("/analyze", json={"text": "100% cotton"}, headers=AUTH)
        assert response.status_code == 500
        assert response.get_json() == {"error": "Invalid AI response format"}

    def test_provider_status_forwarded(self, client, provider):
        provider.error = ProviderError("Rate limit reached", status_code=429)
        response = client.post("/analyze", json={"text": "100% cotton"}, headers=AUTH)
        assert response.status_code == 429
        assert response.get_json() == {"error": "AI provider error: Rate limit reached"}


class TestSaveProduct:
    def test_insert_then_repeat(self, client, valid_product):
        first = client.post("/save-product", json=valid_product)
        assert first.status_code == 201
        assert first.get_json()["alreadyExists"] is False

        second = client.post("/save-product", json=valid_product)
        assert second.status_code == 200
        assert second.get_json() == {
            "message": "Already in library!",
            "alreadyExists": True,
            "checkCount": 2,
            "compositionChanged": False,
        }

    def test_validation_details(self, client, valid_product, products):
        valid_product["fibers"] = [{"name": "cotton", "percentage": 101}]
        valid_product["url"] = "not-a-url"
        response = client.post("/save-product", json=valid_product)
        assert response.status_code == 400
        assert response.get_json()["details"] == [
            "Invalid or missing URL",
            "fibers[0]: percentage cannot exceed 100",
        ]
        assert products.inserts == []

    def test_non_json_body(self, client):
        response = client.post("/save-product", data="hello", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["details"] == ["Product data must be an object"]

    def test_store_error(self, client, valid_product, products, monkeypatch):
        def failing_get(url):
            raise PersistenceError("relation products does not exist")

        monkeypatch.setattr(products, "get", failing_get)
        response = client.post("/save-product", json=valid_product)
        assert response.status_code == 502
        assert response.get_json() == {
            "error": "Database Error: relation products does not exist"
        }

    def test_unexpected_error_hides_details(self, client, valid_product, products, monkeypatch):
        def crashing_get(url):
            raise RuntimeError("/srv/app/secret.py line 12")

        monkeypatch.setattr(products, "get", crashing_get)
        response = client.post("/save-product", json=valid_product)
        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal Server Error."}

    def test_body_too_large(self, client):
        response = client.post(
            "/save-product",
            data="x" * (server.config.server.max_content_length + 1),
            content_type="application/json",
        )
        assert response.status_code == 413


class TestCors:
    def test_extension_origin_allowed(self, client):
        response = client.get("/health", headers={"Origin": "chrome-extension://abcdef"})
        assert response.headers["Access-Control-Allow-Origin"] == "chrome-extension://abcdef"

    def test_web_origin_not_allowed(self, client):
        response = client.get("/health", headers={"Origin": "https://evil.example.com"})
        assert "Access-Control-Allow-Origin" not in response.headers
