"""Account lifecycle over HTTP: token refresh, profile edits, stats and deactivation."""
from datetime import date, timedelta

from finance_api.core.config import SimpleSettings
from finance_api.services.security import create_access_token

from test_api import API, _category_id, _open_account


def _current_budget(client, headers, name="This month"):
    today = date.today()
    resp = client.post(f"{API}/budgets", headers=headers, json={
        "name": name,
        "start_date": (today - timedelta(days=3)).isoformat(),
        "end_date": (today + timedelta(days=3)).isoformat(),
        "total_limit": "400",
        "categories": [{"category_id": _category_id(client, headers, "Groceries"), "allocated_amount": "250"}],
    })
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestTokenLifecycle:

    def test_verify_returns_caller(self, client, auth_headers):
        user, headers = auth_headers("alice")
        resp = client.get(f"{API}/auth/verify", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["valid"] is True
        assert resp.json()["data"]["user"]["id"] == user["id"]

    def test_expired_token_can_be_refreshed(self, client, settings, auth_headers):
        user, _ = auth_headers("alice")
        expired = create_access_token(user["id"], settings, expires_delta=timedelta(minutes=-5))

        resp = client.post(f"{API}/auth/refresh", json={"token": expired})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["message"] == "Token refreshed successfully"

        fresh = {"Authorization": f"Bearer {body['data']['access_token']}"}
        assert client.get(f"{API}/auth/me", headers=fresh).json()["data"]["username"] == "alice"

    def test_refresh_rejects_foreign_and_orphan_tokens(self, client, auth_headers):
        user, _ = auth_headers("alice")

        forged = create_access_token(user["id"], SimpleSettings(SECRET_KEY="someone-else"))
        resp = client.post(f"{API}/auth/refresh", json={"token": forged})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid refresh token"

        assert client.post(f"{API}/auth/refresh", json={"token": "not-a-jwt"}).status_code == 401
        assert client.post(f"{API}/auth/refresh", json={"token": ""}).status_code == 400

    def test_refresh_for_unknown_user(self, client, settings):
        orphan = create_access_token(4242, settings)
        resp = client.post(f"{API}/auth/refresh", json={"token": orphan})
        assert resp.status_code == 401


class TestProfile:

    def test_update_name_and_email(self, client, auth_headers):
        _, headers = auth_headers("alice")
        resp = client.put(f"{API}/users/profile", headers=headers, json={
            "full_name": "Alice Liddell", "email": "ALICE@wonderland.io",
        })
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert (data["first_name"], data["last_name"]) == ("Alice", "Liddell")
        assert data["email"] == "alice@wonderland.io"

        login = client.post(f"{API}/auth/login", json={
            "username_or_email": "alice@wonderland.io", "password": "secret123",
        })
        assert login.status_code == 200

    def test_empty_update_is_rejected(self, client, auth_headers):
        _, headers = auth_headers("alice")
        resp = client.put(f"{API}/users/profile", headers=headers, json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "No valid fields to update"

    def test_email_taken_by_someone_else(self, client, auth_headers):
        _, headers = auth_headers("alice")
        auth_headers("bob")
        resp = client.put(f"{API}/users/profile", headers=headers, json={"email": "bob@finance.io"})
        assert resp.status_code == 409

    def test_stats_overview_and_recent_activity(self, client, auth_headers):
        _, headers = auth_headers("alice")
        account = _open_account(client, headers, deposit="100.00")
        resp = client.post(f"{API}/transactions", headers=headers, json={
            "account_id": account["id"],
            "category_id": _category_id(client, headers, "Groceries"),
            "type": "expense",
            "amount": "30.00",
            "description": "Weekly shop",
        })
        assert resp.status_code == 201, resp.text
        _current_budget(client, headers)

        stats = client.get(f"{API}/users/stats", headers=headers).json()["data"]
        assert stats["overview"] == {
            "total_accounts": 1,
            "total_balance": "70.00",
            "total_transactions": 2,
            "income_transactions": 1,
            "expense_transactions": 1,
            "total_budgets": 1,
            "active_budgets": 1,
        }
        kinds = sorted(a["activity_type"] for a in stats["recent_activity"])
        assert kinds == ["budget", "transaction", "transaction"]


class TestDeactivation:

    def test_running_budget_blocks_deactivation(self, client, auth_headers):
        _, headers = auth_headers("alice")
        budget = _current_budget(client, headers)

        resp = client.delete(f"{API}/users/account", headers=headers)
        assert resp.status_code == 409
        assert client.get(f"{API}/auth/me", headers=headers).status_code == 200

        assert client.delete(f"{API}/budgets/{budget['id']}", headers=headers).status_code == 200
        assert client.delete(f"{API}/users/account", headers=headers).status_code == 200

    def test_deactivated_user_is_locked_out(self, client, auth_headers):
        _, headers = auth_headers("alice")
        _, bob = auth_headers("bob")
        assert client.delete(f"{API}/users/account", headers=headers).status_code == 200

        resp = client.get(f"{API}/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["message"] == "Account is deactivated"
        login = client.post(f"{API}/auth/login", json={"username_or_email": "alice", "password": "secret123"})
        assert login.status_code == 401
        # no longer offered as a transfer recipient
        assert client.get(f"{API}/users", headers=bob).json()["data"] == []
