"""
Shared fixtures.

Every test gets its own in-memory SQLite database with reference data seeded,
an app wired to it, a fake receipt extractor (no Tesseract needed) and a blob
store rooted in a temp directory.
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from finance_api.core.config import SimpleSettings
from finance_api.db import models
from finance_api.db.seed import seed_reference_data
from finance_api.db.session import Database
from finance_api.main import create_app
from finance_api.services import accounts, ledger, users
from finance_api.services.blob_store import LocalBlobStore
from finance_api.services.receipts import ExtractedReceipt, ReceiptExtractionError


class FakeExtractor:
    """Returns a canned extraction, or fails when ``fail`` is set."""

    def __init__(self):
        self.fail = False
        self.calls = 0
        self.result = ExtractedReceipt(
            merchant_name="Corner Market",
            amount=Decimal("42.50"),
            date=date(2026, 10, 1),
            suggested_category="Groceries",
            confidence=0.91,
            line_items=[{"name": "Apples", "quantity": "1", "price": "42.50"}],
        )

    def extract(self, image_bytes: bytes) -> ExtractedReceipt:
        self.calls += 1
        if self.fail:
            raise ReceiptExtractionError("image too blurry")
        return self.result


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    session = db.session()
    try:
        seed_reference_data(session)
    finally:
        session.close()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    s = database.session()
    yield s
    s.close()


@pytest.fixture
def settings(tmp_path):
    return SimpleSettings(
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret",
        UPLOAD_ROOT=str(tmp_path / "uploads"),
        MAX_UPLOAD_BYTES=1024,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.UPLOAD_ROOT)


@pytest.fixture
def client(settings, database, extractor, blob_store):
    app = create_app(settings=settings, database=database, extractor=extractor, blob_store=blob_store)
    return TestClient(app)


# ---------------------------------------------------------------- helpers

def system_category(session, name: str) -> models.Category:
    return session.query(models.Category).filter_by(name=name, user_id=None).one()


def account_type(session, name: str) -> models.AccountType:
    return session.query(models.AccountType).filter_by(name=name).one()


@pytest.fixture
def make_user(session):
    def _make(username: str) -> models.User:
        return users.register_user(session, username, f"{username}@finance.io", "secret123", f"{username.title()} Tester")
    return _make


@pytest.fixture
def make_account(session):
    def _make(user, name="Checking", type_name="checking", balance=None) -> models.Account:
        account = accounts.create_account(session, user.id, name, account_type(session, type_name).id)
        if balance:
            ledger.create_transaction(
                session, user.id, account.id, system_category(session, "Salary").id,
                "INCOME", balance, "Opening deposit",
            )
            session.refresh(account)
        return account
    return _make


@pytest.fixture
def auth_headers(client):
    """Register through the API and return (user json, headers)."""
    def _register(username: str):
        resp = client.post("/api/v1/auth/register", json={
            "username": username,
            "email": f"{username}@finance.io",
            "password": "secret123",
            "full_name": f"{username.title()} Tester",
        })
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        return data["user"], {"Authorization": f"Bearer {data['access_token']}"}
    return _register
