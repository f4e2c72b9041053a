"""Receipt ingestion: text heuristics, upload flow and receipt -> transaction linkage."""
import os
from datetime import date
from decimal import Decimal

import pytest

from finance_api.services.receipts import (
    extract_date,
    extract_total,
    normalize_amount,
    parse_receipt_text,
    suggest_category,
)

API = "/api/v1"

SAMPLE = """Corner Market
12 Main Street
Date: 2026-10-01
Milk 3.50
Bread 2.25
TOTAL 5.75
"""


class TestTextHeuristics:

    def test_total_prefers_total_line(self):
        assert extract_total(SAMPLE) == Decimal("5.75")

    def test_total_falls_back_to_largest_number(self):
        assert extract_total("Widget 3.00\nGadget 12.40") == Decimal("12.40")

    def test_amount_normalisation(self):
        assert normalize_amount("1,234.56") == Decimal("1234.56")
        assert normalize_amount("1.234,56") == Decimal("1234.56")
        assert normalize_amount("12,50") == Decimal("12.50")
        assert normalize_amount("") is None

    def test_dates(self):
        assert extract_date(SAMPLE) == date(2026, 10, 1)
        assert extract_date("Paid 12/03/2026") == date(2026, 3, 12)
        assert extract_date("no date here") is None

    @pytest.mark.parametrize("merchant,category", [
        ("Corner Market", "Groceries"),
        ("Pizza Palace", "Entertainment"),
        ("Shell Station 42", "Transportation"),
        ("Walgreens Pharmacy", "Healthcare"),
        ("Hardware Depot", "Other"),
    ])
    def test_category_suggestion(self, merchant, category):
        assert suggest_category(merchant) == category

    def test_parse(self):
        parsed = parse_receipt_text(SAMPLE, confidence=0.8)
        assert parsed.merchant_name == "Corner Market"
        assert parsed.amount == Decimal("5.75")
        assert [i["name"] for i in parsed.line_items] == ["Milk", "Bread"]
        assert parsed.to_payload()["amount"] == "5.75"


def _setup_user(client, auth_headers, deposit="100"):
    _, headers = auth_headers("alice")
    types = client.get(f"{API}/accounts/types", headers=headers).json()["data"]
    checking = next(t["id"] for t in types if t["name"] == "checking")
    account = client.post(f"{API}/accounts", headers=headers, json={"name": "Checking", "type_id": checking}).json()["data"]
    cats = {c["name"]: c["id"] for c in client.get(f"{API}/categories", headers=headers).json()["data"]}
    client.post(f"{API}/transactions", headers=headers, json={
        "account_id": account["id"], "category_id": cats["Salary"], "type": "INCOME",
        "amount": deposit, "description": "Paycheck",
    })
    return headers, account, cats


def _upload(client, headers, content=b"fake-image-bytes", content_type="image/jpeg"):
    return client.post(
        f"{API}/receipts/upload", headers=headers, files={"file": ("receipt.jpg", content, content_type)}
    )


class TestReceiptFlow:

    def test_upload_stores_image_and_suggestions(self, client, auth_headers, settings, extractor):
        headers, _, _ = _setup_user(client, auth_headers)
        resp = _upload(client, headers)
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        assert data["merchant_name"] == "Corner Market"
        assert data["amount"] == "42.50"
        assert data["suggested_category"] == "Groceries"
        assert data["transaction_created"] is False
        assert data["image_url"].startswith("/uploads/")

        key = data["image_url"][len("/uploads/"):]
        assert os.path.exists(os.path.join(settings.UPLOAD_ROOT, key))
        assert extractor.calls == 1

    def test_rejects_non_images_and_oversize(self, client, auth_headers):
        headers, _, _ = _setup_user(client, auth_headers)
        assert _upload(client, headers, content_type="application/pdf").status_code == 400
        resp = _upload(client, headers, content=b"x" * 2048)
        assert resp.status_code == 400
        assert resp.json()["message"] == "File size too large"

    def test_extraction_failure_leaves_nothing_behind(self, client, auth_headers, settings, extractor):
        headers, _, _ = _setup_user(client, auth_headers)
        extractor.fail = True
        resp = _upload(client, headers)
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("Failed to process receipt")
        stored = [f for _, _, files in os.walk(settings.UPLOAD_ROOT) for f in files]
        assert stored == []
        assert client.get(f"{API}/receipts", headers=headers).json()["data"]["receipts"] == []

    def test_create_transaction_once(self, client, auth_headers):
        headers, account, cats = _setup_user(client, auth_headers)
        receipt = _upload(client, headers).json()["data"]
        payload = {
            "account_id": account["id"], "category_id": cats["Groceries"],
            "amount": "42.50", "description": "Corner Market", "transaction_date": "2026-10-01",
        }

        first = client.post(f"{API}/receipts/{receipt['id']}/create-transaction", headers=headers, json=payload)
        assert first.status_code == 201, first.text
        assert first.json()["data"]["receipt_id"] == receipt["id"]

        second = client.post(f"{API}/receipts/{receipt['id']}/create-transaction", headers=headers, json=payload)
        assert second.status_code == 409

        balance = client.get(f"{API}/accounts/{account['id']}", headers=headers).json()["data"]["current_balance"]
        assert balance == "57.50"
        assert client.get(f"{API}/receipts/{receipt['id']}", headers=headers).json()["data"]["transaction_created"] is True

    def test_delete_unlinks_transaction_and_image(self, client, auth_headers, settings):
        headers, account, cats = _setup_user(client, auth_headers)
        receipt = _upload(client, headers).json()["data"]
        txn = client.post(f"{API}/receipts/{receipt['id']}/create-transaction", headers=headers, json={
            "account_id": account["id"], "category_id": cats["Groceries"],
            "amount": "42.50", "description": "Corner Market", "transaction_date": "2026-10-01",
        }).json()["data"]

        assert client.delete(f"{API}/receipts/{receipt['id']}", headers=headers).status_code == 200
        assert client.get(f"{API}/receipts/{receipt['id']}", headers=headers).status_code == 404
        assert client.get(f"{API}/transactions/{txn['id']}", headers=headers).json()["data"]["receipt_id"] is None
        key = receipt["image_url"][len("/uploads/"):]
        assert not os.path.exists(os.path.join(settings.UPLOAD_ROOT, key))

    def test_other_users_receipt_not_found(self, client, auth_headers):
        headers, _, _ = _setup_user(client, auth_headers)
        receipt = _upload(client, headers).json()["data"]
        _, bob = auth_headers("bob")
        assert client.get(f"{API}/receipts/{receipt['id']}", headers=bob).status_code == 404
