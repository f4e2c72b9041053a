"""Budget Aggregator: allocation rules and spend-vs-allocation metrics."""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from finance_api.core.errors import Conflict, NotFound, ValidationError
from finance_api.db import models
from finance_api.services import budgets, ledger

from conftest import system_category


def _window():
    today = date.today()
    return today - timedelta(days=5), today + timedelta(days=25)


class TestCreateBudget:

    def test_over_allocation_rejected_without_rows(self, session, make_user):
        alice = make_user("alice")
        start, end = _window()
        allocations = [
            {"category_id": system_category(session, "Groceries").id, "allocated_amount": "300"},
            {"category_id": system_category(session, "Utilities").id, "allocated_amount": "220"},
        ]
        with pytest.raises(Conflict) as exc:
            budgets.create_budget(session, alice.id, "October", start, end, "500", allocations)

        assert "exceeds budget limit" in exc.value.message
        assert session.query(models.Budget).count() == 0
        assert session.query(models.BudgetCategory).count() == 0

    def test_zero_allocations_are_dropped(self, session, make_user):
        alice = make_user("alice")
        start, end = _window()
        budget = budgets.create_budget(session, alice.id, "October", start, end, "500", [
            {"category_id": system_category(session, "Groceries").id, "allocated_amount": "200"},
            {"category_id": system_category(session, "Utilities").id, "allocated_amount": "0"},
        ])
        assert [a.category.name for a in budget.allocations] == ["Groceries"]

    def test_end_must_follow_start(self, session, make_user):
        alice = make_user("alice")
        today = date.today()
        with pytest.raises(ValidationError):
            budgets.create_budget(session, alice.id, "Backwards", today, today, "100", [])

    def test_unknown_category_not_found(self, session, make_user):
        alice = make_user("alice")
        start, end = _window()
        with pytest.raises(NotFound):
            budgets.create_budget(session, alice.id, "Bad", start, end, "100", [
                {"category_id": 9999, "allocated_amount": "10"},
            ])

    def test_overlapping_budgets_allowed(self, session, make_user):
        alice = make_user("alice")
        start, end = _window()
        budgets.create_budget(session, alice.id, "One", start, end, "100", [])
        budgets.create_budget(session, alice.id, "Two", start, end, "100", [])
        assert len(budgets.list_budgets(session, alice.id)) == 2

    def test_list_filters_by_window(self, session, make_user):
        alice = make_user("alice")
        budgets.create_budget(session, alice.id, "September", date(2026, 9, 1), date(2026, 9, 30), "100", [])
        budgets.create_budget(session, alice.id, "October", date(2026, 10, 1), date(2026, 10, 31), "100", [])
        budgets.create_budget(session, alice.id, "Autumn", date(2026, 9, 1), date(2026, 11, 30), "300", [])

        def names(**filters):
            return sorted(b["name"] for b in budgets.list_budgets(session, alice.id, **filters))

        assert names(start_date=date(2026, 10, 1)) == ["October"]
        assert names(end_date=date(2026, 10, 31)) == ["October", "September"]
        assert names(start_date=date(2026, 9, 1), end_date=date(2026, 9, 30)) == ["September"]


class TestBudgetMetrics:

    def _setup(self, session, make_user, make_account):
        alice = make_user("alice")
        checking = make_account(alice, balance="1000")
        groceries = system_category(session, "Groceries")
        utilities = system_category(session, "Utilities")
        start, end = _window()
        budget = budgets.create_budget(session, alice.id, "October", start, end, "500", [
            {"category_id": groceries.id, "allocated_amount": "200"},
            {"category_id": utilities.id, "allocated_amount": "100"},
        ])
        ledger.create_transaction(session, alice.id, checking.id, groceries.id, "EXPENSE", "50", "Shop")
        ledger.create_transaction(session, alice.id, checking.id, groceries.id, "EXPENSE", "30", "Shop again")
        ledger.create_transaction(
            session, alice.id, checking.id, system_category(session, "Entertainment").id, "EXPENSE", "20", "Movie"
        )
        # outside the window: ignored
        ledger.create_transaction(
            session, alice.id, checking.id, groceries.id, "EXPENSE", "99", "Old shop",
            transaction_date=start - timedelta(days=1),
        )
        return alice, budget

    def test_get_budget_per_category(self, session, make_user, make_account):
        alice, budget = self._setup(session, make_user, make_account)
        detail = budgets.get_budget(session, alice.id, budget.id)

        # every expense in the window counts toward the total, allocated or not
        assert detail["total_spent"] == Decimal("100.00")
        assert detail["remaining_amount"] == Decimal("400.00")
        assert detail["utilization_percentage"] == 20.0
        assert detail["is_over_budget"] is False

        by_name = {c["name"]: c for c in detail["categories"]}
        assert by_name["Groceries"]["spent_amount"] == Decimal("80.00")
        assert by_name["Groceries"]["transaction_count"] == 2
        assert by_name["Groceries"]["utilization_percentage"] == 40.0
        assert by_name["Utilities"]["spent_amount"] == Decimal("0.00")

    def test_reads_are_idempotent(self, session, make_user, make_account):
        alice, budget = self._setup(session, make_user, make_account)
        assert budgets.get_budget(session, alice.id, budget.id) == budgets.get_budget(session, alice.id, budget.id)

    def test_analytics(self, session, make_user, make_account):
        alice, budget = self._setup(session, make_user, make_account)
        analytics = budgets.budget_analytics(session, alice.id, budget.id)

        assert len(analytics["spending_trend"]) == 1
        assert analytics["spending_trend"][0]["amount"] == Decimal("80.00")
        assert [row["category_name"] for row in analytics["category_distribution"]] == ["Groceries", "Utilities"]

    def test_update_revalidates_limit(self, session, make_user, make_account):
        alice, budget = self._setup(session, make_user, make_account)
        with pytest.raises(Conflict):
            budgets.update_budget(session, alice.id, budget.id, total_limit="250")
        with pytest.raises(ValidationError):
            budgets.update_budget(session, alice.id, budget.id)
        updated = budgets.update_budget(session, alice.id, budget.id, name="Renamed", total_limit="300")
        assert updated.name == "Renamed"
        assert updated.total_limit == Decimal("300.00")

    def test_other_user_cannot_see_budget(self, session, make_user, make_account):
        _, budget = self._setup(session, make_user, make_account)
        bob = make_user("bob")
        with pytest.raises(NotFound):
            budgets.get_budget(session, bob.id, budget.id)
        with pytest.raises(NotFound):
            budgets.delete_budget(session, bob.id, budget.id)


def test_utilization_of_empty_allocation_is_none():
    assert budgets.utilization(Decimal("10"), Decimal("0")) is None
    assert budgets.utilization(Decimal("25"), Decimal("100")) == 25.0
