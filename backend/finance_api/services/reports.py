# finance_api/services/reports.py
"""Reporting engine: read-only aggregates over the ledger.

Nothing here writes. Each report takes the caller's user id explicitly and
only sees that user's accounts.
"""
import logging
from collections import OrderedDict, defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from finance_api.core.errors import ValidationError
from finance_api.db import models
from finance_api.services import budgets as budget_service
from finance_api.services.accounts import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
GROUPINGS = ("day", "week", "month", "year")


def _user_transactions(db: Session, user_id: int):
    return (
        db.query(models.Transaction)
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(models.Account.user_id == user_id)
    )


def _in_range(q, column, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        q = q.filter(column >= start_date)
    if end_date:
        q = q.filter(column <= end_date)
    return q


def _type_totals(q) -> Dict[models.TransactionType, Decimal]:
    rows = (
        q.with_entities(models.Transaction.type, func.sum(models.Transaction.amount))
        .group_by(models.Transaction.type)
        .all()
    )
    totals = {models.TransactionType.INCOME: ZERO, models.TransactionType.EXPENSE: ZERO}
    for txn_type, amount in rows:
        totals[txn_type] = to_money(amount)
    return totals


def _active_budget_count(db: Session, user_id: int, today: date, current_only: bool) -> int:
    q = db.query(func.count(models.Budget.id)).filter(
        models.Budget.user_id == user_id,
        models.Budget.is_active.is_(True),
        models.Budget.end_date >= today,
    )
    if current_only:
        q = q.filter(models.Budget.start_date <= today)
    return int(q.scalar() or 0)


def summary(db: Session, user_id: int) -> Dict[str, Any]:
    balance, accounts_count = (
        db.query(func.coalesce(func.sum(models.Account.current_balance), 0), func.count(models.Account.id))
        .filter(models.Account.user_id == user_id, models.Account.is_active.is_(True))
        .one()
    )
    txns = _user_transactions(db, user_id)
    totals = _type_totals(txns)
    income = totals[models.TransactionType.INCOME]
    expenses = totals[models.TransactionType.EXPENSE]
    return {
        "total_balance": to_money(balance),
        "total_income": income,
        "total_expenses": expenses,
        "net_worth": income - expenses,
        "accounts_count": int(accounts_count),
        "transactions_count": txns.count(),
        "active_budgets_count": _active_budget_count(db, user_id, date.today(), current_only=False),
    }


def monthly_spending(db: Session, user_id: int, months: int = 12) -> List[Dict[str, Any]]:
    """Per calendar month, newest first, limited to the ``months`` most recent months with activity."""
    rows = (
        _user_transactions(db, user_id)
        .join(models.Category, models.Transaction.category_id == models.Category.id)
        .with_entities(
            models.Transaction.transaction_date,
            models.Transaction.type,
            models.Transaction.amount,
            models.Category.id,
            models.Category.name,
        )
        .all()
    )

    buckets: Dict[str, Dict[str, Any]] = {}
    for txn_date, txn_type, amount, category_id, category_name in rows:
        key = f"{txn_date.year:04d}-{txn_date.month:02d}"
        bucket = buckets.setdefault(key, {
            "income": ZERO, "expenses": ZERO, "count": 0, "amount": ZERO, "categories": {},
        })
        amount = to_money(amount)
        bucket["count"] += 1
        bucket["amount"] += amount
        if txn_type == models.TransactionType.INCOME:
            bucket["income"] += amount
        else:
            bucket["expenses"] += amount
            spent, _ = bucket["categories"].get(category_id, (ZERO, category_name))
            bucket["categories"][category_id] = (spent + amount, category_name)

    result = []
    for key in sorted(buckets, reverse=True)[:months]:
        bucket = buckets[key]
        top_name, top_amount = None, ZERO
        if bucket["categories"]:
            # largest spend wins; equal spends go to the lowest category id
            top_id = min(bucket["categories"], key=lambda cid: (-bucket["categories"][cid][0], cid))
            top_amount, top_name = bucket["categories"][top_id]
        result.append({
            "month": key,
            "total_income": bucket["income"],
            "total_expenses": bucket["expenses"],
            "net_income": bucket["income"] - bucket["expenses"],
            "transaction_count": bucket["count"],
            "avg_transaction_amount": to_money(bucket["amount"] / bucket["count"]),
            "top_category": top_name,
            "top_category_amount": top_amount,
        })
    return result


def _period_key(day: date, group_by: str) -> str:
    if group_by == "day":
        return day.isoformat()
    if group_by == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if group_by == "year":
        return f"{day.year:04d}"
    return f"{day.year:04d}-{day.month:02d}"


def income_vs_expenses(
    db: Session,
    user_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    group_by: str = "month",
) -> List[Dict[str, Any]]:
    if group_by not in GROUPINGS:
        raise ValidationError(f"group_by must be one of: {', '.join(GROUPINGS)}")
    q = _in_range(_user_transactions(db, user_id), models.Transaction.transaction_date, start_date, end_date)
    rows = (
        q.with_entities(models.Transaction.transaction_date, models.Transaction.type, models.Transaction.amount)
        .order_by(models.Transaction.transaction_date)
        .all()
    )

    periods: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for txn_date, txn_type, amount in rows:
        period = periods.setdefault(_period_key(txn_date, group_by), {
            "total_income": ZERO, "total_expenses": ZERO, "income_count": 0, "expense_count": 0,
        })
        if txn_type == models.TransactionType.INCOME:
            period["total_income"] += to_money(amount)
            period["income_count"] += 1
        else:
            period["total_expenses"] += to_money(amount)
            period["expense_count"] += 1

    return [
        dict(period=key, net_income=p["total_income"] - p["total_expenses"], **p)
        for key, p in periods.items()
    ]


def category_spending(
    db: Session,
    user_id: int,
    type: str = "expense",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 10,
) -> List[Dict[str, Any]]:
    try:
        txn_type = models.TransactionType[type.upper()]
    except KeyError:
        raise ValidationError("type must be income or expense")

    q = _in_range(
        _user_transactions(db, user_id).filter(models.Transaction.type == txn_type),
        models.Transaction.transaction_date, start_date, end_date,
    )
    total = to_money(q.with_entities(func.coalesce(func.sum(models.Transaction.amount), 0)).scalar())
    # an empty filter set reports 0% rather than dividing by zero
    denominator = total if total != 0 else Decimal("1")

    total_col = func.sum(models.Transaction.amount)
    rows = (
        q.join(models.Category, models.Transaction.category_id == models.Category.id)
        .with_entities(
            models.Category.id,
            models.Category.name,
            models.Category.type,
            total_col,
            func.count(models.Transaction.id),
            func.min(models.Transaction.amount),
            func.max(models.Transaction.amount),
        )
        .group_by(models.Category.id, models.Category.name, models.Category.type)
        .order_by(total_col.desc(), models.Category.id)
        .limit(limit)
        .all()
    )

    result = []
    for category_id, name, category_type, amount, count, min_amount, max_amount in rows:
        amount = to_money(amount)
        result.append({
            "category_id": category_id,
            "category_name": name,
            "category_type": category_type.value,
            "total_amount": amount,
            "percentage": round(float(amount / denominator * 100), 2),
            "transaction_count": int(count),
            "avg_amount": to_money(amount / count),
            "min_amount": to_money(min_amount),
            "max_amount": to_money(max_amount),
        })
    return result


def _ledger_events(db: Session, account_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
    """Every balance-affecting event per account, in ledger order."""
    events: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    if not account_ids:
        return events

    txns = db.query(models.Transaction).filter(models.Transaction.account_id.in_(account_ids)).all()
    for t in txns:
        events[t.account_id].append({
            "date": t.transaction_date, "created_at": t.created_at, "kind": "transaction",
            "id": t.id, "amount": to_money(t.signed_amount), "description": t.description,
        })

    transfers = (
        db.query(models.Transfer)
        .filter(or_(models.Transfer.from_account_id.in_(account_ids), models.Transfer.to_account_id.in_(account_ids)))
        .all()
    )
    for tr in transfers:
        if tr.from_account_id in account_ids:
            events[tr.from_account_id].append({
                "date": tr.transfer_date, "created_at": tr.created_at, "kind": "transfer_out",
                "id": tr.id, "amount": -(to_money(tr.amount) + to_money(tr.fee_amount)),
                "description": tr.description,
            })
        if tr.to_account_id in account_ids:
            events[tr.to_account_id].append({
                "date": tr.transfer_date, "created_at": tr.created_at, "kind": "transfer_in",
                "id": tr.id, "amount": to_money(tr.amount), "description": tr.description,
            })

    for account_events in events.values():
        account_events.sort(key=lambda e: (e["date"], e["created_at"], e["kind"] != "transaction", e["id"]))
    return events


def ledger_balances(db: Session, user_id: int) -> List[Dict[str, Any]]:
    """Persisted balance next to the balance re-derived from history, per account."""
    accounts = db.query(models.Account).filter(models.Account.user_id == user_id).order_by(models.Account.id).all()
    events = _ledger_events(db, [a.id for a in accounts])
    result = []
    for account in accounts:
        derived = sum((e["amount"] for e in events.get(account.id, [])), ZERO)
        persisted = to_money(account.current_balance)
        result.append({
            "account_id": account.id,
            "account_name": account.name,
            "persisted_balance": persisted,
            "derived_balance": derived,
            "consistent": persisted == derived,
        })
    return result


def account_balances(
    db: Session,
    user_id: int,
    account_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 30,
) -> List[Dict[str, Any]]:
    """
    Running balance per account, recomputed from the full ledger history.
    The date range filters which rows are returned, not which events count.
    """
    q = db.query(models.Account).filter(models.Account.user_id == user_id)
    if account_id:
        q = q.filter(models.Account.id == account_id)
    accounts = q.order_by(models.Account.name, models.Account.id).all()
    events = _ledger_events(db, [a.id for a in accounts])

    rows: List[Dict[str, Any]] = []
    for account in accounts:
        running = ZERO
        history = []
        for event in events.get(account.id, []):
            running += event["amount"]
            if start_date and event["date"] < start_date:
                continue
            if end_date and event["date"] > end_date:
                continue
            history.append({
                "account_id": account.id,
                "account_name": account.name,
                "account_type": account.account_type.name,
                "date": event["date"],
                "entry_type": event["kind"],
                "entry_id": event["id"],
                "amount": event["amount"],
                "balance": running,
            })
        rows.extend(reversed(history))
    # newest first across all accounts; stable, so same-day rows keep ledger order
    rows.sort(key=lambda r: r["date"], reverse=True)
    return rows[:limit]


def budget_performance(db: Session, user_id: int, active: Optional[bool] = None) -> List[Dict[str, Any]]:
    rows = budget_service.list_budgets(db, user_id, active=active)
    return sorted(rows, key=lambda r: (r["name"], r["id"]))


# ------------------------------------------------------------ financial health

def health_level(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Needs Improvement"


def score_financial_health(
    total_balance,
    monthly_income,
    monthly_expenses,
    active_budgets: int,
    account_count: int,
) -> Dict[str, Any]:
    """
    Score 0-100 from four independent bands:
    balance (30), expense/income ratio (30), budgeting (20), account count (20).
    Each band contributes exactly one insight.
    """
    score = 0
    insights = []

    balance = to_money(total_balance)
    if balance > 10000:
        score += 30
        insights.append({"type": "positive", "message": "Excellent savings balance"})
    elif balance > 5000:
        score += 20
        insights.append({"type": "neutral", "message": "Good savings balance"})
    elif balance > 1000:
        score += 10
        insights.append({"type": "warning", "message": "Consider increasing your savings"})
    else:
        insights.append({"type": "negative", "message": "Low savings balance - focus on building emergency fund"})

    income = to_money(monthly_income)
    expenses = to_money(monthly_expenses)
    if income > 0:
        ratio = expenses / income
        if ratio < Decimal("0.5"):
            score += 30
            insights.append({"type": "positive", "message": "Excellent spending discipline"})
        elif ratio < Decimal("0.7"):
            score += 20
            insights.append({"type": "positive", "message": "Good spending habits"})
        elif ratio < Decimal("0.9"):
            score += 10
            insights.append({"type": "warning", "message": "Monitor your spending carefully"})
        else:
            insights.append({"type": "negative", "message": "Expenses are too high compared to income"})

    if active_budgets > 0:
        score += 20
        insights.append({"type": "positive", "message": "Great job maintaining active budgets"})
    else:
        insights.append({"type": "warning", "message": "Consider creating budgets to track spending"})

    if account_count >= 3:
        score += 20
        insights.append({"type": "positive", "message": "Good account diversification"})
    elif account_count >= 2:
        score += 10
        insights.append({"type": "neutral", "message": "Consider adding more account types"})
    else:
        insights.append({"type": "warning", "message": "Consider diversifying your accounts"})

    return {"health_score": score, "health_level": health_level(score), "insights": insights}


def financial_health(db: Session, user_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    balance, account_count = (
        db.query(func.coalesce(func.sum(models.Account.current_balance), 0), func.count(models.Account.id))
        .filter(models.Account.user_id == user_id, models.Account.is_active.is_(True))
        .one()
    )
    recent = _user_transactions(db, user_id).filter(
        models.Transaction.transaction_date >= today - timedelta(days=30)
    )
    totals = _type_totals(recent)
    income = totals[models.TransactionType.INCOME]
    expenses = totals[models.TransactionType.EXPENSE]
    active_budgets = _active_budget_count(db, user_id, today, current_only=True)

    result = score_financial_health(balance, income, expenses, active_budgets, int(account_count))
    result["metrics"] = {
        "total_balance": to_money(balance),
        "monthly_income": income,
        "monthly_expenses": expenses,
        "savings_rate": round(float((income - expenses) / income * 100), 2) if income > 0 else 0.0,
        "account_count": int(account_count),
        "active_budgets": active_budgets,
    }
    return result
