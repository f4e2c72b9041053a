# finance_api/services/budgets.py
"""Budget Aggregator: budgets, allocations and spend-vs-allocation metrics.

Spending is always derived from the ledger at read time: expense
transactions dated inside the budget window, on accounts owned by the
budget's owner.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from finance_api.core.errors import Conflict, NotFound, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic
from finance_api.services.accounts import to_money

logger = logging.getLogger(__name__)


def utilization(spent: Decimal, allocated: Decimal) -> Optional[float]:
    """spent / allocated as a percentage; None when nothing was allocated."""
    allocated = to_money(allocated)
    if allocated == 0:
        return None
    return round(float(to_money(spent) / allocated * 100), 2)


def _expense_query(db: Session, user_id: int, start: date, end: date):
    return (
        db.query(models.Transaction)
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(
            models.Account.user_id == user_id,
            models.Transaction.type == models.TransactionType.EXPENSE,
            models.Transaction.transaction_date >= start,
            models.Transaction.transaction_date <= end,
        )
    )


def total_spent(db: Session, budget: models.Budget) -> Decimal:
    value = (
        _expense_query(db, budget.user_id, budget.start_date, budget.end_date)
        .with_entities(func.coalesce(func.sum(models.Transaction.amount), 0))
        .scalar()
    )
    return to_money(value)


def spent_by_category(db: Session, budget: models.Budget) -> Dict[int, Tuple[Decimal, int]]:
    category_ids = [a.category_id for a in budget.allocations]
    if not category_ids:
        return {}
    rows = (
        _expense_query(db, budget.user_id, budget.start_date, budget.end_date)
        .filter(models.Transaction.category_id.in_(category_ids))
        .with_entities(
            models.Transaction.category_id,
            func.sum(models.Transaction.amount),
            func.count(models.Transaction.id),
        )
        .group_by(models.Transaction.category_id)
        .all()
    )
    return {category_id: (to_money(spent), int(count)) for category_id, spent, count in rows}


def _is_current(budget: models.Budget, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return bool(budget.is_active) and budget.start_date <= today <= budget.end_date


def budget_overview(db: Session, budget: models.Budget) -> Dict[str, Any]:
    spent = total_spent(db, budget)
    limit = to_money(budget.total_limit)
    today = date.today()
    return {
        "id": budget.id,
        "name": budget.name,
        "start_date": budget.start_date,
        "end_date": budget.end_date,
        "total_limit": limit,
        "total_spent": spent,
        "remaining_amount": limit - spent,
        "utilization_percentage": utilization(spent, limit),
        "is_over_budget": spent > limit,
        "is_active": _is_current(budget, today),
        "days_remaining": max((budget.end_date - today).days, 0),
        "created_at": budget.created_at,
        "updated_at": budget.updated_at,
    }


def _get_owned_budget(db: Session, user_id: int, budget_id: int) -> models.Budget:
    budget = (
        db.query(models.Budget)
        .filter(models.Budget.id == budget_id, models.Budget.user_id == user_id)
        .first()
    )
    if budget is None:
        raise NotFound("Budget not found")
    return budget


def _validate_window(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ValidationError("End date must be after start date")


def create_budget(
    db: Session,
    user_id: int,
    name: str,
    start_date: date,
    end_date: date,
    total_limit,
    categories: Iterable[Dict[str, Any]] = (),
) -> models.Budget:
    """
    Create a budget with its category allocations.

    Every check happens before the first insert; allocations of zero are
    dropped. Overlapping budgets for the same user are allowed.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Budget name is required")
    _validate_window(start_date, end_date)
    limit = to_money(total_limit)
    if limit < 0:
        raise ValidationError("Total limit must be a positive number")

    allocations = [(int(c["category_id"]), to_money(c["allocated_amount"])) for c in categories]
    if any(amount < 0 for _, amount in allocations):
        raise ValidationError("Allocated amount must be a positive number")
    category_ids = [category_id for category_id, _ in allocations]
    if len(set(category_ids)) != len(category_ids):
        raise ValidationError("Each category may only be allocated once per budget")

    total_allocated = sum((amount for _, amount in allocations), Decimal("0.00"))
    if total_allocated > limit:
        logger.warning("Budget rejected for user %s: allocations %s exceed limit %s", user_id, total_allocated, limit)
        raise Conflict(f"Total allocated amount ({total_allocated}) exceeds budget limit ({limit})")

    if category_ids:
        found = (
            db.query(func.count(models.Category.id))
            .filter(
                models.Category.id.in_(category_ids),
                or_(models.Category.user_id == user_id, models.Category.user_id.is_(None)),
            )
            .scalar()
        )
        if found != len(category_ids):
            raise NotFound("One or more categories not found")

    with atomic(db):
        budget = models.Budget(
            user_id=user_id, name=name, start_date=start_date, end_date=end_date, total_limit=limit
        )
        for category_id, amount in allocations:
            if amount > 0:
                budget.allocations.append(models.BudgetCategory(category_id=category_id, allocated_amount=amount))
        db.add(budget)
    db.refresh(budget)
    logger.info("Budget %s created for user %s with %d allocations", budget.id, user_id, len(budget.allocations))
    return budget


def list_budgets(
    db: Session,
    user_id: int,
    active: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Dict[str, Any]]:
    q = db.query(models.Budget).filter(models.Budget.user_id == user_id, models.Budget.is_active.is_(True))
    if start_date:
        q = q.filter(models.Budget.start_date >= start_date)
    if end_date:
        q = q.filter(models.Budget.end_date <= end_date)
    budgets = q.order_by(models.Budget.created_at.desc(), models.Budget.id.desc()).all()
    if active is not None:
        budgets = [b for b in budgets if _is_current(b) == active]
    return [budget_overview(db, b) for b in budgets]


def get_budget(db: Session, user_id: int, budget_id: int) -> Dict[str, Any]:
    budget = _get_owned_budget(db, user_id, budget_id)
    spent = spent_by_category(db, budget)
    categories = []
    for allocation in sorted(budget.allocations, key=lambda a: (a.category.name, a.category_id)):
        category_spent, count = spent.get(allocation.category_id, (Decimal("0.00"), 0))
        allocated = to_money(allocation.allocated_amount)
        categories.append({
            "id": allocation.category_id,
            "name": allocation.category.name,
            "type": allocation.category.type.value,
            "allocated_amount": allocated,
            "spent_amount": category_spent,
            "remaining_amount": allocated - category_spent,
            "transaction_count": count,
            "utilization_percentage": utilization(category_spent, allocated),
        })
    overview = budget_overview(db, budget)
    overview["categories"] = categories
    return overview


def update_budget(
    db: Session,
    user_id: int,
    budget_id: int,
    name: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    total_limit=None,
) -> models.Budget:
    budget = _get_owned_budget(db, user_id, budget_id)
    if name is None and start_date is None and end_date is None and total_limit is None:
        raise ValidationError("No valid fields to update")

    if name is not None and not name.strip():
        raise ValidationError("Budget name is required")
    _validate_window(start_date or budget.start_date, end_date or budget.end_date)
    if total_limit is not None:
        limit = to_money(total_limit)
        allocated = sum((to_money(a.allocated_amount) for a in budget.allocations), Decimal("0.00"))
        if allocated > limit:
            raise Conflict(f"Total allocated amount ({allocated}) exceeds budget limit ({limit})")

    with atomic(db):
        if name is not None:
            budget.name = name.strip()
        if start_date is not None:
            budget.start_date = start_date
        if end_date is not None:
            budget.end_date = end_date
        if total_limit is not None:
            budget.total_limit = to_money(total_limit)
        db.add(budget)
    db.refresh(budget)
    logger.info("Budget %s updated by user %s", budget.id, user_id)
    return budget


def delete_budget(db: Session, user_id: int, budget_id: int) -> None:
    budget = _get_owned_budget(db, user_id, budget_id)
    with atomic(db):
        db.delete(budget)
    logger.info("Budget %s deleted by user %s", budget_id, user_id)


def budget_analytics(db: Session, user_id: int, budget_id: int) -> Dict[str, Any]:
    """Daily spending trend and per-category distribution for one budget."""
    budget = _get_owned_budget(db, user_id, budget_id)
    category_ids = [a.category_id for a in budget.allocations]

    trend = []
    if category_ids:
        rows = (
            _expense_query(db, user_id, budget.start_date, budget.end_date)
            .filter(models.Transaction.category_id.in_(category_ids))
            .with_entities(
                models.Transaction.transaction_date,
                func.sum(models.Transaction.amount),
                func.count(models.Transaction.id),
            )
            .group_by(models.Transaction.transaction_date)
            .order_by(models.Transaction.transaction_date)
            .all()
        )
        trend = [
            {"date": day, "amount": to_money(amount), "transaction_count": int(count)}
            for day, amount, count in rows
        ]

    spent = spent_by_category(db, budget)
    distribution = []
    for allocation in budget.allocations:
        category_spent, count = spent.get(allocation.category_id, (Decimal("0.00"), 0))
        distribution.append({
            "category_id": allocation.category_id,
            "category_name": allocation.category.name,
            "allocated_amount": to_money(allocation.allocated_amount),
            "spent_amount": category_spent,
            "transaction_count": count,
            "utilization_percentage": utilization(category_spent, allocation.allocated_amount),
        })
    distribution.sort(key=lambda row: (-row["spent_amount"], row["category_id"]))

    return {"spending_trend": trend, "category_distribution": distribution}
