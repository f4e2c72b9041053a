# finance_api/api/v1/reports.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.common import ok
from finance_api.services import reports

router = APIRouter(tags=["reports"])


@router.get("/summary")
def summary(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(reports.summary(db, current_user.id))


@router.get("/monthly-spending")
def monthly_spending(
    months: int = Query(12, ge=1, le=120),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(reports.monthly_spending(db, current_user.id, months))


@router.get("/income-vs-expenses")
def income_vs_expenses(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: str = Query("month", description="day, week, month or year"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(reports.income_vs_expenses(db, current_user.id, start_date, end_date, group_by))


@router.get("/category-spending")
def category_spending(
    type: str = Query("expense", description="income or expense"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(reports.category_spending(db, current_user.id, type, start_date, end_date, limit))


@router.get("/account-balances")
def account_balances(
    account_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(30, ge=1, le=500),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(reports.account_balances(db, current_user.id, account_id, start_date, end_date, limit))


@router.get("/budget-performance")
def budget_performance(
    active: Optional[bool] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(reports.budget_performance(db, current_user.id, active))


@router.get("/financial-health")
def financial_health(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(reports.financial_health(db, current_user.id))
