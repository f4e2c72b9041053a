# finance_api/api/v1/budgets.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.budget import BudgetCreate, BudgetUpdate
from finance_api.schemas.common import ok
from finance_api.services import budgets as budget_service

router = APIRouter(tags=["budgets"])


@router.get("")
def list_budgets(
    active: Optional[bool] = Query(None, description="only budgets whose window contains today"),
    start_date: Optional[date] = Query(None, description="budgets starting on or after this date"),
    end_date: Optional[date] = Query(None, description="budgets ending on or before this date"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(budget_service.list_budgets(db, current_user.id, active=active, start_date=start_date, end_date=end_date))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_budget(
    payload: BudgetCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = budget_service.create_budget(
        db,
        user_id=current_user.id,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_limit=payload.total_limit,
        categories=[c.model_dump() for c in payload.categories],
    )
    return ok(budget_service.get_budget(db, current_user.id, budget.id), "Budget created successfully")


@router.get("/{budget_id}")
def get_budget(budget_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(budget_service.get_budget(db, current_user.id, budget_id))


@router.put("/{budget_id}")
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget_service.update_budget(db, current_user.id, budget_id, **payload.model_dump(exclude_unset=True))
    return ok(budget_service.get_budget(db, current_user.id, budget_id), "Budget updated successfully")


@router.delete("/{budget_id}")
def delete_budget(budget_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    budget_service.delete_budget(db, current_user.id, budget_id)
    return ok(message="Budget deleted successfully")


@router.get("/{budget_id}/analytics")
def budget_analytics(budget_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(budget_service.budget_analytics(db, current_user.id, budget_id))
