# finance_api/api/v1/categories.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.category import CategoryCreate, CategoryOut
from finance_api.schemas.common import ok
from finance_api.services import categories as category_service

router = APIRouter(tags=["categories"])


@router.get("")
def list_categories(
    type: Optional[str] = Query(None, description="income or expense"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = category_service.list_categories(db, current_user.id, type)
    return ok([CategoryOut.model_validate(c) for c in items])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = category_service.create_category(db, current_user.id, payload.name, payload.type)
    return ok(CategoryOut.model_validate(category), "Category created successfully")


@router.delete("/{category_id}")
def delete_category(category_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    category_service.delete_category(db, current_user.id, category_id)
    return ok(message="Category deleted successfully")
