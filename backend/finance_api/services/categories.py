# finance_api/services/categories.py
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from finance_api.core.errors import Conflict, NotFound, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic

logger = logging.getLogger(__name__)


def _category_type(value) -> models.CategoryType:
    if isinstance(value, models.CategoryType):
        return value
    try:
        return models.CategoryType(str(value).lower())
    except ValueError:
        raise ValidationError("Category type must be income or expense")


def list_categories(db: Session, user_id: int, type: Optional[str] = None) -> List[models.Category]:
    """System categories plus the caller's own, system ones first."""
    q = db.query(models.Category).filter(
        or_(models.Category.user_id == user_id, models.Category.user_id.is_(None))
    )
    if type:
        q = q.filter(models.Category.type == _category_type(type))
    # NULL owners (system) sort first on both SQLite and MySQL
    return q.order_by(models.Category.user_id, models.Category.name, models.Category.id).all()


def create_category(db: Session, user_id: int, name: str, type) -> models.Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    category_type = _category_type(type)

    existing = (
        db.query(models.Category)
        .filter(models.Category.user_id == user_id, models.Category.name == name)
        .first()
    )
    if existing:
        raise Conflict("Category with this name already exists")

    with atomic(db):
        category = models.Category(user_id=user_id, name=name, type=category_type)
        db.add(category)
    db.refresh(category)
    logger.info("Category %s created for user %s", category.id, user_id)
    return category


def delete_category(db: Session, user_id: int, category_id: int) -> None:
    category = (
        db.query(models.Category)
        .filter(models.Category.id == category_id, models.Category.user_id == user_id)
        .first()
    )
    if category is None:
        raise NotFound("Category not found")

    in_use = db.query(models.Transaction.id).filter(models.Transaction.category_id == category.id).first()
    allocated = db.query(models.BudgetCategory.id).filter(models.BudgetCategory.category_id == category.id).first()
    if in_use or allocated:
        raise Conflict("Category is in use and cannot be deleted")

    with atomic(db):
        db.delete(category)
    logger.info("Category %s deleted by user %s", category_id, user_id)
