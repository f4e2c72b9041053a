# finance_api/db/seed.py
"""Reference data every installation needs: account types and system categories."""
import logging

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

# name, allows_negative_balance, is_asset
ACCOUNT_TYPES = [
    ("checking", False, True),
    ("savings", False, True),
    ("cash", False, True),
    ("investment", False, True),
    ("credit_card", True, False),
    ("loan", True, False),
]

SYSTEM_CATEGORIES = [
    ("Salary", models.CategoryType.income),
    ("Other Income", models.CategoryType.income),
    ("Groceries", models.CategoryType.expense),
    ("Entertainment", models.CategoryType.expense),
    ("Transportation", models.CategoryType.expense),
    ("Healthcare", models.CategoryType.expense),
    ("Utilities", models.CategoryType.expense),
    ("Other", models.CategoryType.expense),
]


def seed_reference_data(db: Session) -> None:
    """Insert missing account types and system categories. Safe to run repeatedly."""
    existing_types = {t.name for t in db.query(models.AccountType).all()}
    for name, allows_negative, is_asset in ACCOUNT_TYPES:
        if name not in existing_types:
            db.add(models.AccountType(name=name, allows_negative_balance=allows_negative, is_asset=is_asset))

    existing_categories = {
        c.name for c in db.query(models.Category).filter(models.Category.user_id.is_(None)).all()
    }
    for name, category_type in SYSTEM_CATEGORIES:
        if name not in existing_categories:
            db.add(models.Category(user_id=None, name=name, type=category_type))

    db.commit()
    logger.info("Reference data seeded")
