# finance_api/services/users.py
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from finance_api.core.errors import Conflict, NotFound, Unauthenticated, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic
from finance_api.services.accounts import to_money
from finance_api.services.security import InvalidToken, hash_password, token_subject, verify_password

logger = logging.getLogger(__name__)


def split_full_name(full_name: Optional[str]):
    parts = (full_name or "").strip().split(None, 1)
    first = parts[0] if parts else ""
    last = parts[1] if len(parts) > 1 else ""
    return first, last


def register_user(db: Session, username: str, email: str, password: str, full_name: Optional[str] = None) -> models.User:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email or not password:
        raise ValidationError("Username, email and password are required")

    existing = (
        db.query(models.User)
        .filter(or_(models.User.username == username, models.User.email == email))
        .first()
    )
    if existing:
        raise Conflict("User with this username or email already exists")

    first, last = split_full_name(full_name)
    try:
        with atomic(db):
            user = models.User(
                username=username,
                email=email,
                hashed_password=hash_password(password),
                first_name=first,
                last_name=last,
            )
            db.add(user)
    except IntegrityError:
        # lost a race with a concurrent registration
        raise Conflict("User with this username or email already exists")
    db.refresh(user)
    logger.info("User %s registered", user.id)
    return user


def authenticate(db: Session, username_or_email: str, password: str) -> models.User:
    """Check credentials and stamp ``last_login``. Bad credentials never say which half was wrong."""
    login = (username_or_email or "").strip()
    user = (
        db.query(models.User)
        .filter(
            or_(models.User.username == login, models.User.email == login.lower()),
            models.User.is_active.is_(True),
        )
        .first()
    )
    if user is None or not verify_password(password, user.hashed_password):
        logger.warning("Failed login for %r", login)
        raise Unauthenticated("Invalid credentials")

    with atomic(db):
        user.last_login = datetime.now(timezone.utc).replace(tzinfo=None)
        db.add(user)
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def list_active_users(db: Session) -> List[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.is_active.is_(True))
        .order_by(models.User.username)
        .all()
    )


def set_password(db: Session, login: str, new_password: str) -> models.User:
    user = (
        db.query(models.User)
        .filter(or_(models.User.username == login, models.User.email == login.lower()))
        .first()
    )
    if user is None:
        raise NotFound("User not found")
    with atomic(db):
        user.hashed_password = hash_password(new_password)
        db.add(user)
    logger.info("Password reset for user %s", user.id)
    return user


def update_profile(db: Session, user_id: int, full_name: Optional[str] = None, email: Optional[str] = None) -> models.User:
    user = get_user(db, user_id)
    full_name = (full_name or "").strip()
    email = (email or "").strip().lower()
    if not full_name and not email:
        raise ValidationError("No valid fields to update")

    if email and email != user.email:
        taken = db.query(models.User.id).filter(models.User.email == email, models.User.id != user.id).first()
        if taken:
            raise Conflict("Email is already in use")

    try:
        with atomic(db):
            if full_name:
                user.first_name, user.last_name = split_full_name(full_name)
            if email:
                user.email = email
            db.add(user)
    except IntegrityError:
        raise Conflict("Email is already in use")
    db.refresh(user)
    logger.info("Profile updated for user %s", user.id)
    return user


def deactivate_user(db: Session, user_id: int) -> models.User:
    """
    Soft-disable the caller's login. Refused while a budget is still running
    so nobody walks away from an open plan; history is never deleted.
    """
    user = get_user(db, user_id)
    open_budget = (
        db.query(models.Budget.id)
        .filter(
            models.Budget.user_id == user.id,
            models.Budget.is_active.is_(True),
            models.Budget.end_date >= date.today(),
        )
        .first()
    )
    if open_budget:
        raise Conflict("Cannot delete account with active budgets or goals. Please complete or delete them first.")

    with atomic(db):
        user.is_active = False
        db.add(user)
    db.refresh(user)
    logger.info("User %s deactivated their account", user.id)
    return user


def user_stats(db: Session, user_id: int, recent: int = 10) -> Dict[str, Any]:
    """Headline counts for the dashboard plus the newest transactions and budgets, merged."""
    today = date.today()
    accounts = (
        db.query(models.Account)
        .filter(models.Account.user_id == user_id, models.Account.is_active.is_(True))
        .all()
    )
    txn_counts = dict(
        db.query(models.Transaction.type, func.count(models.Transaction.id))
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(models.Account.user_id == user_id)
        .group_by(models.Transaction.type)
        .all()
    )
    budgets = db.query(models.Budget).filter(models.Budget.user_id == user_id, models.Budget.is_active.is_(True)).all()

    activity: List[Dict[str, Any]] = []
    recent_txns = (
        db.query(models.Transaction)
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(models.Account.user_id == user_id)
        .order_by(models.Transaction.transaction_date.desc(), models.Transaction.id.desc())
        .limit(recent)
        .all()
    )
    for txn in recent_txns:
        activity.append({
            "activity_type": "transaction",
            "id": txn.id,
            "description": txn.description,
            "amount": to_money(txn.amount),
            "type": txn.type.value,
            "date": txn.transaction_date,
            "category_name": txn.category.name,
        })
    for budget in sorted(budgets, key=lambda b: (b.created_at, b.id), reverse=True)[:recent]:
        activity.append({
            "activity_type": "budget",
            "id": budget.id,
            "description": f"Created budget: {budget.name}",
            "amount": to_money(budget.total_limit),
            "type": "budget",
            "date": budget.created_at.date(),
            "category_name": None,
        })
    activity.sort(key=lambda a: a["date"], reverse=True)

    income = txn_counts.get(models.TransactionType.INCOME, 0)
    expense = txn_counts.get(models.TransactionType.EXPENSE, 0)
    return {
        "overview": {
            "total_accounts": len(accounts),
            "total_balance": sum((to_money(a.current_balance) for a in accounts), Decimal("0.00")),
            "total_transactions": income + expense,
            "income_transactions": income,
            "expense_transactions": expense,
            "total_budgets": len(budgets),
            "active_budgets": sum(1 for b in budgets if b.start_date <= today <= b.end_date),
        },
        "recent_activity": activity[:recent],
    }


def refresh_user(db: Session, token: str, settings) -> models.User:
    """Resolve the owner of a token, expired or not, for reissuing a fresh one."""
    try:
        user_id = token_subject(token, settings)
    except InvalidToken:
        raise Unauthenticated("Invalid refresh token")
    user = (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.is_active.is_(True))
        .first()
    )
    if user is None:
        raise Unauthenticated("Invalid refresh token - user not found")
    return user
