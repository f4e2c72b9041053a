# finance_api/services/accounts.py
"""Account Store: balance state and ownership-scoped reads.

``adjust_balance`` is the only code path that writes ``current_balance``; the
ledger calls it inside its own unit of work, never standalone.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from finance_api.core.errors import Conflict, NotFound, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Normalise anything numeric to a two-place Decimal."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


def get_account(db: Session, account_id: int, user_id: Optional[int] = None) -> models.Account:
    q = db.query(models.Account).filter(models.Account.id == account_id)
    if user_id is not None:
        q = q.filter(models.Account.user_id == user_id)
    account = q.first()
    if account is None:
        raise NotFound("Account not found or does not belong to user")
    return account


def get_accounts_for_user(db: Session, user_id: int, active_only: bool = False) -> List[models.Account]:
    q = db.query(models.Account).filter(models.Account.user_id == user_id)
    if active_only:
        q = q.filter(models.Account.is_active.is_(True))
    return q.order_by(models.Account.created_at, models.Account.id).all()


def earliest_active_account(db: Session, user_id: int) -> Optional[models.Account]:
    return (
        db.query(models.Account)
        .filter(models.Account.user_id == user_id, models.Account.is_active.is_(True))
        .order_by(models.Account.created_at, models.Account.id)
        .first()
    )


def lock_accounts(db: Session, account_ids: Iterable[int]) -> dict:
    """
    SELECT ... FOR UPDATE the given accounts in ascending id order and return
    them keyed by id. ``populate_existing`` makes sure the balances come from
    the row just locked, not from whatever the session cached earlier.
    """
    ids = sorted(set(account_ids))
    stmt = (
        select(models.Account)
        .where(models.Account.id.in_(ids))
        .order_by(models.Account.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {a.id: a for a in db.execute(stmt).scalars().all()}


def adjust_balance(db: Session, account: models.Account, delta: Decimal) -> None:
    """
    Apply ``delta`` to the account's persisted balance. Caller owns the transaction.

    The arithmetic happens in the UPDATE itself, so it never overwrites a
    concurrent writer. Debits on accounts that may not go negative carry
    the balance floor in the WHERE clause; when no row matches, the money
    is already gone and the whole unit of work is rejected.
    """
    delta = to_money(delta)
    stmt = (
        update(models.Account)
        .where(models.Account.id == account.id)
        .values(current_balance=models.Account.current_balance + delta)
        .execution_options(synchronize_session=False)
    )
    guarded = delta < 0 and not account.account_type.allows_negative_balance
    if guarded:
        stmt = stmt.where(models.Account.current_balance >= -delta)

    result = db.execute(stmt)
    if result.rowcount == 0:
        if guarded:
            raise Conflict(f"Insufficient balance. Required: {-delta}")
        raise NotFound("Account not found")
    # the in-memory value is stale now; reload it on next access
    db.expire(account, ["current_balance"])


def would_go_negative(account: models.Account, debit: Decimal) -> bool:
    if account.account_type.allows_negative_balance:
        return False
    return to_money(account.current_balance) < to_money(debit)


def list_account_types(db: Session) -> List[models.AccountType]:
    return db.query(models.AccountType).order_by(models.AccountType.id).all()


def create_account(db: Session, user_id: int, name: str, type_id: int) -> models.Account:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Account name is required")
    account_type = db.query(models.AccountType).filter(models.AccountType.id == type_id).first()
    if account_type is None:
        raise NotFound("Account type not found")

    with atomic(db):
        account = models.Account(user_id=user_id, type_id=type_id, name=name, current_balance=Decimal("0.00"))
        db.add(account)
    db.refresh(account)
    logger.info("Account %s created for user %s", account.id, user_id)
    return account


def deactivate_account(db: Session, user_id: int, account_id: int) -> models.Account:
    account = get_account(db, account_id, user_id)
    with atomic(db):
        account.is_active = False
        db.add(account)
    db.refresh(account)
    return account


def delete_account(db: Session, user_id: int, account_id: int) -> None:
    """Delete an account and its transactions. Accounts that took part in transfers are kept."""
    account = get_account(db, account_id, user_id)
    has_transfers = (
        db.query(models.Transfer.id)
        .filter(or_(models.Transfer.from_account_id == account.id, models.Transfer.to_account_id == account.id))
        .first()
    )
    if has_transfers:
        raise Conflict("Account has transfers and cannot be deleted; deactivate it instead")
    with atomic(db):
        db.delete(account)
    logger.info("Account %s deleted by user %s", account_id, user_id)
