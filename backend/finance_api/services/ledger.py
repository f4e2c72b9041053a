# finance_api/services/ledger.py
"""Ledger Engine: records transactions and transfers.

Every mutation runs as one unit of work: ownership checks, a locked read of
the affected balances, the ledger row and the balance adjustments are
committed together or not at all. The caller's user id is always passed in
explicitly.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from finance_api.core.errors import Conflict, Forbidden, NotFound, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic
from finance_api.services import accounts as account_store

logger = logging.getLogger(__name__)


def _transaction_type(value: Union[str, models.TransactionType]) -> models.TransactionType:
    if isinstance(value, models.TransactionType):
        return value
    try:
        return models.TransactionType[str(value).upper()]
    except KeyError:
        raise ValidationError("Transaction type must be INCOME or EXPENSE")


def _require_positive(amount, field: str = "Amount") -> Decimal:
    value = account_store.to_money(amount)
    if value <= 0:
        raise ValidationError(f"{field} must be a positive number")
    return value


def _require_text(value: Optional[str], message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(message)
    return value


def accessible_category(db: Session, user_id: int, category_id: int) -> models.Category:
    category = (
        db.query(models.Category)
        .filter(
            models.Category.id == category_id,
            or_(models.Category.user_id == user_id, models.Category.user_id.is_(None)),
        )
        .first()
    )
    if category is None:
        raise NotFound("Category not found or not accessible")
    return category


# ---------------------------------------------------------------- transactions

def create_transaction(
    db: Session,
    user_id: int,
    account_id: int,
    category_id: int,
    type: Union[str, models.TransactionType],
    amount,
    description: str,
    transaction_date: Optional[date] = None,
    notes: Optional[str] = None,
    receipt: Optional[models.Receipt] = None,
) -> models.Transaction:
    """
    Record an income or expense and apply it to the account balance.

    When ``receipt`` is given the transaction is linked to it and the
    receipt's ``transaction_created`` flag is set in the same commit.
    """
    txn_type = _transaction_type(type)
    value = _require_positive(amount)
    description = _require_text(description, "Description is required")

    try:
        with atomic(db):
            account = account_store.get_account(db, account_id, user_id)
            category = accessible_category(db, user_id, category_id)

            account = account_store.lock_accounts(db, [account.id])[account.id]
            if txn_type == models.TransactionType.EXPENSE and account_store.would_go_negative(account, value):
                raise Conflict(
                    f"Insufficient balance. Available: {account_store.to_money(account.current_balance)}, "
                    f"Required: {value}"
                )

            txn = models.Transaction(
                account_id=account.id,
                category_id=category.id,
                type=txn_type,
                amount=value,
                description=description,
                transaction_date=transaction_date or date.today(),
                notes=notes,
                receipt_id=receipt.id if receipt is not None else None,
            )
            db.add(txn)
            account_store.adjust_balance(db, account, txn.signed_amount)
            if receipt is not None:
                receipt.transaction_created = True
                db.add(receipt)
            db.flush()
    except IntegrityError:
        # only the unique receipt link can collide here; anything else is a real fault
        if receipt is None:
            raise
        logger.warning("Receipt %s is already linked to a transaction", receipt.id)
        raise Conflict("Receipt already has a linked transaction")
    except (Conflict, NotFound, ValidationError) as exc:
        logger.warning("Transaction rejected for user %s: %s", user_id, exc.message)
        raise

    db.refresh(txn)
    logger.info("Transaction %s recorded on account %s (%s %s)", txn.id, account_id, txn_type.value, value)
    return txn


def list_transactions(
    db: Session,
    user_id: int,
    account_id: Optional[int] = None,
    category_id: Optional[int] = None,
    type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[models.Transaction], int]:
    q = (
        db.query(models.Transaction)
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(models.Account.user_id == user_id)
    )
    if account_id:
        q = q.filter(models.Transaction.account_id == account_id)
    if category_id:
        q = q.filter(models.Transaction.category_id == category_id)
    if type:
        q = q.filter(models.Transaction.type == _transaction_type(type))
    if start_date:
        q = q.filter(models.Transaction.transaction_date >= start_date)
    if end_date:
        q = q.filter(models.Transaction.transaction_date <= end_date)

    total = q.count()
    items = (
        q.order_by(models.Transaction.transaction_date.desc(), models.Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def get_transaction(db: Session, user_id: int, transaction_id: int) -> models.Transaction:
    txn = (
        db.query(models.Transaction)
        .join(models.Account, models.Transaction.account_id == models.Account.id)
        .filter(models.Transaction.id == transaction_id, models.Account.user_id == user_id)
        .first()
    )
    if txn is None:
        raise NotFound("Transaction not found or does not belong to user")
    return txn


# ------------------------------------------------------------------- transfers

@dataclass
class TransferResult:
    transfer: models.Transfer
    from_account: models.Account
    to_account: models.Account


def _reference_number(on: date) -> str:
    return f"TRF-{on:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def create_transfer(
    db: Session,
    user_id: int,
    from_account_id: int,
    to_user_id: int,
    amount,
    description: str,
    transfer_date: Optional[date] = None,
    notes: Optional[str] = None,
    fee_amount=0,
) -> TransferResult:
    """
    Move ``amount`` from one of the caller's accounts to the recipient's
    earliest-created active account. The source pays ``amount + fee_amount``;
    the destination receives ``amount``.
    """
    value = _require_positive(amount)
    fee = account_store.to_money(fee_amount or 0)
    if fee < 0:
        raise ValidationError("Fee amount must be zero or positive")
    description = _require_text(description, "Description is required")

    if user_id == to_user_id:
        raise ValidationError("Cannot transfer money to yourself")

    try:
        with atomic(db):
            source = db.query(models.Account).filter(models.Account.id == from_account_id).first()
            if source is None:
                raise NotFound("Source account not found")
            if source.user_id != user_id:
                raise Forbidden("You do not have permission to transfer from this account")
            if not source.is_active:
                raise ValidationError("Source account is inactive")

            recipient = (
                db.query(models.User)
                .filter(models.User.id == to_user_id, models.User.is_active.is_(True))
                .first()
            )
            if recipient is None:
                raise NotFound("Recipient not found")
            destination = account_store.earliest_active_account(db, recipient.id)
            if destination is None:
                raise NotFound("Recipient has no active accounts")
            if destination.id == source.id:
                raise ValidationError("Source and destination accounts are the same")

            locked = account_store.lock_accounts(db, [source.id, destination.id])
            source, destination = locked[source.id], locked[destination.id]

            total = value + fee
            if account_store.would_go_negative(source, total):
                raise Conflict(
                    f"Insufficient balance. Available: {account_store.to_money(source.current_balance)}, "
                    f"Required: {total}"
                )

            on = transfer_date or date.today()
            transfer = models.Transfer(
                from_account_id=source.id,
                to_account_id=destination.id,
                amount=value,
                fee_amount=fee,
                description=description,
                transfer_date=on,
                reference_number=_reference_number(on),
                notes=notes,
            )
            db.add(transfer)
            account_store.adjust_balance(db, source, -total)
            account_store.adjust_balance(db, destination, value)
    except (Conflict, Forbidden, NotFound, ValidationError) as exc:
        logger.warning("Transfer rejected for user %s: %s", user_id, exc.message)
        raise

    # balances in the response come from the committed rows
    db.refresh(transfer)
    db.refresh(source)
    db.refresh(destination)
    logger.info(
        "Transfer %s committed: account %s -> account %s amount=%s fee=%s",
        transfer.reference_number, source.id, destination.id, value, fee,
    )
    return TransferResult(transfer=transfer, from_account=source, to_account=destination)


def list_transfers(
    db: Session,
    user_id: int,
    account_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[models.Transfer], int]:
    from_acc = aliased(models.Account)
    to_acc = aliased(models.Account)
    q = (
        db.query(models.Transfer)
        .join(from_acc, models.Transfer.from_account_id == from_acc.id)
        .join(to_acc, models.Transfer.to_account_id == to_acc.id)
        .filter(or_(from_acc.user_id == user_id, to_acc.user_id == user_id))
    )
    if account_id:
        q = q.filter(or_(models.Transfer.from_account_id == account_id, models.Transfer.to_account_id == account_id))
    if start_date:
        q = q.filter(models.Transfer.transfer_date >= start_date)
    if end_date:
        q = q.filter(models.Transfer.transfer_date <= end_date)

    total = q.count()
    items = (
        q.order_by(models.Transfer.transfer_date.desc(), models.Transfer.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_transfer(db: Session, user_id: int, transfer_id: int) -> models.Transfer:
    from_acc = aliased(models.Account)
    to_acc = aliased(models.Account)
    transfer = (
        db.query(models.Transfer)
        .join(from_acc, models.Transfer.from_account_id == from_acc.id)
        .join(to_acc, models.Transfer.to_account_id == to_acc.id)
        .filter(models.Transfer.id == transfer_id, or_(from_acc.user_id == user_id, to_acc.user_id == user_id))
        .first()
    )
    if transfer is None:
        raise NotFound("Transfer not found or access denied")
    return transfer
