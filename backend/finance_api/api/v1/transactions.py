# finance_api/api/v1/transactions.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.common import ok, pagination
from finance_api.schemas.transaction import TransactionCreate, TransactionOut
from finance_api.services import ledger

router = APIRouter(tags=["transactions"])


@router.get("")
def list_transactions(
    account_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None, description="INCOME or EXPENSE"),
    start_date: Optional[date] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[date] = Query(None, description="YYYY-MM-DD"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Paginated list of the caller's transactions, newest first, with optional filters.
    """
    items, total = ledger.list_transactions(
        db, current_user.id,
        account_id=account_id, category_id=category_id, type=type,
        start_date=start_date, end_date=end_date, page=page, limit=limit,
    )
    return ok({
        "transactions": [TransactionOut.model_validate(t) for t in items],
        "pagination": pagination(total, page, limit),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transaction(
    payload: TransactionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = ledger.create_transaction(
        db,
        user_id=current_user.id,
        account_id=payload.account_id,
        category_id=payload.category_id,
        type=payload.type,
        amount=payload.amount,
        description=payload.description,
        transaction_date=payload.transaction_date,
        notes=payload.notes,
    )
    return ok(TransactionOut.model_validate(txn), "Transaction created successfully")


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(TransactionOut.model_validate(ledger.get_transaction(db, current_user.id, transaction_id)))
