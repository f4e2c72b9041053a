# finance_api/api/v1/transfers.py
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.common import ok
from finance_api.schemas.transfer import TransferCreate, TransferOut
from finance_api.services import ledger

router = APIRouter(tags=["transfers"])


def transfer_to_dict(transfer: models.Transfer, user_id: int) -> Dict[str, Any]:
    outgoing = transfer.from_account.user_id == user_id
    data = TransferOut.model_validate(transfer).model_dump()
    data.update({
        "direction": "outgoing" if outgoing else "incoming",
        "from_account_name": transfer.from_account.name,
        "to_account_name": transfer.to_account.name,
        "from_username": transfer.from_account.user.username,
        "to_username": transfer.to_account.user.username,
    })
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transfer(
    payload: TransferCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = ledger.create_transfer(
        db,
        user_id=current_user.id,
        from_account_id=payload.from_account_id,
        to_user_id=payload.to_user_id,
        amount=payload.amount,
        description=payload.description,
        transfer_date=payload.transfer_date,
        notes=payload.notes,
        fee_amount=payload.fee_amount,
    )
    data = transfer_to_dict(result.transfer, current_user.id)
    data["from_account_balance"] = result.from_account.current_balance
    data["to_account_balance"] = result.to_account.current_balance
    return ok(data, "Transfer completed successfully")


@router.get("")
def list_transfers(
    account_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total = ledger.list_transfers(
        db, current_user.id, account_id=account_id,
        start_date=start_date, end_date=end_date, limit=limit, offset=offset,
    )
    return ok({
        "transfers": [transfer_to_dict(t, current_user.id) for t in items],
        "pagination": {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total},
    })


@router.get("/{transfer_id}")
def get_transfer(transfer_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    transfer = ledger.get_transfer(db, current_user.id, transfer_id)
    data = transfer_to_dict(transfer, current_user.id)
    data["can_modify"] = transfer.from_account.user_id == current_user.id
    return ok(data)
